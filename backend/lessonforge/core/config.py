from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_name: str = "LessonForge AI"
    debug: bool = False

    # LLM provider: "openai" (any OpenAI-compatible gateway) or "gemini"
    llm_provider: str = "openai"
    openai_api_key: str = ""
    ai_base_url: str = ""
    gemini_api_key: str = ""

    # Model tiers
    ai_model_free: str = "deepseek/deepseek-v3.2"
    ai_model_paid: str = "openai/gpt-4.1"
    ai_model_agents: str = "openai/gpt-4.1-mini"
    ai_model_presentation: str = "anthropic/claude-sonnet-4.5"

    # Generation pipeline
    ai_call_timeout_seconds: float = 120.0
    max_backfill_attempts: int = 3
    backfill_backoff_seconds: float = 1.0
    enable_agent_validation: bool = True
    max_agent_fixes: int = 10

    # CORS
    frontend_url: str = "http://localhost:5173"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
