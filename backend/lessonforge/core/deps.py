import logging
import os

from openai import AsyncOpenAI

from lessonforge.core.config import Settings, get_settings

_prompt_logger = logging.getLogger("lessonforge.llm_prompts")


# ── Gemini adapter, mimics the AsyncOpenAI client interface ─────────────────
# AIService calls `await client.chat.completions.create(...)`; this adapter
# intercepts those calls and routes them to Gemini.

class _FakeMessage:
    def __init__(self, content: str):
        self.content = content


class _FakeChoice:
    def __init__(self, content: str):
        self.message = _FakeMessage(content)


class _FakeUsage:
    def __init__(self, prompt_tokens: int, completion_tokens: int):
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens


class _FakeResponse:
    def __init__(self, text: str, model: str, usage: _FakeUsage | None = None):
        self.choices = [_FakeChoice(text)]
        self.model = model
        self.usage = usage


class _FakeCompletions:
    def __init__(self, api_key: str):
        self._api_key = api_key

    async def create(
        self,
        model=None,
        messages=None,
        temperature=0.7,
        max_tokens=None,
        **kwargs,
    ):
        from google import genai
        from google.genai import types

        system_parts = [
            m["content"] for m in (messages or []) if m.get("role") == "system"
        ]
        user_parts = [
            m["content"] for m in (messages or []) if m.get("role") != "system"
        ]

        system_instruction = "\n\n".join(system_parts) or None
        user_prompt = "\n\n".join(user_parts)
        # OpenRouter-style ids ("google/gemini-2.5-flash") are not Gemini model names
        gemini_model = model if model and model.startswith("gemini") else "gemini-2.5-flash"

        if os.environ.get("DEBUG_LLM_PROMPTS", "").lower() in ("1", "true"):
            _prompt_logger.warning(
                "\n\n%s\n"
                "── SYSTEM ──────────────────────────────────────────────\n%s\n"
                "── USER ────────────────────────────────────────────────\n%s\n"
                "── CONFIG ──────────────────────────────────────────────\n"
                "  model=%s  temp=%s  max_tokens=%s\n"
                "%s",
                "=" * 60,
                system_instruction or "(none)",
                user_prompt,
                gemini_model,
                temperature,
                max_tokens or 2048,
                "=" * 60,
            )

        client = genai.Client(api_key=self._api_key)

        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=temperature,
            max_output_tokens=max_tokens or 2048,
            response_mime_type="application/json",
            # no thinking: keeps preamble text out of the JSON output
            thinking_config=types.ThinkingConfig(thinking_budget=0),
        )
        response = await client.aio.models.generate_content(
            model=gemini_model,
            contents=user_prompt,
            config=config,
        )

        usage = None
        meta = getattr(response, "usage_metadata", None)
        if meta is not None:
            usage = _FakeUsage(
                prompt_tokens=meta.prompt_token_count or 0,
                completion_tokens=meta.candidates_token_count or 0,
            )
        return _FakeResponse(response.text or "", model=gemini_model, usage=usage)


class _FakeChat:
    def __init__(self, api_key: str):
        self.completions = _FakeCompletions(api_key)


class GeminiClientAdapter:
    def __init__(self, api_key: str):
        self.chat = _FakeChat(api_key)


def get_llm_client(settings: Settings | None = None):
    """Return the active async LLM client based on the llm_provider setting."""
    if settings is None:
        settings = get_settings()
    if settings.llm_provider == "gemini":
        return GeminiClientAdapter(api_key=settings.gemini_api_key)
    return AsyncOpenAI(
        api_key=settings.openai_api_key or None,
        base_url=settings.ai_base_url or None,
    )
