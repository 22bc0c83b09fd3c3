"""Model Invoker: one async chat-completion call with a timeout and usage metering."""
import asyncio
import logging
import time
from dataclasses import dataclass

from lessonforge.core.config import Settings, get_settings
from lessonforge.core.deps import get_llm_client
from lessonforge.core.errors import ModelTimeoutError, ServiceError
from lessonforge.services.telemetry import emit_event

logger = logging.getLogger("lessonforge.ai")


@dataclass(frozen=True)
class UsageRecord:
    label: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    duration_ms: int


def select_model(is_paid: bool, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    return settings.ai_model_paid if is_paid else settings.ai_model_free


def select_presentation_model(is_paid: bool, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    return settings.ai_model_presentation if is_paid else settings.ai_model_free


class AIService:
    def __init__(self, client=None, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._client = client
        self._usage: list[UsageRecord] = []

    @property
    def client(self):
        # created on first use so that building the service never needs credentials
        if self._client is None:
            self._client = get_llm_client(self.settings)
        return self._client

    @property
    def usage(self) -> tuple[UsageRecord, ...]:
        return tuple(self._usage)

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        label: str = "generation",
    ) -> str:
        """Run one completion and return the raw text ("" when the model sent nothing).

        Raises ModelTimeoutError past ``ai_call_timeout_seconds`` and
        ServiceError for any provider or transport failure.
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        timeout = self.settings.ai_call_timeout_seconds
        t0 = time.time()
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            duration_ms = int((time.time() - t0) * 1000)
            logger.error("[ai.invoke] %s timed out after %sms (model=%s)", label, duration_ms, model)
            emit_event("llm_call", label=label, model=model, ok=False,
                       error_type="ModelTimeoutError", latency_ms=duration_ms)
            raise ModelTimeoutError(f"{label}: no response within {timeout}s") from exc
        except Exception as exc:
            duration_ms = int((time.time() - t0) * 1000)
            logger.error("[ai.invoke] %s failed (model=%s): %s", label, model, exc)
            emit_event("llm_call", label=label, model=model, ok=False,
                       error_type=exc.__class__.__name__, latency_ms=duration_ms)
            raise ServiceError(f"{label}: {exc.__class__.__name__}") from exc

        duration_ms = int((time.time() - t0) * 1000)
        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""

        usage = getattr(response, "usage", None)
        record = UsageRecord(
            label=label,
            model=getattr(response, "model", None) or model,
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            duration_ms=duration_ms,
        )
        self._usage.append(record)
        emit_event("llm_call", label=label, model=record.model, ok=True, latency_ms=duration_ms,
                   prompt_tokens=record.prompt_tokens, completion_tokens=record.completion_tokens,
                   response_chars=len(content))
        return content
