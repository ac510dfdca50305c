from __future__ import annotations

from typing import Protocol

import httpx

from memebot.config import Settings, settings
from memebot.http_client import (
    AsyncCircuitBreaker,
    CircuitBreakerOpenError,
    async_http_client,
    breaker_from_settings,
    request_with_retries,
)

DEFAULT_SYSTEM_PROMPT = "You know internet meme culture well. Answer briefly and follow the format exactly."


class TextGenerationError(RuntimeError):
    """Raised when the text generation upstream cannot produce an answer."""


class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


class OpenAITextGenerator:
    """Chat-completions client for any OpenAI-compatible endpoint."""

    def __init__(
        self,
        *,
        settings_obj: Settings | None = None,
        circuit_breaker: AsyncCircuitBreaker | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self._settings = settings_obj or settings
        self._breaker = circuit_breaker or breaker_from_settings("openai", self._settings)
        self._system_prompt = system_prompt

    async def generate(self, prompt: str) -> str:
        cfg = self._settings
        if not cfg.OPENAI_API_KEY:
            raise TextGenerationError("OpenAI API key is not configured")
        headers = {
            "Authorization": f"Bearer {cfg.OPENAI_API_KEY}",
            "Content-Type": "application/json",
        }
        body = {
            "model": cfg.OPENAI_MODEL,
            "messages": [
                {"role": "system", "content": self._system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": cfg.OPENAI_TEMPERATURE,
        }
        try:
            async with async_http_client(settings_obj=cfg, base_url=cfg.OPENAI_BASE) as client:
                response = await request_with_retries(
                    "POST",
                    "/chat/completions",
                    client=client,
                    circuit_breaker=self._breaker,
                    retries=cfg.HTTP_RETRY_ATTEMPTS,
                    backoff_factor=cfg.HTTP_RETRY_BACKOFF_INITIAL,
                    backoff_max=cfg.HTTP_RETRY_BACKOFF_MAX,
                    retry_statuses=cfg.HTTP_RETRY_STATUS_CODES,
                    headers=headers,
                    json=body,
                )
                response.raise_for_status()
                data = response.json()
        except CircuitBreakerOpenError as exc:
            raise TextGenerationError("text generation is temporarily unavailable") from exc
        except httpx.HTTPError as exc:
            raise TextGenerationError(f"text generation request failed: {exc}") from exc
        except ValueError as exc:
            raise TextGenerationError("text generation returned invalid JSON") from exc

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise TextGenerationError("unexpected completion payload") from exc
        if not isinstance(content, str) or not content.strip():
            raise TextGenerationError("empty completion")
        return content.strip()


__all__ = ["OpenAITextGenerator", "TextGenerationError", "TextGenerator"]
