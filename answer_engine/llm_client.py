"""OpenRouter LLM client with ordered model fallback."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

from answer_engine.config import settings
from answer_engine.exceptions import GenerationError, ProviderUnavailable
from answer_engine.services import logger as log_service


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class GenerationResult:
    text: str
    model: str
    usage: Usage = field(default_factory=Usage)


class LLMClient:
    """Thin wrapper over the OpenAI-compatible chat completions API.

    Every call is a single user turn: instructions travel inside the prompt,
    so any provider behind the gateway is interchangeable.
    """

    def __init__(self, openai_client: Any, *, timeout: float | None = None):
        self._client = openai_client
        self.timeout = timeout if timeout is not None else settings.llm_timeout_seconds

    @staticmethod
    def _temperature_for_model(model: str, temperature: float) -> float:
        # Some OpenAI GPT-5-compatible gateways reject temperature != 1.
        if "gpt-5" in (model or "").lower():
            return 1
        return temperature

    async def generate(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float = 0.5,
        max_tokens: int = 1400,
        caller: str = "generate",
    ) -> GenerationResult:
        t0 = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=model,
                    messages=[{"role": "user", "content": prompt}],
                    max_tokens=max_tokens,
                    temperature=self._temperature_for_model(model, temperature),
                ),
                timeout=self.timeout,
            )
        except Exception as e:
            log_service.log_llm_call(
                model=model,
                caller=caller,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(e) or type(e).__name__,
            )
            raise

        choices = getattr(response, "choices", None) or []
        text = ""
        if choices:
            message = getattr(choices[0], "message", None)
            text = (getattr(message, "content", None) or "").strip()

        usage = getattr(response, "usage", None)
        mapped_usage = Usage(
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )
        log_service.log_llm_call(
            model=model,
            caller=caller,
            input_tokens=mapped_usage.input_tokens,
            output_tokens=mapped_usage.output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return GenerationResult(text=text, model=model, usage=mapped_usage)

    async def generate_with_fallback(
        self,
        prompt: str,
        *,
        models: list[str],
        temperature: float = 0.5,
        max_tokens: int = 1400,
        caller: str = "generate",
    ) -> GenerationResult:
        """Try each model in order until one returns non-empty text."""
        attempts: list[str] = []
        for model in dict.fromkeys(m for m in models if m):
            try:
                result = await self.generate(
                    prompt,
                    model=model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    caller=caller,
                )
            except Exception as e:
                attempts.append(f"{model}: {str(e) or type(e).__name__}")
                continue
            if result.text:
                return result
            attempts.append(f"{model}: empty response")
        raise GenerationError("All candidate models failed", attempts)


def get_client() -> LLMClient:
    """Get OpenRouter client via OpenAI-compatible SDK."""
    from openai import AsyncOpenAI

    if not settings.openrouter_api_key:
        raise ProviderUnavailable("openrouter", "OPENROUTER_API_KEY is not configured")

    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    openai_client = AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=base_url,
    )
    return LLMClient(openai_client)


_client: LLMClient | None = None


def client() -> LLMClient:
    """Get or create the LLM client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client
