"""Model-call primitive: an async chat-completion interface over OpenAI-compatible APIs.

The orchestration core treats every provider as an opaque
``generate(messages) -> LLMResponse`` coroutine.  Retries with exponential
backoff live here so agents and the dispatcher never see transient errors
unless every attempt has failed.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LLMResponse:
    """Generated text plus accounting details from a single completion."""

    text: str
    tokens_used: int
    model: str
    provider: str
    latency_ms: float
    raw: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class LLMProvider(ABC):
    """Interface every model backend implements.

    Parameters
    ----------
    model : str
        Backend-specific model identifier (e.g. ``"anthropic/claude-3.5-sonnet"``).
    api_key : str | None
        Explicit key; falls back to the environment variable *api_key_env*.
    timeout : int
        Per-request timeout in seconds, enforced by the backend client.
    max_retries : int
        Attempts before :meth:`generate` gives up and raises.
    """

    name: str

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        api_key_env: str | None = None,
        timeout: int = 60,
        max_retries: int = 3,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries

        self.api_key = api_key or os.getenv(api_key_env or "")
        if not self.api_key:
            raise ValueError(
                f"No API key for {self.name}. "
                f"Set {api_key_env!r} or pass api_key explicitly."
            )

    async def generate(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        **kwargs: Any,
    ) -> LLMResponse:
        """Run one completion, retrying transient failures with backoff."""
        last_exc: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            start = time.perf_counter()
            try:
                payload = await self._call_api(
                    messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    **kwargs,
                )
            except Exception as exc:  # noqa: BLE001
                last_exc = exc
                if attempt == self.max_retries:
                    break
                wait = min(2**attempt, 16)
                logger.warning(
                    "[%s] %s attempt %d/%d failed (%s). Retrying in %ds",
                    self.name,
                    self.model,
                    attempt,
                    self.max_retries,
                    exc,
                    wait,
                )
                await asyncio.sleep(wait)
                continue

            response = LLMResponse(
                text=payload["text"],
                tokens_used=payload.get("tokens_used", 0),
                model=self.model,
                provider=self.name,
                latency_ms=round((time.perf_counter() - start) * 1000, 1),
                raw=payload.get("raw", {}),
            )
            logger.debug(
                "[%s] %s responded (%d tokens, %.0f ms)",
                self.name,
                self.model,
                response.tokens_used,
                response.latency_ms,
            )
            return response

        raise RuntimeError(
            f"[{self.name}] All {self.max_retries} attempts failed for {self.model}"
        ) from last_exc

    @abstractmethod
    async def _call_api(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Return ``{"text": ..., "tokens_used": ..., "raw": ...}``."""
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"


# ---------------------------------------------------------------------------
# OpenAI-compatible backends
# ---------------------------------------------------------------------------

class OpenAIProvider(LLMProvider):
    """Chat completions through the ``openai>=1.0`` async client."""

    name = "openai"
    base_url: str | None = None

    def __init__(self, model: str = "gpt-4o", **kwargs: Any) -> None:
        kwargs.setdefault("api_key_env", "OPENAI_API_KEY")
        super().__init__(model=model, **kwargs)
        import openai

        self._client = openai.AsyncOpenAI(
            base_url=self.base_url,
            api_key=self.api_key,
            timeout=self.timeout,
            default_headers=self._default_headers(),
            max_retries=0,
        )

    def _default_headers(self) -> dict[str, str] | None:
        return None

    async def _call_api(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
        **kwargs: Any,
    ) -> dict[str, Any]:
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )
        if not response.choices or response.choices[0].message is None:
            raise RuntimeError(f"Invalid response from {self.name}: no choices")
        usage = response.usage
        return {
            "text": response.choices[0].message.content or "",
            "tokens_used": usage.total_tokens if usage else 0,
            "raw": response.model_dump(),
        }


class OpenRouterProvider(OpenAIProvider):
    """OpenRouter's OpenAI-compatible gateway to many model vendors.

    Model names use OpenRouter's ``vendor/model`` form, e.g.
    ``"anthropic/claude-3.5-sonnet"`` or ``"meta-llama/llama-3.1-70b-instruct"``.
    """

    name = "openrouter"
    base_url = OPENROUTER_BASE_URL

    def __init__(
        self,
        model: str = "anthropic/claude-3.5-sonnet",
        *,
        referer: str = "http://localhost:3000",
        app_title: str = "Hive-Mind",
        **kwargs: Any,
    ) -> None:
        self.referer = referer
        self.app_title = app_title
        kwargs.setdefault("api_key_env", "OPENROUTER_API_KEY")
        super().__init__(model=model, **kwargs)

    def _default_headers(self) -> dict[str, str]:
        return {"HTTP-Referer": self.referer, "X-Title": self.app_title}


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, type[LLMProvider]] = {
    "openai": OpenAIProvider,
    "openrouter": OpenRouterProvider,
}


def create_provider(name: str, **kwargs: Any) -> LLMProvider:
    """Instantiate a provider by its short name.

    >>> provider = create_provider("openrouter", model="openai/gpt-4o")
    """
    cls = _PROVIDERS.get(name.lower())
    if cls is None:
        raise ValueError(
            f"Unknown provider {name!r}. Choose from {list(_PROVIDERS)}"
        )
    return cls(**kwargs)
