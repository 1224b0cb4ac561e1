"""
Insight Backend
===============
Chat-completion client behind :class:`~greentech.services.ai.insight_generator.InsightGenerator`.

The insight generator only ever needs one thing from a model: a single JSON
object answering a system + user prompt. :class:`LLMBackend` is that seam;
:class:`OpenAIBackend` implements it over OpenAI's Chat Completions API (or
any compatible endpoint via ``base_url``).

The ``openai`` SDK is imported lazily and ships in the ``ai`` extra::

    pip install greentech-telemetry[ai]
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from greentech.domain.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


class LLMBackend(ABC):
    """A model that answers a prompt pair with one JSON object (as text)."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier shown in status payloads."""

    @abstractmethod
    def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int = 400,
        temperature: float = 0.5,
    ) -> str:
        """Return the raw answer text; request failures raise ExternalServiceError."""


class OpenAIBackend(LLMBackend):
    """JSON-mode chat completions against an already constructed ``openai.OpenAI`` client."""

    def __init__(self, client: Any, model: str = DEFAULT_OPENAI_MODEL):
        self._client = client
        self.model = model

    @property
    def name(self) -> str:
        return "openai"

    @classmethod
    def from_api_key(
        cls,
        api_key: str,
        *,
        model: str = "",
        base_url: Optional[str] = None,
        timeout: int = 30,
    ) -> Optional["OpenAIBackend"]:
        """Build the SDK client; ``None`` when the key or the SDK is missing."""
        if not api_key:
            logger.warning("OpenAI backend: no API key provided")
            return None
        try:
            import openai
        except ImportError:
            logger.error("OpenAI backend: 'openai' package not installed. Run: pip install greentech-telemetry[ai]")
            return None

        kwargs: dict[str, Any] = {"api_key": api_key, "timeout": timeout}
        if base_url:
            kwargs["base_url"] = base_url
        backend = cls(openai.OpenAI(**kwargs), model or DEFAULT_OPENAI_MODEL)
        logger.info("OpenAI backend initialised (model=%s)", backend.model)
        return backend

    def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int = 400,
        temperature: float = 0.5,
    ) -> str:
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
                response_format={"type": "json_object"},
            )
        except Exception as exc:
            raise ExternalServiceError(f"OpenAI request failed: {exc}", detail={"model": self.model}) from exc
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


def create_backend(
    provider: str,
    *,
    api_key: str = "",
    model: str = "",
    base_url: Optional[str] = None,
    timeout: int = 30,
) -> Optional[LLMBackend]:
    """
    Backend for ``GREENTECH_LLM_PROVIDER``.

    ``"none"`` (or blank) disables insights; unknown providers and a backend
    that cannot be built also return ``None``.
    """
    provider = (provider or "").strip().lower()

    if provider in ("none", ""):
        logger.info("LLM provider set to 'none'; AI insights disabled")
        return None
    if provider != "openai":
        logger.error("Unknown LLM provider '%s'", provider)
        return None

    backend = OpenAIBackend.from_api_key(api_key, model=model, base_url=base_url, timeout=timeout)
    if backend is None:
        logger.warning("LLM backend '%s' could not be built; AI insights disabled", provider)
    return backend
