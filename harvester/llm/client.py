"""Text-completion collaborator used by the model extraction path.

Inference providers
-------------------
``ollama`` (default)
    A LangChain ``ChatOllama`` model against the local Ollama server.
    Availability is checked with ``GET /api/tags``.
    Configure via ``OLLAMA_BASE_URL`` and ``OLLAMA_CHAT_MODEL``.

``openai``
    A LangChain ``ChatOpenAI`` model.  Requires ``OPENAI_API_KEY``.
    Availability is checked with ``GET /v1/models``.
    Configure via ``OPENAI_CHAT_MODEL``.

Set ``LLM_PROVIDER=openai`` in your ``.env`` to switch providers.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional, Protocol

import httpx

from harvester.config import Settings
from harvester.errors import CollaboratorUnavailable

logger = logging.getLogger(__name__)

_OPENAI_MODELS_URL = "https://api.openai.com/v1/models"


class CompletionClient(Protocol):
    """Anything that turns a prompt into plain text."""

    def complete(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str: ...

    def is_available(self) -> bool: ...


class LangChainCompletionClient:
    """:class:`CompletionClient` backed by a LangChain chat model."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    # ------------------------------------------------------------------
    # LLM helper
    # ------------------------------------------------------------------

    def _get_llm(self, temperature: float, max_tokens: int) -> Any:
        """Return a configured LangChain chat model based on ``settings``."""
        if self.settings.llm_provider == "openai":
            from langchain_openai import ChatOpenAI

            return ChatOpenAI(
                model=self.settings.openai_chat_model,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self.settings.completion_timeout,
            )

        from langchain_ollama import ChatOllama

        return ChatOllama(
            model=self.settings.ollama_chat_model,
            base_url=self.settings.ollama_base_url,
            temperature=temperature,
            num_predict=max_tokens,
            client_kwargs={"timeout": self.settings.completion_timeout},
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def complete(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Return the model's plain-text answer to *prompt*.

        Raises:
            CollaboratorUnavailable: If the provider call fails for any
                reason (transport error, timeout, API error).
        """
        llm = self._get_llm(
            self.settings.completion_temperature if temperature is None else temperature,
            self.settings.completion_max_tokens if max_tokens is None else max_tokens,
        )
        try:
            response = llm.invoke(prompt)
        except Exception as exc:  # noqa: BLE001
            raise CollaboratorUnavailable(f"Completion failed: {exc}") from exc
        return response.content if hasattr(response, "content") else str(response)

    def is_available(self) -> bool:
        """Return ``True`` if the configured provider answers a cheap availability request."""
        timeout = self.settings.availability_timeout
        try:
            with httpx.Client(timeout=timeout) as client:
                if self.settings.llm_provider == "openai":
                    api_key = os.environ.get("OPENAI_API_KEY", "")
                    if not api_key:
                        logger.warning("OPENAI_API_KEY is not set; inference unavailable")
                        return False
                    response = client.get(
                        _OPENAI_MODELS_URL,
                        headers={"Authorization": f"Bearer {api_key}"},
                    )
                else:
                    response = client.get(f"{self.settings.ollama_base_url}/api/tags")
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(f"Inference service not available: {exc}")
            return False
        return True
