"""Ollama local LLM provider (OpenAI-compatible API)."""

import logging
import os

from profile_search.providers.llm.openai import OpenAIProvider

logger = logging.getLogger(__name__)

_DEFAULT_OLLAMA_URL = "http://localhost:11434"


class OllamaProvider(OpenAIProvider):
    """LLM provider using a local Ollama instance.

    Enabled by setting OLLAMA_BASE_URL; no API key is needed. Local models
    are slow, so the default timeout is 60 seconds.
    """

    def __init__(self, timeout_s: float = 60.0) -> None:
        super().__init__(timeout_s=timeout_s)

    @property
    def provider_id(self) -> str:
        return "ollama"

    @property
    def default_model(self) -> str:
        return "llama3"

    @property
    def env_var(self) -> str | None:
        return "OLLAMA_BASE_URL"

    @property
    def base_url(self) -> str:
        url = os.environ.get("OLLAMA_BASE_URL", _DEFAULT_OLLAMA_URL).rstrip("/")
        return url if url.endswith("/v1") else f"{url}/v1"

    def _api_key(self) -> str:
        if not os.environ.get("OLLAMA_BASE_URL"):
            logger.debug("OLLAMA_BASE_URL not set - using %s", _DEFAULT_OLLAMA_URL)
        return "ollama"
