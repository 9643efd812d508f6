"""OpenRouter LLM provider (OpenAI-compatible API)."""

from profile_search.providers.llm.openai import OpenAIProvider

_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterProvider(OpenAIProvider):
    """Routes requests through OpenRouter to any hosted model."""

    @property
    def provider_id(self) -> str:
        return "openrouter"

    @property
    def default_model(self) -> str:
        return "anthropic/claude-3.5-sonnet"

    @property
    def env_var(self) -> str | None:
        return "OPENROUTER_API_KEY"

    @property
    def base_url(self) -> str:
        return _OPENROUTER_BASE_URL
