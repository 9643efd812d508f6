"""OpenAI LLM provider.

Also the base for OpenAI-compatible endpoints (OpenRouter, Ollama).
"""

import logging
import os

from profile_search.core.errors import (
    NotConfiguredError,
    RateLimitedError,
    TransientError,
)
from profile_search.providers.llm.base import MAX_TOKENS, LLMProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """LLM provider using the OpenAI chat completions API."""

    def __init__(self, timeout_s: float = 30.0) -> None:
        self._timeout_s = timeout_s

    @property
    def provider_id(self) -> str:
        return "openai"

    @property
    def default_model(self) -> str:
        return "gpt-4o-mini"

    @property
    def env_var(self) -> str | None:
        return "OPENAI_API_KEY"

    @property
    def base_url(self) -> str | None:
        return None

    def _api_key(self) -> str:
        api_key = os.environ.get(self.env_var or "")
        if not api_key:
            msg = f"{self.env_var} environment variable is required"
            raise NotConfiguredError(msg, self.provider_id)
        return api_key

    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int = MAX_TOKENS,
    ) -> str:
        api_key = self._api_key()

        try:
            import openai
        except ImportError:
            msg = (
                f"openai is required for the {self.provider_id} provider. "
                "Install with: pip install 'profile-search-engine[openai]'"
            )
            raise ImportError(msg) from None

        client = openai.AsyncOpenAI(
            api_key=api_key, base_url=self.base_url, timeout=self._timeout_s,
        )
        use_model = model or self.default_model
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs = {}
        if temperature is not None:
            kwargs["temperature"] = temperature

        logger.info("Sending prompt to %s (%s)...", self.provider_id, use_model)
        try:
            response = await client.chat.completions.create(
                model=use_model,
                messages=messages,
                max_tokens=max_tokens,
                **kwargs,
            )
        except openai.RateLimitError as e:
            raise RateLimitedError(str(e), self.provider_id) from e
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise NotConfiguredError(str(e), self.provider_id) from e
        except openai.APIStatusError as e:
            raise TransientError(str(e), self.provider_id, status_code=e.status_code) from e
        except openai.APIError as e:
            raise TransientError(str(e), self.provider_id) from e

        return response.choices[0].message.content or ""
