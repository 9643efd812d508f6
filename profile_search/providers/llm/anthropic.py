"""Anthropic Claude LLM provider."""

import logging
import os

from profile_search.core.errors import (
    NotConfiguredError,
    RateLimitedError,
    TransientError,
)
from profile_search.providers.llm.base import MAX_TOKENS, LLMProvider

logger = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    """LLM provider using the Anthropic Claude API."""

    def __init__(self, timeout_s: float = 30.0) -> None:
        self._timeout_s = timeout_s

    @property
    def provider_id(self) -> str:
        return "anthropic"

    @property
    def default_model(self) -> str:
        return "claude-sonnet-4-20250514"

    @property
    def env_var(self) -> str:
        return "ANTHROPIC_API_KEY"

    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int = MAX_TOKENS,
    ) -> str:
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            msg = "ANTHROPIC_API_KEY environment variable is required"
            raise NotConfiguredError(msg, self.provider_id)

        try:
            import anthropic
        except ImportError:
            msg = (
                "anthropic is required for the anthropic provider. "
                "Install with: pip install 'profile-search-engine[anthropic]'"
            )
            raise ImportError(msg) from None

        client = anthropic.AsyncAnthropic(api_key=api_key, timeout=self._timeout_s)
        use_model = model or self.default_model
        kwargs = {}
        if system:
            kwargs["system"] = system
        if temperature is not None:
            kwargs["temperature"] = temperature

        logger.info("Sending prompt to Anthropic API (%s)...", use_model)
        try:
            message = await client.messages.create(
                model=use_model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}],
                **kwargs,
            )
        except anthropic.RateLimitError as e:
            raise RateLimitedError(str(e), self.provider_id) from e
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as e:
            raise NotConfiguredError(str(e), self.provider_id) from e
        except anthropic.APIStatusError as e:
            raise TransientError(str(e), self.provider_id, status_code=e.status_code) from e
        except anthropic.APIError as e:
            raise TransientError(str(e), self.provider_id) from e

        return message.content[0].text  # type: ignore[union-attr]
