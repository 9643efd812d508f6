"""Google Gemini LLM provider (google-genai SDK)."""

import logging
import os

import httpx

from profile_search.core.errors import (
    NotConfiguredError,
    RateLimitedError,
    TransientError,
)
from profile_search.providers.base import classify_http_error
from profile_search.providers.llm.base import MAX_TOKENS, LLMProvider

logger = logging.getLogger(__name__)


class GeminiProvider(LLMProvider):
    """LLM provider using the Google Gemini API (google-genai SDK)."""

    def __init__(self, timeout_s: float = 30.0) -> None:
        self._timeout_s = timeout_s

    @property
    def provider_id(self) -> str:
        return "gemini"

    @property
    def default_model(self) -> str:
        return "gemini-2.5-flash"

    @property
    def env_var(self) -> str:
        return "GOOGLE_API_KEY"

    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int = MAX_TOKENS,
    ) -> str:
        api_key = os.environ.get("GOOGLE_API_KEY")
        if not api_key:
            msg = "GOOGLE_API_KEY environment variable is required"
            raise NotConfiguredError(msg, self.provider_id)

        try:
            from google import genai
            from google.genai import errors as genai_errors
            from google.genai import types as genai_types
        except ImportError:
            msg = (
                "google-genai is required for the gemini provider. "
                "Install with: pip install 'profile-search-engine[gemini]'"
            )
            raise ImportError(msg) from None

        use_model = model or self.default_model
        client = genai.Client(
            api_key=api_key,
            http_options=genai_types.HttpOptions(timeout=int(self._timeout_s * 1000)),
        )

        logger.info("Sending prompt to Gemini API (%s)...", use_model)
        try:
            response = await client.aio.models.generate_content(
                model=use_model,
                contents=prompt,
                config=genai_types.GenerateContentConfig(
                    system_instruction=system,
                    temperature=temperature,
                    max_output_tokens=max_tokens,
                ),
            )
        except genai_errors.APIError as e:
            if e.code == 429:
                raise RateLimitedError(str(e), self.provider_id) from e
            if e.code in (401, 403):
                raise NotConfiguredError(str(e), self.provider_id) from e
            raise TransientError(str(e), self.provider_id, status_code=e.code) from e
        except httpx.HTTPError as e:
            raise classify_http_error(self.provider_id, e) from e

        return response.text or ""
