"""Abstract base classes for search and enrichment providers."""

from abc import ABC, abstractmethod

import httpx

from profile_search.core.errors import (
    NotConfiguredError,
    ProviderError,
    RateLimitedError,
    TransientError,
)
from profile_search.core.schemas import Contact, SearchResult


class SearchProvider(ABC):
    """Base class that every web search provider must implement."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'google')."""

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True if the credentials this provider needs are present."""

    @abstractmethod
    async def search(
        self,
        query: str,
        location_code: str | None = None,
        max_results: int = 10,
    ) -> list[SearchResult]:
        """Run one query and return raw results.

        Raises:
            NotConfiguredError: Credentials missing or rejected.
            RateLimitedError: Upstream answered 429.
            TransientError: Network failure, timeout or upstream error.
        """

    async def close(self) -> None:  # noqa: B027
        """Release any open connections."""


class EnrichmentProvider(ABC):
    """Base class for contact-data lookups."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'apollo')."""

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True if the credentials this provider needs are present."""

    @abstractmethod
    async def enrich_contact(
        self,
        name: str,
        company: str | None = None,
        email: str | None = None,
        linkedin_url: str | None = None,
    ) -> Contact | None:
        """Look up contact details. None means no confident match."""

    async def close(self) -> None:  # noqa: B027
        """Release any open connections."""


def classify_http_error(provider: str, exc: Exception) -> ProviderError:
    """Map an httpx failure onto the provider error taxonomy."""
    if isinstance(exc, httpx.TimeoutException):
        return TransientError(f"{provider} request timed out: {exc}", provider)
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 429:
            retry_after = exc.response.headers.get("Retry-After")
            try:
                retry_after_s = float(retry_after) if retry_after else None
            except ValueError:
                retry_after_s = None
            return RateLimitedError(
                f"{provider} rate limit exceeded (HTTP 429)", provider, retry_after_s,
            )
        if status in (401, 403):
            return NotConfiguredError(
                f"{provider} rejected the credentials (HTTP {status})", provider,
            )
        return TransientError(
            f"{provider} returned HTTP {status}", provider, status_code=status,
        )
    if isinstance(exc, httpx.RequestError):
        return TransientError(f"{provider} connection failed: {exc}", provider)
    return TransientError(f"{provider} request failed: {exc}", provider)
