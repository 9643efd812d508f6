"""No-op search provider."""

import logging

from profile_search.core.schemas import SearchResult
from profile_search.providers.base import SearchProvider

logger = logging.getLogger(__name__)


class FallbackSearchProvider(SearchProvider):
    """Always configured, always empty. Only used when explicitly selected."""

    @property
    def provider_id(self) -> str:
        return "fallback"

    def is_configured(self) -> bool:
        return True

    async def search(
        self,
        query: str,
        location_code: str | None = None,
        max_results: int = 10,
    ) -> list[SearchResult]:
        logger.warning("Fallback search provider returns no results for '%s'", query)
        return []
