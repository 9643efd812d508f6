"""Fail-open AI relevance filtering."""

import logging

from profile_search.core.schemas import SearchResult
from profile_search.providers.gateway import ProviderGateway

logger = logging.getLogger(__name__)


async def filter_with_ai(
    gateway: ProviderGateway,
    results: list[SearchResult],
    query: str,
    threshold: float = 0.7,
    provider: str | None = None,
) -> list[SearchResult]:
    """Keep the results an LLM judges relevant.

    Any failure returns the input unchanged, including a missing SDK or an
    adapter error that was never mapped to a provider error.
    """
    if not results:
        return results
    try:
        outcome = await gateway.filter_results(results, query, threshold, provider)
    except Exception as e:
        logger.warning("AI filtering failed - keeping all %d results: %s", len(results), e)
        return results
    return outcome.kept
