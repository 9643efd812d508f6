"""URL normalization and result deduplication."""

import logging
from urllib.parse import urlsplit

from profile_search.core.schemas import SearchResult

logger = logging.getLogger(__name__)


def normalize_url(url: str) -> str:
    """Reduce a URL to scheme://host/path. Query and fragment are dropped.

    Input that does not parse as an absolute URL is returned unchanged.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


def dedupe_results(results: list[SearchResult]) -> list[SearchResult]:
    """Keep the first result per normalized URL, preserving order."""
    return DeduplicationFilter()(results)


class DeduplicationFilter:
    """Remove duplicates by normalized URL.

    Stateful: tracks seen URLs across calls within the same filter instance.
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def __call__(self, results: list[SearchResult]) -> list[SearchResult]:
        unique: list[SearchResult] = []
        for r in results:
            key = normalize_url(r.url)
            if key not in self._seen:
                self._seen.add(key)
                unique.append(r)
        removed = len(results) - len(unique)
        if removed:
            logger.debug("DeduplicationFilter: removed %d duplicates", removed)
        return unique

    def reset(self) -> None:
        self._seen.clear()
