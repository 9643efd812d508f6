"""Google Custom Search JSON API provider."""

import logging
import os
import time
from typing import Any

import httpx

from profile_search.core.errors import NotConfiguredError, TransientError
from profile_search.core.schemas import SearchResult
from profile_search.pipeline.scorer import score_result
from profile_search.providers.base import SearchProvider, classify_http_error
from profile_search.providers.search import profile_query

logger = logging.getLogger(__name__)

GOOGLE_CSE_URL = "https://www.googleapis.com/customsearch/v1"
_MAX_PAGE_SIZE = 10


class GoogleSearchProvider(SearchProvider):
    """Search provider backed by a Google Programmable Search Engine."""

    def __init__(
        self,
        api_key: str | None = None,
        engine_id: str | None = None,
        *,
        base_url: str = GOOGLE_CSE_URL,
        timeout_s: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._engine_id = engine_id
        self._base_url = base_url
        self._timeout_s = timeout_s
        self._client = client

    @property
    def provider_id(self) -> str:
        return "google"

    @property
    def api_key(self) -> str | None:
        return self._api_key or os.environ.get("GOOGLE_SEARCH_API_KEY")

    @property
    def engine_id(self) -> str | None:
        return self._engine_id or os.environ.get("GOOGLE_SEARCH_ENGINE_ID")

    def is_configured(self) -> bool:
        return bool(self.api_key and self.engine_id)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout_s,
                headers={"User-Agent": "Mozilla/5.0 (compatible; ProfileSearch/1.0)"},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def search(
        self,
        query: str,
        location_code: str | None = None,
        max_results: int = 10,
    ) -> list[SearchResult]:
        if not self.is_configured():
            msg = "GOOGLE_SEARCH_API_KEY and GOOGLE_SEARCH_ENGINE_ID are required"
            raise NotConfiguredError(msg, self.provider_id)

        params = {
            "key": self.api_key,
            "cx": self.engine_id,
            "q": profile_query(query, location_code),
            "num": str(min(max_results, _MAX_PAGE_SIZE)),
            "safe": "off",
            "fields": "items(title,link,snippet,displayLink,pagemap)",
        }

        started = time.monotonic()
        try:
            response = await self._get_client().get(self._base_url, params=params)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Google search failed for '%s': %s", query, e)
            raise classify_http_error(self.provider_id, e) from e

        try:
            payload = response.json()
        except ValueError as e:
            logger.warning("Google returned a non-JSON body for '%s'", query)
            msg = "Google search returned a non-JSON body"
            raise TransientError(msg, self.provider_id, status_code=response.status_code) from e

        results = self._parse(payload, query, location_code)
        logger.info(
            "Google search '%s' (%s): %d results in %.0fms",
            query, location_code or "any", len(results),
            (time.monotonic() - started) * 1000,
        )
        return results

    def _parse(
        self, data: dict[str, Any], query: str, location: str | None,
    ) -> list[SearchResult]:
        items = data.get("items")
        if not isinstance(items, list):
            return []
        results: list[SearchResult] = []
        for item in items:
            url = item.get("link") or ""
            if not url:
                continue
            title = item.get("title") or ""
            snippet = item.get("snippet") or ""
            results.append(SearchResult(
                title=title,
                url=url,
                snippet=snippet,
                display_url=item.get("displayLink") or "",
                source=self.provider_id,
                relevance_score=score_result(title, snippet, url, query, location),
            ))
        return results
