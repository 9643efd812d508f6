"""Bing Web Search v7 provider."""

import logging
import os
from typing import Any

import httpx

from profile_search.core.errors import NotConfiguredError, TransientError
from profile_search.core.schemas import SearchResult
from profile_search.pipeline.scorer import score_result
from profile_search.providers.base import SearchProvider, classify_http_error
from profile_search.providers.search import profile_query

logger = logging.getLogger(__name__)

BING_SEARCH_URL = "https://api.bing.microsoft.com/v7.0/search"
_MAX_PAGE_SIZE = 50


class BingSearchProvider(SearchProvider):
    """Search provider backed by the Bing Web Search API."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        market: str = "en-US",
        base_url: str = BING_SEARCH_URL,
        timeout_s: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._market = market
        self._base_url = base_url
        self._timeout_s = timeout_s
        self._client = client

    @property
    def provider_id(self) -> str:
        return "bing"

    @property
    def api_key(self) -> str | None:
        return self._api_key or os.environ.get("BING_SEARCH_API_KEY")

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_s)
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
            msg = "BING_SEARCH_API_KEY environment variable is required"
            raise NotConfiguredError(msg, self.provider_id)

        params = {
            "q": profile_query(query, location_code),
            "count": str(min(max_results, _MAX_PAGE_SIZE)),
            "mkt": self._market,
            "responseFilter": "Webpages",
            "safeSearch": "Off",
        }
        headers = {"Ocp-Apim-Subscription-Key": self.api_key or ""}

        try:
            response = await self._get_client().get(
                self._base_url, params=params, headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Bing search failed for '%s': %s", query, e)
            raise classify_http_error(self.provider_id, e) from e

        try:
            payload = response.json()
        except ValueError as e:
            logger.warning("Bing returned a non-JSON body for '%s'", query)
            msg = "Bing search returned a non-JSON body"
            raise TransientError(msg, self.provider_id, status_code=response.status_code) from e

        results = self._parse(payload, query, location_code)
        logger.info(
            "Bing search '%s' (%s): %d results",
            query, location_code or "any", len(results),
        )
        return results

    def _parse(
        self, data: dict[str, Any], query: str, location: str | None,
    ) -> list[SearchResult]:
        pages = (data.get("webPages") or {}).get("value")
        if not isinstance(pages, list):
            return []
        results: list[SearchResult] = []
        for page in pages:
            url = page.get("url") or ""
            if not url:
                continue
            title = page.get("name") or ""
            snippet = page.get("snippet") or ""
            results.append(SearchResult(
                title=title,
                url=url,
                snippet=snippet,
                display_url=page.get("displayUrl") or "",
                source=self.provider_id,
                relevance_score=score_result(title, snippet, url, query, location),
            ))
        return results
