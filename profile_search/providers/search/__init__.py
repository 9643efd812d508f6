"""Web search provider registry with lazy loading.

Usage:
    from profile_search.providers.search import get_search_provider

    provider = get_search_provider("google")
    results = await provider.search("data analyst", location_code="London, GB")
"""

from __future__ import annotations

import importlib

from profile_search.providers.base import SearchProvider

__all__ = [
    "SearchProvider",
    "available_search_providers",
    "get_search_provider",
    "profile_query",
]

PROFILE_SITE_FILTER = "site:linkedin.com/in/"

# Lazy registry: maps provider name → (module_path, class_name)
_REGISTRY: dict[str, tuple[str, str]] = {
    "google": ("profile_search.providers.search.google", "GoogleSearchProvider"),
    "bing": ("profile_search.providers.search.bing", "BingSearchProvider"),
    "fallback": ("profile_search.providers.search.fallback", "FallbackSearchProvider"),
}


def get_search_provider(name: str, **kwargs: object) -> SearchProvider:
    """Instantiate and return a search provider by name.

    Raises:
        ValueError: If the provider name is unknown.
    """
    if name not in _REGISTRY:
        valid = ", ".join(sorted(_REGISTRY))
        msg = f"Unknown search provider '{name}'. Available: {valid}"
        raise ValueError(msg)

    module_path, class_name = _REGISTRY[name]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls(**kwargs)  # type: ignore[no-any-return]


def available_search_providers() -> list[str]:
    """Return sorted list of registered provider names."""
    return sorted(_REGISTRY)


def profile_query(query: str, location: str | None = None) -> str:
    """Restrict a query to profile pages and pin it to a location."""
    search = query
    if "site:" not in search:
        search += f" {PROFILE_SITE_FILTER}"
    if location and location not in search:
        search += f' "{location}"'
    return search
