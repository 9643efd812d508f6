"""LLM provider registry with lazy loading.

Usage:
    from profile_search.providers.llm import get_provider, parse_expansion_response

    provider = get_provider("openai")
    raw = await provider.complete(prompt)
    expansion = parse_expansion_response(raw)
"""

from __future__ import annotations

import importlib

from profile_search.providers.llm.base import (
    LLMProvider,
    parse_expansion_response,
    parse_filter_response,
)

__all__ = [
    "PREFERENCE_ORDER",
    "LLMProvider",
    "available_providers",
    "get_provider",
    "parse_expansion_response",
    "parse_filter_response",
]

# Lazy registry: maps provider name → (module_path, class_name)
_REGISTRY: dict[str, tuple[str, str]] = {
    "anthropic": ("profile_search.providers.llm.anthropic", "AnthropicProvider"),
    "openai": ("profile_search.providers.llm.openai", "OpenAIProvider"),
    "gemini": ("profile_search.providers.llm.gemini", "GeminiProvider"),
    "openrouter": ("profile_search.providers.llm.openrouter", "OpenRouterProvider"),
    "ollama": ("profile_search.providers.llm.ollama", "OllamaProvider"),
}

# Order used to pick a default when none is configured.
PREFERENCE_ORDER = ("openai", "gemini", "anthropic", "openrouter", "ollama")


def get_provider(name: str, **kwargs: object) -> LLMProvider:
    """Instantiate and return an LLM provider by name.

    Args:
        name: Provider identifier (anthropic, gemini, ollama, openai, openrouter).
        **kwargs: Passed to the provider constructor (e.g. timeout_s).

    Raises:
        ValueError: If the provider name is unknown.
    """
    if name not in _REGISTRY:
        valid = ", ".join(sorted(_REGISTRY))
        msg = f"Unknown LLM provider '{name}'. Available: {valid}"
        raise ValueError(msg)

    module_path, class_name = _REGISTRY[name]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls(**kwargs)  # type: ignore[no-any-return]


def available_providers() -> list[str]:
    """Return sorted list of registered provider names."""
    return sorted(_REGISTRY)
