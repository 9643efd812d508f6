"""Abstract base class for LLM providers, prompts and response parsers."""

import json
import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Any

from profile_search.core.schemas import FilterOutcome, QueryExpansion, SearchResult

logger = logging.getLogger(__name__)

EXPANSION_TEMPERATURE = 0.7
FILTER_TEMPERATURE = 0.3
MAX_TOKENS = 2000

EXPANSION_SYSTEM_PROMPT = (
    "You are an expert at generating search queries for professional profile "
    "discovery. Generate diverse, relevant search queries that will help find "
    "professional profiles."
)

FILTER_SYSTEM_PROMPT = (
    "You are an expert at filtering search results for relevance to professional "
    "profile queries. Analyze each result and determine if it is relevant to "
    "finding professional profiles."
)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_LIST_MARKER = re.compile(r"^\s*(?:\d+[.)]|[-*])\s*")


def build_expansion_prompt(
    original: str,
    max_variants: int,
    context: str | None = None,
    location: str | None = None,
) -> str:
    where = f" in {location}" if location else ""
    extra = f"\n\nAdditional context: {context}" if context else ""
    return (
        f'Generate {max_variants} diverse search queries to find professional profiles '
        f'related to: "{original}"{where}\n\n'
        "The queries should:\n"
        "1. Use different keyword combinations and synonyms\n"
        "2. Include job titles, company names, and industry terms\n"
        "3. Be specific enough to find relevant profiles\n"
        "4. Vary in approach (broad vs specific, different angles)\n"
        f"5. Include location-specific variations if a location is specified{extra}\n\n"
        "Return ONLY a JSON object with this structure:\n"
        "{\n"
        '  "expandedQueries": ["query1", "query2"],\n'
        '  "confidence": 0.8,\n'
        '  "reasoning": "Brief explanation of the approach"\n'
        "}"
    )


def build_filter_prompt(
    results: list[SearchResult],
    original_query: str,
    threshold: float,
) -> str:
    listing = "\n".join(
        f"{i}: {r.title} - {r.snippet} ({r.url})" for i, r in enumerate(results)
    )
    return (
        f'Filter these search results for relevance to the query: "{original_query}"\n\n'
        f"Results to filter:\n{listing}\n\n"
        "Keep only results that:\n"
        "1. Are likely to contain professional profiles or professional information\n"
        f"2. Match the search intent with confidence >= {threshold}\n"
        "3. Are not spam, ads, or irrelevant content\n\n"
        "Return ONLY a JSON object with this structure:\n"
        "{\n"
        '  "relevantIndices": [0, 2, 5],\n'
        '  "reasoning": "Brief explanation of filtering decisions"\n'
        "}"
    )


def _strip_fences(raw_text: str) -> str:
    cleaned = re.sub(r"^```(?:json)?\s*\n?", "", raw_text.strip())
    return re.sub(r"\n?```\s*$", "", cleaned)


def _json_object(raw_text: str) -> dict[str, Any] | None:
    """Return the first {...} block in raw_text, or None if there is none.

    Raises:
        ValueError: A block was found but is not a JSON object.
    """
    match = _JSON_OBJECT.search(_strip_fences(raw_text))
    if match is None:
        return None
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        msg = "expected a JSON object"
        raise ValueError(msg)
    return data


def _clean_variants(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    seen: set[str] = set()
    variants: list[str] = []
    for v in values:
        if not isinstance(v, str):
            continue
        v = v.strip()
        if v and v not in seen:
            seen.add(v)
            variants.append(v)
    return variants


def parse_expansion_response(raw_text: str) -> QueryExpansion:
    """Parse a query expansion reply.

    JSON first; otherwise numbered or bulleted lines are taken as variants.
    Anything else yields no variants with zero confidence.
    """
    try:
        data = _json_object(raw_text)
    except ValueError as e:
        logger.warning("Failed to parse query expansion response: %s", e)
        return QueryExpansion(variants=[], confidence=0.0, reasoning="Failed to parse response")

    if data is not None:
        try:
            confidence = float(data.get("confidence", 0.5))
        except (TypeError, ValueError):
            confidence = 0.5
        reasoning = data.get("reasoning")
        return QueryExpansion(
            variants=_clean_variants(data.get("expandedQueries")),
            confidence=max(0.0, min(1.0, confidence)),
            reasoning=reasoning if isinstance(reasoning, str) else None,
        )

    lines = [
        _LIST_MARKER.sub("", line).replace('"', "").strip()
        for line in raw_text.splitlines()
        if _LIST_MARKER.match(line) or '"' in line
    ]
    variants = _clean_variants(lines)
    if not variants:
        logger.warning("Query expansion response had no usable queries")
        return QueryExpansion(variants=[], confidence=0.0, reasoning="Failed to parse response")
    return QueryExpansion(variants=variants, confidence=0.6, reasoning="Parsed from text format")


def parse_filter_response(raw_text: str, results: list[SearchResult]) -> FilterOutcome:
    """Map a relevantIndices reply back onto results.

    Out-of-range or non-integer indices are dropped. A reply that cannot be
    parsed keeps every result.
    """
    try:
        data = _json_object(raw_text)
    except ValueError as e:
        logger.warning("Failed to parse result filter response: %s", e)
        data = None

    if data is None:
        return FilterOutcome(
            kept=list(results),
            removed_count=0,
            reasoning="Failed to parse filter response, returned all results",
        )

    indices = data.get("relevantIndices")
    if not isinstance(indices, list):
        indices = []
    kept: list[SearchResult] = []
    used: set[int] = set()
    for i in indices:
        if isinstance(i, bool) or not isinstance(i, int):
            continue
        if 0 <= i < len(results) and i not in used:
            used.add(i)
            kept.append(results[i])

    reasoning = data.get("reasoning")
    return FilterOutcome(
        kept=kept,
        removed_count=len(results) - len(kept),
        reasoning=reasoning if isinstance(reasoning, str) else None,
    )


class LLMProvider(ABC):
    """Base class that every LLM provider must implement."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'openai')."""

    @property
    @abstractmethod
    def default_model(self) -> str:
        """The default model ID used when no override is specified."""

    @property
    @abstractmethod
    def env_var(self) -> str | None:
        """Environment variable this provider needs, or None if not needed."""

    def is_configured(self) -> bool:
        if self.env_var is None:
            return True
        return bool(os.environ.get(self.env_var))

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int = MAX_TOKENS,
    ) -> str:
        """Send a prompt and return the raw response text.

        Raises:
            NotConfiguredError: Credentials missing or rejected.
            RateLimitedError: Upstream answered 429.
            TransientError: Network failure, timeout or upstream error.
            ImportError: The provider SDK is not installed.
        """
