"""Heuristic relevance scoring for search results.

Score range: 0.0-1.0 (clamped). Base 0.5, plus bonuses for a profile URL,
query-term overlap, professional titles and a location mention.
"""

import logging

from profile_search.core.schemas import SearchResult

logger = logging.getLogger(__name__)

BASE_SCORE = 0.5
PROFILE_URL_BONUS = 0.3
TITLE_OVERLAP_WEIGHT = 0.3
SNIPPET_OVERLAP_WEIGHT = 0.2
KEYWORD_BONUS = 0.1
KEYWORD_BONUS_CAP = 0.2
LOCATION_BONUS = 0.1

PROFESSIONAL_KEYWORDS = (
    "ceo", "cto", "manager", "director", "engineer", "developer", "analyst", "consultant",
)

_PROFILE_PATH = "linkedin.com/in/"


def score_result(
    title: str,
    snippet: str,
    url: str,
    query: str,
    location: str | None = None,
) -> float:
    """Score a single result against the query that produced it."""
    score = BASE_SCORE
    title_lower = (title or "").lower()
    snippet_lower = (snippet or "").lower()

    if url and _PROFILE_PATH in url:
        score += PROFILE_URL_BONUS

    terms = [t for t in (query or "").lower().split() if len(t) > 2]
    if terms:
        title_hits = sum(1 for t in terms if t in title_lower)
        snippet_hits = sum(1 for t in terms if t in snippet_lower)
        score += title_hits / len(terms) * TITLE_OVERLAP_WEIGHT
        score += snippet_hits / len(terms) * SNIPPET_OVERLAP_WEIGHT

    keyword_hits = sum(
        1 for kw in PROFESSIONAL_KEYWORDS if kw in title_lower or kw in snippet_lower
    )
    score += min(keyword_hits * KEYWORD_BONUS, KEYWORD_BONUS_CAP)

    if location:
        location_lower = location.lower()
        if location_lower in title_lower or location_lower in snippet_lower:
            score += LOCATION_BONUS

    return max(0.0, min(1.0, score))


def score_results(
    results: list[SearchResult],
    query: str,
    location: str | None = None,
) -> list[SearchResult]:
    """Fill in relevance scores for results that lack one. Order is preserved."""
    return [
        r if r.relevance_score is not None
        else r.model_copy(update={
            "relevance_score": score_result(r.title, r.snippet, r.url, query, location),
        })
        for r in results
    ]
