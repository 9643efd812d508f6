"""Extract person details from search result titles and snippets.

Profile titles usually read "Name - Headline - Company | LinkedIn" or
"Name | Headline at Company".
"""

import re

from pydantic import BaseModel

from profile_search.core.schemas import ProfileRecord, SearchResult

_SITE_SUFFIX = re.compile(r"\s*[-|]\s*LinkedIn\s*$", re.IGNORECASE)
_SEPARATOR = re.compile(r"\s+-\s+|\s*\|\s*")

# Most specific first.
_COMPANY_PATTERNS = (
    re.compile(r"\bworks?\s+at\s+([^.|·]+)", re.IGNORECASE),
    re.compile(r"\bemployed\s+at\s+([^.|·]+)", re.IGNORECASE),
    re.compile(r"\bat\s+([^.|·]+)", re.IGNORECASE),
)


class ProfileInfo(BaseModel):
    name: str | None = None
    title: str | None = None
    company: str | None = None


def extract_name(title: str) -> str | None:
    """Return the segment before the first separator, without the site suffix."""
    cleaned = _SITE_SUFFIX.sub("", title or "").strip()
    if not cleaned:
        return None
    name = _SEPARATOR.split(cleaned, maxsplit=1)[0].strip()
    return name or None


def extract_headline(title: str) -> str | None:
    """Return the segment after the name, if any."""
    cleaned = _SITE_SUFFIX.sub("", title or "").strip()
    parts = _SEPARATOR.split(cleaned)
    if len(parts) < 2:
        return None
    return parts[1].strip() or None


def extract_company(snippet: str) -> str | None:
    for pattern in _COMPANY_PATTERNS:
        match = pattern.search(snippet or "")
        if match:
            company = match.group(1).strip()
            if company:
                return company
    return None


def extract_profile_info(result: SearchResult) -> ProfileInfo:
    return ProfileInfo(
        name=extract_name(result.title),
        title=extract_headline(result.title),
        company=extract_company(result.snippet),
    )


def build_profile(
    result: SearchResult,
    search_query: str,
    search_location: str | None = None,
    operation_id: str | None = None,
) -> ProfileRecord | None:
    """Turn a result into a storable profile. None when no name can be found."""
    info = extract_profile_info(result)
    if info.name is None:
        return None
    return ProfileRecord(
        name=info.name,
        title=info.title,
        company=info.company,
        location=search_location,
        profile_url=result.url,
        linkedin_url=result.url if "linkedin.com/in/" in result.url else None,
        source=result.source,
        search_query=search_query,
        search_location=search_location or "unknown",
        operation_id=operation_id,
        relevance_score=result.relevance_score,
    )
