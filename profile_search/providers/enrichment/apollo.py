"""Apollo.io contact enrichment provider."""

import logging
import os
import re
from typing import Any

import httpx

from profile_search.core.errors import NotConfiguredError, ProviderError, TransientError
from profile_search.core.schemas import Contact, Organization
from profile_search.providers.base import EnrichmentProvider, classify_http_error

logger = logging.getLogger(__name__)

APOLLO_BASE_URL = "https://api.apollo.io/v1"

NAME_WEIGHT = 0.5
COMPANY_WEIGHT = 0.3
EMAIL_MATCH_BONUS = 0.4
LINKEDIN_MATCH_BONUS = 0.3
MATCH_THRESHOLD = 0.6
SEARCH_LIMIT = 5


def name_similarity(a: str, b: str) -> float:
    """Share of words in one name that appear (as substrings) in the other."""
    words_a = re.sub(r"[^a-z\s]", "", a.lower()).split()
    words_b = re.sub(r"[^a-z\s]", "", b.lower()).split()
    if not words_a or not words_b:
        return 0.0
    if words_a == words_b:
        return 1.0
    hits_a = sum(1 for w in words_a if any(w in o or o in w for o in words_b))
    hits_b = sum(1 for w in words_b if any(w in o or o in w for o in words_a))
    return max(hits_a / len(words_a), hits_b / len(words_b))


def string_similarity(a: str, b: str) -> float:
    """1.0 for equal, 0.8 for containment, else word overlap ratio."""
    s1 = re.sub(r"[^a-z0-9\s]", "", a.lower()).strip()
    s2 = re.sub(r"[^a-z0-9\s]", "", b.lower()).strip()
    if not s1 or not s2:
        return 0.0
    if s1 == s2:
        return 1.0
    if s1 in s2 or s2 in s1:
        return 0.8
    words1, words2 = s1.split(), s2.split()
    overlap = sum(1 for w in words1 if w in words2)
    return overlap / max(len(words1), len(words2))


def parse_person(person: dict[str, Any]) -> Contact:
    """Convert an Apollo person payload into a Contact."""
    first = person.get("first_name")
    last = person.get("last_name")
    name = person.get("name") or f"{first or ''} {last or ''}".strip() or None

    phones = person.get("phone_numbers") or []
    phone = phones[0].get("sanitized_number") if phones else None

    organization = None
    company = None
    org = person.get("organization")
    if org:
        employees = org.get("estimated_num_employees")
        organization = Organization(
            name=org.get("name"),
            website_url=org.get("website_url"),
            industry=org.get("industry"),
            size=str(employees) if employees is not None else None,
        )
        company = org.get("name")

    return Contact(
        id=person.get("id"),
        first_name=first,
        last_name=last,
        name=name,
        title=person.get("title"),
        company=company,
        email=person.get("email"),
        phone=phone,
        linkedin_url=person.get("linkedin_url"),
        twitter_url=person.get("twitter_url"),
        facebook_url=person.get("facebook_url"),
        organization=organization,
    )


def find_best_match(
    contacts: list[Contact],
    name: str,
    company: str | None = None,
    email: str | None = None,
    linkedin_url: str | None = None,
) -> Contact | None:
    """Return the highest scoring contact, or None if nothing clears the threshold."""
    best: Contact | None = None
    best_score = 0.0
    for contact in contacts:
        score = 0.0
        if contact.name:
            score += name_similarity(contact.name, name) * NAME_WEIGHT
        if company and contact.company:
            score += string_similarity(contact.company, company) * COMPANY_WEIGHT
        if email and contact.email and contact.email.lower() == email.lower():
            score += EMAIL_MATCH_BONUS
        if linkedin_url and contact.linkedin_url == linkedin_url:
            score += LINKEDIN_MATCH_BONUS
        if score > best_score:
            best, best_score = contact, score
    return best if best_score > MATCH_THRESHOLD else None


class ApolloEnrichmentProvider(EnrichmentProvider):
    """Looks up contact details through the Apollo people API."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str = APOLLO_BASE_URL,
        timeout_s: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._client = client

    @property
    def provider_id(self) -> str:
        return "apollo"

    @property
    def api_key(self) -> str | None:
        return self._api_key or os.environ.get("APOLLO_API_KEY")

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

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.is_configured():
            msg = "APOLLO_API_KEY environment variable is required"
            raise NotConfiguredError(msg, self.provider_id)
        response = await self._get_client().post(
            f"{self._base_url}{path}",
            json=payload,
            headers={
                "Cache-Control": "no-cache",
                "Content-Type": "application/json",
                "X-Api-Key": self.api_key or "",
            },
        )
        response.raise_for_status()
        try:
            return response.json()  # type: ignore[no-any-return]
        except ValueError as e:
            msg = f"Apollo returned a non-JSON body for {path}"
            raise TransientError(msg, self.provider_id, status_code=response.status_code) from e

    async def search_people(
        self,
        *,
        keywords: str | None = None,
        organization_names: list[str] | None = None,
        person_titles: list[str] | None = None,
        person_locations: list[str] | None = None,
        limit: int = 25,
        page: int = 1,
    ) -> list[Contact]:
        payload: dict[str, Any] = {"page": page, "per_page": min(limit, 100)}
        if keywords:
            payload["q_keywords"] = keywords
        if organization_names:
            payload["organization_names"] = organization_names
        if person_titles:
            payload["person_titles"] = person_titles
        if person_locations:
            payload["person_locations"] = person_locations

        try:
            data = await self._post("/mixed_people/search", payload)
        except httpx.HTTPError as e:
            raise classify_http_error(self.provider_id, e) from e

        people = data.get("people")
        if not isinstance(people, list):
            return []
        return [parse_person(p) for p in people]

    async def get_person_by_email(self, email: str) -> Contact | None:
        """Direct lookup. A 404 means no such person and returns None."""
        try:
            data = await self._post("/people/match", {"email": email})
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                logger.info("Person not found in Apollo for %s", email)
                return None
            raise classify_http_error(self.provider_id, e) from e
        except httpx.HTTPError as e:
            raise classify_http_error(self.provider_id, e) from e

        person = data.get("person")
        return parse_person(person) if person else None

    async def enrich_contact(
        self,
        name: str,
        company: str | None = None,
        email: str | None = None,
        linkedin_url: str | None = None,
    ) -> Contact | None:
        if not self.is_configured():
            msg = "APOLLO_API_KEY environment variable is required"
            raise NotConfiguredError(msg, self.provider_id)

        if email:
            try:
                contact = await self.get_person_by_email(email)
            except ProviderError as e:
                logger.warning("Apollo email lookup failed for %s, trying search: %s", email, e)
            else:
                if contact is not None:
                    return contact

        contacts = await self.search_people(
            keywords=name,
            organization_names=[company] if company else None,
            limit=SEARCH_LIMIT,
        )
        match = find_best_match(contacts, name, company, email, linkedin_url)
        if match is not None:
            logger.info("Matched '%s' to Apollo contact '%s'", name, match.name)
        else:
            logger.debug("No confident Apollo match for '%s' (%d candidates)", name, len(contacts))
        return match
