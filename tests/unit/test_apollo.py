"""Tests for Apollo contact enrichment and match scoring."""

import json
from unittest.mock import patch

import httpx
import pytest

from profile_search.core.errors import NotConfiguredError, TransientError
from profile_search.core.schemas import Contact
from profile_search.providers.enrichment.apollo import (
    ApolloEnrichmentProvider,
    find_best_match,
    name_similarity,
    parse_person,
    string_similarity,
)

JANE = {
    "id": "p1",
    "first_name": "Jane",
    "last_name": "Doe",
    "name": "Jane Doe",
    "title": "Data Analyst",
    "email": "jane@acme.com",
    "linkedin_url": "https://www.linkedin.com/in/jane-doe",
    "phone_numbers": [{"sanitized_number": "+442071234567"}],
    "organization": {
        "name": "Acme",
        "website_url": "https://acme.com",
        "industry": "software",
        "estimated_num_employees": 250,
    },
}

JOHN = {"id": "p2", "name": "John Smith", "organization": {"name": "Globex"}}


class FakeApollo:
    """Routes Apollo API paths to canned responses and records requests."""

    def __init__(self, match_status: int = 200, match_body: object = None,
                 people: list[dict[str, object]] | None = None, search_status: int = 200) -> None:
        self.match_status = match_status
        self.match_body = match_body if match_body is not None else {"person": JANE}
        self.people = people if people is not None else [JOHN, JANE]
        self.search_status = search_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/people/match"):
            return httpx.Response(self.match_status, json=self.match_body)
        if request.url.path.endswith("/mixed_people/search"):
            return httpx.Response(self.search_status, json={"people": self.people})
        return httpx.Response(404, json={})

    def provider(self) -> ApolloEnrichmentProvider:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self))
        return ApolloEnrichmentProvider("test-key", client=client)

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


# ---------------------------------------------------------------------------
# Similarity helpers
# ---------------------------------------------------------------------------
class TestSimilarity:
    def test_name_identical(self) -> None:
        assert name_similarity("Jane Doe", "jane doe") == 1.0

    def test_name_partial(self) -> None:
        assert name_similarity("Jane Doe", "Jane Smith") == 0.5

    def test_name_subset(self) -> None:
        assert name_similarity("Jane Doe", "Jane Q. Doe") == 1.0

    def test_name_empty(self) -> None:
        assert name_similarity("", "Jane") == 0.0

    def test_string_identical_after_cleanup(self) -> None:
        assert string_similarity("Acme, Inc.", "acme inc") == 1.0

    def test_string_containment(self) -> None:
        assert string_similarity("Acme", "Acme Corporation") == 0.8

    def test_string_word_overlap(self) -> None:
        assert string_similarity("big data co", "small data co") == pytest.approx(2 / 3)


class TestFindBestMatch:
    def test_picks_highest_score(self) -> None:
        contacts = [parse_person(JOHN), parse_person(JANE)]
        match = find_best_match(contacts, "Jane Doe", "Acme")
        assert match is not None
        assert match.id == "p1"

    def test_name_alone_not_enough(self) -> None:
        # 1.0 * 0.5 does not clear 0.6
        assert find_best_match([parse_person(JANE)], "Jane Doe") is None

    def test_email_bonus(self) -> None:
        match = find_best_match([parse_person(JANE)], "Jane Doe", email="JANE@acme.com")
        assert match is not None

    def test_linkedin_bonus(self) -> None:
        match = find_best_match(
            [parse_person(JANE)], "Jane Doe",
            linkedin_url="https://www.linkedin.com/in/jane-doe",
        )
        assert match is not None

    def test_empty(self) -> None:
        assert find_best_match([], "Jane Doe", "Acme") is None


class TestParsePerson:
    def test_full_payload(self) -> None:
        contact = parse_person(JANE)
        assert contact.phone == "+442071234567"
        assert contact.company == "Acme"
        assert contact.organization is not None
        assert contact.organization.size == "250"

    def test_name_from_parts(self) -> None:
        contact = parse_person({"first_name": "Ana", "last_name": "Lima"})
        assert contact.name == "Ana Lima"
        assert contact.phone is None
        assert contact.organization is None


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------
class TestApolloEnrichmentProvider:
    def test_configuration(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            assert not ApolloEnrichmentProvider().is_configured()
        with patch.dict("os.environ", {"APOLLO_API_KEY": "k"}):
            assert ApolloEnrichmentProvider().is_configured()

    async def test_not_configured(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(NotConfiguredError):
                await ApolloEnrichmentProvider().enrich_contact("Jane Doe")

    async def test_email_lookup_first(self) -> None:
        fake = FakeApollo()
        contact = await fake.provider().enrich_contact("Jane Doe", email="jane@acme.com")
        assert contact is not None
        assert contact.email == "jane@acme.com"
        assert fake.paths() == ["/v1/people/match"]
        assert fake.requests[0].headers["X-Api-Key"] == "test-key"

    async def test_email_not_found_falls_back_to_search(self) -> None:
        fake = FakeApollo(match_status=404)
        contact = await fake.provider().enrich_contact(
            "Jane Doe", company="Acme", email="jane@acme.com",
        )
        assert contact is not None
        assert contact.id == "p1"
        assert fake.paths() == ["/v1/people/match", "/v1/mixed_people/search"]

        payload = json.loads(fake.requests[1].content)
        assert payload["q_keywords"] == "Jane Doe"
        assert payload["organization_names"] == ["Acme"]
        assert payload["per_page"] == 5

    async def test_email_error_falls_back_to_search(self) -> None:
        fake = FakeApollo(match_status=500)
        contact = await fake.provider().enrich_contact("Jane Doe", "Acme", "jane@acme.com")
        assert contact is not None
        assert fake.paths()[-1] == "/v1/mixed_people/search"

    async def test_no_confident_match(self) -> None:
        fake = FakeApollo(people=[JOHN])
        assert await fake.provider().enrich_contact("Jane Doe", "Acme") is None

    async def test_search_failure_propagates(self) -> None:
        fake = FakeApollo(search_status=503)
        with pytest.raises(TransientError):
            await fake.provider().enrich_contact("Jane Doe", "Acme")

    async def test_html_body_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>captcha</html>")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        provider = ApolloEnrichmentProvider("test-key", client=client)
        with pytest.raises(TransientError) as exc_info:
            await provider.search_people(keywords="analyst")
        assert exc_info.value.provider == "apollo"

    async def test_search_people_parses(self) -> None:
        fake = FakeApollo()
        contacts = await fake.provider().search_people(keywords="analyst", limit=500)
        assert [c.id for c in contacts] == ["p2", "p1"]
        assert all(isinstance(c, Contact) for c in contacts)
        assert json.loads(fake.requests[0].content)["per_page"] == 100
