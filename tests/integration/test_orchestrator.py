"""Integration test: search operations end to end with fake providers (no network)."""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from profile_search.core.db import SearchStore, init_db
from profile_search.core.errors import StoreError, TransientError
from profile_search.core.schemas import (
    Contact,
    Location,
    OperationConfig,
    OperationStatus,
    SearchOperation,
    SearchResult,
)
from profile_search.locations.manager import LocationRotationManager
from profile_search.pipeline.orchestrator import ORPHANED_ERROR, SearchOrchestrator
from profile_search.pipeline.scorer import score_result
from profile_search.providers.base import EnrichmentProvider, SearchProvider
from profile_search.providers.gateway import ProviderGateway
from profile_search.providers.llm.base import LLMProvider
from profile_search.providers.rate_limit import RateLimiter

# ---------------------------------------------------------------------------
# Fake providers
# ---------------------------------------------------------------------------


class FakeSearch(SearchProvider):
    """Returns canned results per location code; an Exception value is raised."""

    def __init__(
        self,
        by_location: dict[str | None, list[tuple[str, str]] | Exception],
        score: float | None = 0.8,
    ) -> None:
        self._by_location = by_location
        self._score = score
        self.queries: list[tuple[str, str | None]] = []

    @property
    def provider_id(self) -> str:
        return "google"

    def is_configured(self) -> bool:
        return True

    async def search(self, query, location_code=None, max_results=10):  # type: ignore[no-untyped-def]
        self.queries.append((query, location_code))
        hits = self._by_location.get(location_code, [])
        if isinstance(hits, Exception):
            raise hits
        return [
            SearchResult(title=title, url=url, source="google", relevance_score=self._score)
            for title, url in hits
        ]


class FakeLLM(LLMProvider):
    def __init__(
        self,
        expansion: str = "{}",
        filtering: str = "{}",
        filter_error: Exception | None = None,
    ) -> None:
        self._expansion = expansion
        self._filtering = filtering
        self._filter_error = filter_error

    @property
    def provider_id(self) -> str:
        return "openai"

    @property
    def default_model(self) -> str:
        return "fake"

    @property
    def env_var(self) -> str | None:
        return None

    async def complete(self, prompt, *, system=None, model=None, temperature=None, max_tokens=2000):  # type: ignore[no-untyped-def]
        if not prompt.startswith("Filter"):
            return self._expansion
        if self._filter_error is not None:
            raise self._filter_error
        return self._filtering


class FakeEnrichment(EnrichmentProvider):
    @property
    def provider_id(self) -> str:
        return "apollo"

    def is_configured(self) -> bool:
        return True

    async def enrich_contact(self, name, company=None, email=None, linkedin_url=None):  # type: ignore[no-untyped-def]
        if name == "Nobody Known":
            return None
        return Contact(name=name, email=f"{name.split()[0].lower()}@example.com", phone="+44 1")


LONDON_HITS = [
    ("Jane Doe - Data Analyst | LinkedIn", "https://www.linkedin.com/in/jane"),
    ("John Roe - Data Analyst | LinkedIn", "https://www.linkedin.com/in/john"),
]
LEEDS_HITS = [("Ana Lima | Analyst at Acme", "https://www.linkedin.com/in/ana")]


def _location(name: str, priority: int) -> Location:
    return Location(
        name=name,
        country="United Kingdom",
        country_code="GB",
        search_code=f"{name}, GB",
        priority=priority,
    )


def _config(**kw: object) -> OperationConfig:
    defaults: dict[str, object] = {
        "delay_between_searches_ms": 0,
        "enable_query_expansion": False,
        "enable_result_filtering": False,
    }
    defaults.update(kw)
    return OperationConfig(**defaults)  # type: ignore[arg-type]


@pytest.fixture
def store(tmp_path):  # type: ignore[no-untyped-def]
    s = SearchStore(init_db(tmp_path / "test.db"))
    yield s
    s.close()


@pytest.fixture
def locations(store: SearchStore) -> LocationRotationManager:
    for name, priority in (("London", 9), ("Manchester", 5), ("Leeds", 1)):
        store.insert_location(_location(name, priority))
    manager = LocationRotationManager(store)
    manager.initialize()
    return manager


def _orchestrator(
    store: SearchStore,
    locations: LocationRotationManager,
    search: FakeSearch,
    llm: FakeLLM | None = None,
    enrichment: EnrichmentProvider | None = None,
    **kwargs: object,
) -> SearchOrchestrator:
    gateway = ProviderGateway(
        [search],
        {"openai": llm} if llm is not None else {},
        enrichment,
        RateLimiter({}),
    )
    return SearchOrchestrator(store, gateway, locations, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Global search
# ---------------------------------------------------------------------------
class TestGlobalSearch:
    async def test_failed_location_is_skipped(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        search = FakeSearch({
            "London, GB": LONDON_HITS,
            "Manchester, GB": TransientError("upstream 503", "google", status_code=503),
            "Leeds, GB": LEEDS_HITS,
        })
        orchestrator = _orchestrator(store, locations, search)

        op_id = await orchestrator.global_search_profiles("data analyst", _config())
        operation = await orchestrator.wait(op_id)

        assert operation is not None
        assert operation.status == OperationStatus.COMPLETED
        assert operation.progress == 1.0
        assert operation.total_locations == 3
        assert operation.searched_locations == 3
        assert operation.total_results == 3
        assert operation.end_time is not None
        assert orchestrator.active_operations() == []

        manchester = next(loc for loc in store.get_locations() if loc.name == "Manchester")
        assert manchester.total_searches == 1
        assert manchester.success_rate == 0.0
        assert locations.is_blacklisted(manchester.id)

        profiles = store.get_profiles(operation_id=op_id)
        assert sorted(p.name for p in profiles) == ["Ana Lima", "Jane Doe", "John Roe"]
        assert {p.search_location for p in profiles} == {"London", "Leeds"}

        runs = store.get_search_runs(operation_id=op_id)
        assert len(runs) == 3
        assert [r.success for r in runs].count(False) == 1

    async def test_stops_after_consecutive_failures(self, store: SearchStore) -> None:
        for i in range(5):
            store.insert_location(_location(f"City{i}", 10 - i))
        manager = LocationRotationManager(store)
        manager.initialize()
        search = FakeSearch({
            f"City{i}, GB": TransientError("down", "google") for i in range(5)
        })
        orchestrator = _orchestrator(store, manager, search)

        op_id = await orchestrator.global_search_profiles("cto", _config())
        operation = await orchestrator.wait(op_id)

        assert operation is not None
        assert operation.status == OperationStatus.COMPLETED
        assert operation.searched_locations == 3
        assert operation.total_locations == 5
        assert operation.total_results == 0
        assert len(search.queries) == 3

    async def test_zero_locations(self, store: SearchStore, locations: LocationRotationManager) -> None:
        for loc in locations.list_locations():
            locations.blacklist(loc.id)
        orchestrator = _orchestrator(store, locations, FakeSearch({}))

        op_id = await orchestrator.global_search_profiles("cto", _config())
        operation = await orchestrator.wait(op_id)

        assert operation is not None
        assert operation.status == OperationStatus.COMPLETED
        assert operation.total_locations == 0
        assert operation.progress == 1.0

    async def test_max_locations_limits_queue(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        search = FakeSearch({"London, GB": LONDON_HITS})
        orchestrator = _orchestrator(store, locations, search)

        op_id = await orchestrator.global_search_profiles("analyst", _config(max_locations=1))
        operation = await orchestrator.wait(op_id)

        assert operation is not None
        assert operation.total_locations == 1
        assert search.queries == [("analyst", "London, GB")]

    async def test_delay_between_locations(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        slept: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            slept.append(seconds)

        orchestrator = _orchestrator(store, locations, FakeSearch({}), sleep=fake_sleep)
        op_id = await orchestrator.global_search_profiles(
            "analyst", _config(delay_between_searches_ms=45_000),
        )
        await orchestrator.wait(op_id)
        assert slept == [45.0, 45.0]

    async def test_enrichment_writes_back(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        search = FakeSearch({"London, GB": LONDON_HITS})
        orchestrator = _orchestrator(store, locations, search, enrichment=FakeEnrichment())

        op_id = await orchestrator.global_search_profiles(
            "analyst", _config(max_locations=1, enable_contact_enrichment=True),
        )
        await orchestrator.wait(op_id)

        profiles = {p.name: p for p in store.get_profiles(operation_id=op_id)}
        assert profiles["Jane Doe"].email == "jane@example.com"
        assert profiles["Jane Doe"].phone == "+44 1"
        assert profiles["Jane Doe"].enriched_at is not None
        assert profiles["John Roe"].email == "john@example.com"

    async def test_store_failure_fails_operation(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        search = FakeSearch({"London, GB": LONDON_HITS})
        orchestrator = _orchestrator(store, locations, search)

        with patch.object(
            store, "insert_profile", side_effect=StoreError("disk I/O error", "insert_profile"),
        ):
            op_id = await orchestrator.global_search_profiles("analyst", _config())
            operation = await orchestrator.wait(op_id)

        assert operation is not None
        assert operation.status == OperationStatus.FAILED
        assert operation.error == "disk I/O error"

    async def test_filter_failure_keeps_location_results(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        search = FakeSearch({
            code: LONDON_HITS for code in ("London, GB", "Manchester, GB", "Leeds, GB")
        })
        llm = FakeLLM(filter_error=ImportError("No module named 'openai'"))
        orchestrator = _orchestrator(store, locations, search, llm)

        op_id = await orchestrator.global_search_profiles(
            "analyst", _config(enable_result_filtering=True),
        )
        operation = await orchestrator.wait(op_id)

        assert operation is not None
        assert operation.status == OperationStatus.COMPLETED
        assert operation.searched_locations == 3
        assert operation.total_results == 6
        assert locations.blacklisted_ids() == []
        assert all(r.success for r in store.get_search_runs(operation_id=op_id))

    async def test_unscored_results_are_scored(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        search = FakeSearch({"London, GB": LONDON_HITS}, score=None)
        orchestrator = _orchestrator(store, locations, search)

        op_id = await orchestrator.global_search_profiles(
            "data analyst", _config(max_locations=1),
        )
        await orchestrator.wait(op_id)

        profiles = store.get_profiles(operation_id=op_id)
        assert len(profiles) == 2
        titles = {url: title for title, url in LONDON_HITS}
        for profile in profiles:
            title = titles[profile.profile_url]
            expected = score_result(title, "", profile.profile_url, "data analyst", "London")
            assert profile.relevance_score == expected


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------
class TestCancel:
    async def test_unknown_operation(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        orchestrator = _orchestrator(store, locations, FakeSearch({}))
        assert await orchestrator.cancel("does-not-exist") is False

    async def test_cancel_running_operation(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        sleeping = asyncio.Event()
        release = asyncio.Event()

        async def blocking_sleep(seconds: float) -> None:
            sleeping.set()
            await release.wait()

        search = FakeSearch({"London, GB": LONDON_HITS, "Manchester, GB": LONDON_HITS})
        orchestrator = _orchestrator(store, locations, search, sleep=blocking_sleep)
        op_id = await orchestrator.global_search_profiles(
            "analyst", _config(delay_between_searches_ms=60_000),
        )

        await sleeping.wait()
        assert await orchestrator.cancel(op_id) is True
        assert orchestrator.active_operations() == []
        assert await orchestrator.cancel(op_id) is False

        release.set()
        operation = await orchestrator.wait(op_id)

        assert operation is not None
        assert operation.status == OperationStatus.CANCELLED
        assert operation.end_time is not None
        assert operation.searched_locations == 1
        assert search.queries == [("analyst", "London, GB")]

    async def test_shutdown_fails_running_operation(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        sleeping = asyncio.Event()

        async def forever(seconds: float) -> None:
            sleeping.set()
            await asyncio.Event().wait()

        orchestrator = _orchestrator(store, locations, FakeSearch({}), sleep=forever)
        op_id = await orchestrator.global_search_profiles(
            "analyst", _config(delay_between_searches_ms=60_000),
        )
        await sleeping.wait()
        await orchestrator.shutdown()

        operation = store.get_operation(op_id)
        assert operation is not None
        assert operation.status == OperationStatus.FAILED
        assert operation.error == "interrupted by shutdown"


# ---------------------------------------------------------------------------
# Single search
# ---------------------------------------------------------------------------
class TestSingleSearch:
    async def test_returns_results_and_persists(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        search = FakeSearch({"Berlin, DE": LONDON_HITS})
        orchestrator = _orchestrator(store, locations, search)

        op_id, results = await orchestrator.search_profiles(
            "data analyst", _config(), location="Berlin, DE",
        )

        assert [r.url for r in results] == [url for _, url in LONDON_HITS]
        operation = store.get_operation(op_id)
        assert operation is not None
        assert operation.status == OperationStatus.COMPLETED
        assert operation.total_results == 2
        assert operation.searched_locations == operation.total_locations == 1
        assert len(store.get_profiles(operation_id=op_id)) == 2
        assert orchestrator.active_operations() == []

    async def test_nameless_results_counted_not_stored(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        search = FakeSearch({None: [("", "https://www.linkedin.com/in/x"), *LEEDS_HITS]})
        orchestrator = _orchestrator(store, locations, search)

        op_id, results = await orchestrator.search_profiles("analyst", _config())

        assert len(results) == 2
        assert [p.name for p in store.get_profiles(operation_id=op_id)] == ["Ana Lima"]
        assert store.get_search_runs(operation_id=op_id)[0].location == "any"

    async def test_expansion_variants_searched(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        search = FakeSearch({})
        llm = FakeLLM(
            expansion='{"expandedQueries": ["data analyst", "business analyst", "bi analyst"]}',
        )
        orchestrator = _orchestrator(store, locations, search, llm)

        await orchestrator.search_profiles("data analyst", _config(enable_query_expansion=True))

        assert [q for q, _ in search.queries] == ["data analyst", "business analyst", "bi analyst"]

    async def test_ai_filter_applied(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        search = FakeSearch({None: LONDON_HITS})
        llm = FakeLLM(filtering='{"relevantIndices": [1]}')
        orchestrator = _orchestrator(store, locations, search, llm)

        op_id, results = await orchestrator.search_profiles(
            "analyst", _config(enable_result_filtering=True),
        )

        assert [r.url for r in results] == ["https://www.linkedin.com/in/john"]
        assert store.get_operation(op_id).total_results == 1  # type: ignore[union-attr]

    async def test_all_variants_failing_still_completes(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        search = FakeSearch({None: TransientError("down", "google")})
        orchestrator = _orchestrator(store, locations, search)

        op_id, results = await orchestrator.search_profiles("analyst", _config())

        assert results == []
        runs = store.get_search_runs(operation_id=op_id)
        assert [r.success for r in runs] == [False]
        assert runs[0].error == "down"

    async def test_unscored_results_are_scored(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        search = FakeSearch({None: LEEDS_HITS}, score=None)
        orchestrator = _orchestrator(store, locations, search)

        _, results = await orchestrator.search_profiles("analyst", _config())

        title, url = LEEDS_HITS[0]
        assert [r.relevance_score for r in results] == [
            score_result(title, "", url, "analyst", None),
        ]

    async def test_store_failure_marks_failed(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        search = FakeSearch({None: LONDON_HITS})
        orchestrator = _orchestrator(store, locations, search)

        with (
            patch.object(
                store, "insert_profile", side_effect=StoreError("disk full", "insert_profile"),
            ),
            pytest.raises(StoreError),
        ):
            await orchestrator.search_profiles("analyst", _config())

        [operation] = store.list_operations()
        assert operation.status == OperationStatus.FAILED
        assert operation.error == "disk full"


# ---------------------------------------------------------------------------
# Progress and recovery
# ---------------------------------------------------------------------------
class TestProgress:
    async def test_estimates_remaining_time(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        started = datetime(2026, 1, 1, 12, 0, 0)
        store.create_operation(SearchOperation(
            query="analyst",
            status=OperationStatus.RUNNING,
            start_time=started,
            total_locations=4,
            searched_locations=2,
            total_results=7,
            current_location="Leeds",
            progress=0.5,
        ))
        [operation] = store.list_active_operations()
        orchestrator = _orchestrator(
            store, locations, FakeSearch({}), clock=lambda: started + timedelta(seconds=60),
        )

        progress = await orchestrator.get_progress(operation.id)

        assert progress is not None
        assert progress.status == OperationStatus.RUNNING
        assert progress.results_found == 7
        assert progress.current_location == "Leeds"
        assert progress.estimated_time_remaining_s == pytest.approx(60.0)

    async def test_unknown_until_first_location(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        store.create_operation(SearchOperation(query="q", total_locations=3))
        [operation] = store.list_active_operations()
        orchestrator = _orchestrator(store, locations, FakeSearch({}))
        progress = await orchestrator.get_progress(operation.id)
        assert progress is not None
        assert progress.estimated_time_remaining_s is None

    async def test_terminal_has_zero_remaining(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        orchestrator = _orchestrator(store, locations, FakeSearch({}))
        op_id, _ = await orchestrator.search_profiles("q", _config())
        progress = await orchestrator.get_progress(op_id)
        assert progress is not None
        assert progress.estimated_time_remaining_s == 0.0

    async def test_unknown_operation(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        orchestrator = _orchestrator(store, locations, FakeSearch({}))
        assert await orchestrator.get_progress("missing") is None


class TestReconcileOrphans:
    def test_marks_leftover_operations_failed(
        self, store: SearchStore, locations: LocationRotationManager,
    ) -> None:
        store.create_operation(SearchOperation(query="a", status=OperationStatus.RUNNING))
        store.create_operation(SearchOperation(query="b"))
        store.create_operation(SearchOperation(query="c", status=OperationStatus.COMPLETED))
        orchestrator = _orchestrator(store, locations, FakeSearch({}))

        assert orchestrator.reconcile_orphans() == 2
        assert store.list_active_operations() == []
        failed = [op for op in store.list_operations() if op.status == OperationStatus.FAILED]
        assert {op.query for op in failed} == {"a", "b"}
        assert all(op.error == ORPHANED_ERROR for op in failed)
        assert orchestrator.reconcile_orphans() == 0
