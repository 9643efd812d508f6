"""Orchestrator: drives search operations through expansion, search, filtering,
persistence and enrichment.

Data flow per location:
  1. Query variants (expanded once per operation)
  2. Gateway search per variant → raw results
  3. Deduplication
  4. AI filter (optional, fail open)
  5. Profile insert
  6. Contact enrichment (optional, per profile)
  7. Location outcome + operation counters

Lifecycle: pending → running → completed | failed | cancelled. Every
transition is written to the store before the next step runs.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from profile_search.core.db import SearchStore
from profile_search.core.errors import StoreError
from profile_search.core.schemas import (
    Location,
    OperationConfig,
    OperationStatus,
    ProfileRecord,
    SearchOperation,
    SearchProgress,
    SearchResult,
    SearchRunRecord,
)
from profile_search.locations.manager import LocationRotationManager
from profile_search.pipeline.ai_filter import filter_with_ai
from profile_search.pipeline.extractor import build_profile
from profile_search.pipeline.matcher import DeduplicationFilter
from profile_search.pipeline.scorer import score_results
from profile_search.providers.gateway import ProviderGateway

logger = logging.getLogger(__name__)

SINGLE_SEARCH_MAX_VARIANTS = 5
GLOBAL_SEARCH_MAX_VARIANTS = 8
MAX_CONSECUTIVE_FAILURES = 3
LOCATION_BLACKLIST_S = 3600.0
ORPHANED_ERROR = "orphaned on restart"


class LocationSearchError(Exception):
    """Every query variant failed for one location."""


class SearchOrchestrator:
    """Runs single-location and multi-location profile searches.

    Usage::

        orchestrator = SearchOrchestrator(store, gateway, locations)
        operation_id = await orchestrator.global_search_profiles("data analyst")
        progress = await orchestrator.get_progress(operation_id)
    """

    def __init__(
        self,
        store: SearchStore,
        gateway: ProviderGateway,
        locations: LocationRotationManager,
        *,
        default_config: OperationConfig | None = None,
        max_results: int = 10,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._locations = locations
        self._default_config = default_config or OperationConfig()
        self._max_results = max_results
        self._sleep = sleep
        self._clock = clock
        self._active: dict[str, SearchOperation] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    # --- Public operations ---

    async def search_profiles(
        self,
        query: str,
        config: OperationConfig | None = None,
        location: str | None = None,
    ) -> tuple[str, list[SearchResult]]:
        """Search one location (or none) and return the qualifying results.

        Raises whatever escaped the operation after marking it failed.
        """
        config = config or self._default_config
        operation = SearchOperation(
            query=query, config=config, total_locations=1, start_time=self._clock(),
        )
        self._store.create_operation(operation)
        self._active[operation.id] = operation
        logger.info("Operation %s started: '%s' (%s)", operation.id, query, location or "any")

        try:
            self._update(operation, status=OperationStatus.RUNNING)
            variants = await self._variants(
                query, config, SINGLE_SEARCH_MAX_VARIANTS, location,
            )

            dedup = DeduplicationFilter()
            results: list[SearchResult] = []
            for variant in variants:
                batch = await self._run_variant(operation, variant, location)
                if batch:
                    results.extend(dedup(batch))

            results = score_results(results, query, location)
            results = await self._filter(results, query, config)
            self._persist_profiles(results, query, location, operation.id)

            if operation.id in self._active:
                self._update(
                    operation,
                    status=OperationStatus.COMPLETED,
                    end_time=self._clock(),
                    searched_locations=1,
                    total_results=len(results),
                    progress=1.0,
                )
            logger.info("Operation %s completed: %d results", operation.id, len(results))
            return operation.id, results
        except Exception as e:
            self._fail(operation, e)
            raise
        finally:
            self._active.pop(operation.id, None)

    async def global_search_profiles(
        self,
        query: str,
        config: OperationConfig | None = None,
    ) -> str:
        """Start a multi-location search in the background and return its ID."""
        config = config or self._default_config
        queue = self._locations.list_locations(config.max_locations)
        operation = SearchOperation(
            query=query,
            config=config,
            total_locations=len(queue),
            start_time=self._clock(),
        )
        self._store.create_operation(operation)
        self._active[operation.id] = operation
        logger.info(
            "Global operation %s started: '%s' across %d locations",
            operation.id, query, len(queue),
        )

        task = asyncio.create_task(self._run_global(operation, queue))
        self._tasks[operation.id] = task
        task.add_done_callback(lambda _t, op_id=operation.id: self._tasks.pop(op_id, None))
        return operation.id

    async def get_progress(self, operation_id: str) -> SearchProgress | None:
        operation = self._store.get_operation(operation_id)
        if operation is None:
            return None

        remaining: float | None
        if operation.is_terminal:
            remaining = 0.0
        elif operation.searched_locations > 0:
            elapsed = (self._clock() - operation.start_time).total_seconds()
            left = operation.total_locations - operation.searched_locations
            remaining = max(0.0, elapsed / operation.searched_locations * left)
        else:
            remaining = None

        return SearchProgress(
            operation_id=operation.id,
            status=operation.status,
            progress=operation.progress,
            current_location=operation.current_location,
            searched_locations=operation.searched_locations,
            total_locations=operation.total_locations,
            results_found=operation.total_results,
            estimated_time_remaining_s=remaining,
            last_update=self._clock(),
        )

    async def cancel(self, operation_id: str) -> bool:
        """Cancel an active operation. False if it is not active."""
        operation = self._active.pop(operation_id, None)
        if operation is None:
            return False
        self._update(operation, status=OperationStatus.CANCELLED, end_time=self._clock())
        logger.info("Operation %s cancelled", operation_id)
        return True

    def active_operations(self) -> list[SearchOperation]:
        return list(self._active.values())

    async def wait(self, operation_id: str) -> SearchOperation | None:
        """Wait for a background operation to finish and return its record."""
        task = self._tasks.get(operation_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self._store.get_operation(operation_id)

    def reconcile_orphans(self) -> int:
        """Fail pending/running records left behind by a previous process."""
        orphaned = 0
        for operation in self._store.list_active_operations():
            if operation.id in self._active:
                continue
            if self._store.update_operation(
                operation.id,
                status=OperationStatus.FAILED,
                end_time=self._clock(),
                error=ORPHANED_ERROR,
            ):
                orphaned += 1
        if orphaned:
            logger.warning("Marked %d orphaned operations as failed", orphaned)
        return orphaned

    async def shutdown(self) -> None:
        """Stop every background operation."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # --- Background body ---

    async def _run_global(self, operation: SearchOperation, queue: list[Location]) -> None:
        try:
            self._update(operation, status=OperationStatus.RUNNING)
            variants = await self._variants(
                operation.query, operation.config, GLOBAL_SEARCH_MAX_VARIANTS,
            )

            total = len(queue)
            consecutive_failures = 0
            for i, location in enumerate(queue):
                if operation.id not in self._active:
                    logger.info("Operation %s cancelled - stopping", operation.id)
                    return

                self._update(operation, current_location=location.name, progress=i / total)
                logger.info(
                    "Operation %s: searching %s (%d/%d)",
                    operation.id, location.name, i + 1, total,
                )

                try:
                    found = await self._search_location(operation, variants, location)
                except StoreError:
                    raise
                except Exception as e:
                    consecutive_failures += 1
                    logger.error(
                        "Operation %s: location %s failed (%d consecutive): %s",
                        operation.id, location.name, consecutive_failures, e,
                    )
                    self._locations.record_outcome(location.id, success=False)
                    self._locations.blacklist(location.id, LOCATION_BLACKLIST_S)
                    self._update(operation, searched_locations=i + 1)
                    if consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
                        logger.error(
                            "Operation %s: %d consecutive location failures - stopping",
                            operation.id, consecutive_failures,
                        )
                        break
                else:
                    consecutive_failures = 0
                    self._locations.record_outcome(location.id, success=found > 0)
                    self._update(
                        operation,
                        searched_locations=i + 1,
                        total_results=operation.total_results + found,
                    )
                    logger.info(
                        "Operation %s: %s returned %d results (%d total)",
                        operation.id, location.name, found, operation.total_results,
                    )

                if i < total - 1:
                    delay_ms = operation.config.delay_between_searches_ms
                    if delay_ms > 0:
                        logger.info(
                            "Operation %s: waiting %dms before %s",
                            operation.id, delay_ms, queue[i + 1].name,
                        )
                        await self._sleep(delay_ms / 1000)

            if operation.id in self._active:
                self._update(
                    operation,
                    status=OperationStatus.COMPLETED,
                    end_time=self._clock(),
                    progress=1.0,
                )
                logger.info(
                    "Operation %s completed: %d results from %d/%d locations",
                    operation.id, operation.total_results,
                    operation.searched_locations, operation.total_locations,
                )
        except asyncio.CancelledError:
            self._fail(operation, RuntimeError("interrupted by shutdown"))
            raise
        except Exception as e:
            self._fail(operation, e)
        finally:
            self._active.pop(operation.id, None)

    async def _search_location(
        self,
        operation: SearchOperation,
        variants: list[str],
        location: Location,
    ) -> int:
        """Search one location and return the number of qualifying results."""
        dedup = DeduplicationFilter()
        results: list[SearchResult] = []
        failures = 0
        for variant in variants:
            batch = await self._run_variant(operation, variant, location.search_code)
            if batch is None:
                failures += 1
                continue
            results.extend(dedup(batch))

        if variants and failures == len(variants):
            msg = f"all {failures} query variants failed for {location.name}"
            raise LocationSearchError(msg)

        results = score_results(results, operation.query, location.name)
        results = await self._filter(results, operation.query, operation.config)
        profiles = self._persist_profiles(results, operation.query, location.name, operation.id)

        if operation.config.enable_contact_enrichment and self._gateway.enrichment_available():
            await self._enrich(operation, profiles)
        return len(results)

    # --- Steps ---

    async def _variants(
        self,
        query: str,
        config: OperationConfig,
        max_variants: int,
        location: str | None = None,
    ) -> list[str]:
        """The original query followed by expanded variants, capped at max_variants."""
        variants = [query]
        if not config.enable_query_expansion or not self._gateway.llm_available(config.ai_provider):
            return variants
        try:
            expansion = await self._gateway.expand_query(
                query, max_variants, location=location, provider=config.ai_provider,
            )
        except Exception as e:
            logger.warning("Query expansion failed, using original query: %s", e)
            return variants
        for v in expansion.variants:
            if v not in variants:
                variants.append(v)
        return variants[:max_variants]

    async def _run_variant(
        self,
        operation: SearchOperation,
        variant: str,
        location_code: str | None,
    ) -> list[SearchResult] | None:
        """Run one variant. None means it failed; the failure is recorded."""
        started = self._clock()
        error: str | None = None
        results: list[SearchResult] | None
        try:
            results = await self._gateway.search(variant, location_code, self._max_results)
        except Exception as e:
            logger.warning(
                "Operation %s: query '%s' failed for %s: %s",
                operation.id, variant, location_code or "any", e,
            )
            results = None
            error = str(e) or type(e).__name__

        duration_ms = int((self._clock() - started).total_seconds() * 1000)
        self._store.insert_search_run(SearchRunRecord(
            operation_id=operation.id,
            query=variant,
            location=location_code or "any",
            results_count=len(results or []),
            duration_ms=max(0, duration_ms),
            success=results is not None,
            error=error,
        ))
        return results

    async def _filter(
        self,
        results: list[SearchResult],
        query: str,
        config: OperationConfig,
    ) -> list[SearchResult]:
        if not config.enable_result_filtering or not results:
            return results
        if not self._gateway.llm_available(config.ai_provider):
            return results
        return await filter_with_ai(
            self._gateway, results, query, config.relevance_threshold, config.ai_provider,
        )

    def _persist_profiles(
        self,
        results: list[SearchResult],
        query: str,
        location: str | None,
        operation_id: str,
    ) -> list[ProfileRecord]:
        """Store every result with an extractable name. Others are skipped."""
        stored: list[ProfileRecord] = []
        for result in results:
            profile = build_profile(result, query, location, operation_id)
            if profile is None:
                logger.debug("No name in result %s - not stored", result.url)
                continue
            profile_id = self._store.insert_profile(profile)
            stored.append(profile.model_copy(update={"id": profile_id}))
        return stored

    async def _enrich(self, operation: SearchOperation, profiles: list[ProfileRecord]) -> None:
        for profile in profiles:
            try:
                contact = await self._gateway.enrich_contact(
                    profile.name, profile.company, linkedin_url=profile.linkedin_url,
                )
            except Exception as e:
                logger.warning(
                    "Operation %s: enrichment failed for %s: %s",
                    operation.id, profile.profile_url, e,
                )
                continue
            if contact is not None:
                self._store.attach_enrichment(profile.profile_url, contact)
                logger.info("Operation %s: enriched %s", operation.id, profile.name)

    # --- State ---

    def _update(self, operation: SearchOperation, **fields: object) -> bool:
        """Mirror a change to the in-memory record and the store."""
        for name, value in fields.items():
            setattr(operation, name, value)
        return self._store.update_operation(operation.id, **fields)

    def _fail(self, operation: SearchOperation, exc: BaseException) -> None:
        message = str(exc) or type(exc).__name__
        logger.error("Operation %s failed: %s", operation.id, message, exc_info=exc)
        try:
            self._update(
                operation,
                status=OperationStatus.FAILED,
                end_time=self._clock(),
                error=message,
            )
        except StoreError as e:
            logger.error("Could not record failure of operation %s: %s", operation.id, e)
