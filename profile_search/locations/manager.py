"""Location rotation: priority-ordered round robin with timed blacklisting.

Locations are sorted by (priority desc, success_rate desc). A cursor walks
the list circularly; blacklisted locations are skipped until their entry
expires. Expiry is scheduled on the running event loop when there is one,
and is also checked lazily against the clock so the manager works from
synchronous code.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any

from profile_search.core.db import SearchStore
from profile_search.core.schemas import Location
from profile_search.locations.catalog import default_locations

logger = logging.getLogger(__name__)

DEFAULT_BLACKLIST_S = 3600.0


class BlacklistEntry:
    """A blacklisted location and its scheduled expiry."""

    def __init__(
        self,
        location_id: str,
        expires_at: float,
        handle: asyncio.TimerHandle | None = None,
    ) -> None:
        self.location_id = location_id
        self.expires_at = expires_at
        self.handle = handle

    def cancel(self) -> None:
        if self.handle is not None:
            self.handle.cancel()
            self.handle = None


def _sort_key(location: Location) -> tuple[int, float]:
    return (-location.priority, -location.success_rate)


class LocationRotationManager:
    """Hands out search locations in rotation and tracks their success.

    Usage::

        manager = LocationRotationManager(store)
        manager.initialize()
        location = manager.next_location()
        ...
        manager.record_outcome(location.id, success=True)
    """

    def __init__(
        self,
        store: SearchStore,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._clock = clock
        self._locations: list[Location] = []
        self._cursor = 0
        self._blacklist: dict[str, BlacklistEntry] = {}
        self._initialized = False

    def initialize(self) -> None:
        """Load active locations, seeding the default catalog into an empty store."""
        if self._initialized:
            return
        locations = self._store.get_locations(active_only=True)
        if not locations:
            defaults = default_locations()
            for location in defaults:
                self._store.insert_location(location)
            logger.info("Seeded %d default locations", len(defaults))
            locations = self._store.get_locations(active_only=True)
        self._locations = sorted(locations, key=_sort_key)
        self._initialized = True
        logger.info("Location manager initialized with %d locations", len(self._locations))

    # --- Rotation ---

    def next_location(self) -> Location | None:
        """Return the next non-blacklisted location and advance past it."""
        self.initialize()
        count = len(self._locations)
        if count == 0:
            logger.warning("No locations available")
            return None

        for _ in range(count):
            index = self._cursor % count
            self._cursor = (index + 1) % count
            location = self._locations[index]
            if not self.is_blacklisted(location.id):
                logger.debug(
                    "Selected location %s (priority %d, success %.2f)",
                    location.name, location.priority, location.success_rate,
                )
                return location

        logger.warning("All %d locations are blacklisted", count)
        return None

    def list_locations(self, max_count: int | None = None) -> list[Location]:
        """Non-blacklisted locations in rotation order, optionally truncated."""
        self.initialize()
        available = [loc for loc in self._locations if not self.is_blacklisted(loc.id)]
        if max_count is not None:
            available = available[:max_count]
        return available

    def get_location(self, location_id: str) -> Location | None:
        for location in self._locations:
            if location.id == location_id:
                return location
        return None

    def record_outcome(self, location_id: str, success: bool) -> Location | None:
        """Update and persist a location's success statistics."""
        for index, location in enumerate(self._locations):
            if location.id == location_id:
                break
        else:
            logger.warning("Outcome recorded for unknown location %s", location_id)
            return None

        total = location.total_searches + 1
        successful = location.successful_searches + (1 if success else 0)
        updated = location.model_copy(update={
            "total_searches": total,
            "successful_searches": successful,
            "success_rate": successful / total,
            "last_searched": datetime.now(),
        })
        self._store.update_location(updated)
        self._locations[index] = updated
        self._locations.sort(key=_sort_key)
        return updated

    # --- Blacklist ---

    def blacklist(self, location_id: str, duration_s: float = DEFAULT_BLACKLIST_S) -> None:
        """Skip a location for duration_s seconds. Replaces any earlier entry."""
        existing = self._blacklist.pop(location_id, None)
        if existing is not None:
            existing.cancel()

        handle = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            handle = loop.call_later(duration_s, self._expire, location_id)

        self._blacklist[location_id] = BlacklistEntry(
            location_id, self._clock() + duration_s, handle,
        )
        logger.info("Blacklisted location %s for %.0fs", location_id, duration_s)

    def unblacklist(self, location_id: str) -> None:
        entry = self._blacklist.pop(location_id, None)
        if entry is not None:
            entry.cancel()
            logger.info("Removed location %s from blacklist", location_id)

    def reset_blacklist(self) -> None:
        for entry in self._blacklist.values():
            entry.cancel()
        cleared = len(self._blacklist)
        self._blacklist.clear()
        logger.info("Blacklist reset (%d entries cleared)", cleared)

    def is_blacklisted(self, location_id: str) -> bool:
        entry = self._blacklist.get(location_id)
        if entry is None:
            return False
        if entry.expires_at <= self._clock():
            self._expire(location_id)
            return False
        return True

    def blacklisted_ids(self) -> list[str]:
        return [lid for lid in list(self._blacklist) if self.is_blacklisted(lid)]

    def _expire(self, location_id: str) -> None:
        entry = self._blacklist.pop(location_id, None)
        if entry is not None:
            entry.cancel()
            logger.info("Blacklist expired for location %s", location_id)

    # --- Catalog management ---

    def add_location(
        self,
        name: str,
        country: str,
        country_code: str,
        search_code: str,
        *,
        priority: int = 1,
        region: str | None = None,
        city: str | None = None,
    ) -> Location:
        self.initialize()
        location = Location(
            name=name,
            country=country,
            country_code=country_code,
            region=region,
            city=city,
            search_code=search_code,
            priority=priority,
        )
        self._store.insert_location(location)
        self._locations.append(location)
        self._locations.sort(key=_sort_key)
        logger.info("Added location %s (%s)", name, search_code)
        return location

    def deactivate_location(self, location_id: str) -> bool:
        """Stop rotating a location. It stays in the store as inactive."""
        self.initialize()
        for index, location in enumerate(self._locations):
            if location.id == location_id:
                break
        else:
            return False

        self._store.update_location(location.model_copy(update={"is_active": False}))
        del self._locations[index]
        if index < self._cursor:
            self._cursor -= 1
        if self._locations:
            self._cursor %= len(self._locations)
        else:
            self._cursor = 0
        self.unblacklist(location_id)
        logger.info("Deactivated location %s", location.name)
        return True

    def stats(self) -> dict[str, Any]:
        self.initialize()
        total = len(self._store.get_locations(active_only=False))
        rates = [loc.success_rate for loc in self._locations]
        return {
            "total": total,
            "active": len(self._locations),
            "blacklisted": len(self.blacklisted_ids()),
            "avg_success_rate": sum(rates) / len(rates) if rates else 0.0,
        }

    def reset(self) -> None:
        self._cursor = 0
        self.reset_blacklist()
