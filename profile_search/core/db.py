"""SQLite store for search operations, profiles, locations, and search runs."""

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from profile_search.core.errors import StoreError
from profile_search.core.schemas import (
    TERMINAL_STATUSES,
    Contact,
    Location,
    OperationConfig,
    OperationStatus,
    ProfileRecord,
    SearchOperation,
    SearchRunRecord,
)

logger = logging.getLogger(__name__)

_OPERATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS search_operations (
    id                  TEXT    PRIMARY KEY,
    query               TEXT    NOT NULL,
    status              TEXT    NOT NULL CHECK (status IN
                            ('pending', 'running', 'completed', 'failed', 'cancelled')),
    start_time          TEXT    NOT NULL,
    end_time            TEXT,
    total_locations     INTEGER NOT NULL DEFAULT 0,
    searched_locations  INTEGER NOT NULL DEFAULT 0,
    total_results       INTEGER NOT NULL DEFAULT 0,
    current_location    TEXT,
    progress            REAL    NOT NULL DEFAULT 0.0,
    error               TEXT,
    config              TEXT    NOT NULL
);
"""

_PROFILES_TABLE = """
CREATE TABLE IF NOT EXISTS profiles (
    id               TEXT PRIMARY KEY,
    name             TEXT NOT NULL,
    title            TEXT,
    company          TEXT,
    location         TEXT,
    profile_url      TEXT NOT NULL,
    email            TEXT,
    phone            TEXT,
    linkedin_url     TEXT,
    source           TEXT NOT NULL,
    search_query     TEXT NOT NULL,
    search_location  TEXT NOT NULL,
    operation_id     TEXT,
    extracted_at     TEXT NOT NULL,
    enriched_at      TEXT,
    relevance_score  REAL,
    enrichment_data  TEXT
);
"""

_LOCATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS locations (
    id                   TEXT    PRIMARY KEY,
    name                 TEXT    NOT NULL,
    country              TEXT    NOT NULL,
    country_code         TEXT    NOT NULL,
    region               TEXT,
    city                 TEXT,
    search_code          TEXT    NOT NULL,
    priority             INTEGER NOT NULL DEFAULT 1,
    is_active            INTEGER NOT NULL DEFAULT 1,
    last_searched        TEXT,
    success_rate         REAL    NOT NULL DEFAULT 0.0,
    total_searches       INTEGER NOT NULL DEFAULT 0,
    successful_searches  INTEGER NOT NULL DEFAULT 0
);
"""

_SEARCH_RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS search_runs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    operation_id    TEXT,
    query           TEXT    NOT NULL,
    location        TEXT    NOT NULL,
    results_count   INTEGER NOT NULL,
    duration_ms     INTEGER NOT NULL,
    success         INTEGER NOT NULL,
    error           TEXT,
    executed_at     TEXT    NOT NULL
);
"""

_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_operations_status ON search_operations(status)",
    "CREATE INDEX IF NOT EXISTS idx_profiles_url ON profiles(profile_url)",
    "CREATE INDEX IF NOT EXISTS idx_profiles_operation ON profiles(operation_id)",
    "CREATE INDEX IF NOT EXISTS idx_locations_active ON locations(is_active)",
    "CREATE INDEX IF NOT EXISTS idx_search_runs_operation ON search_runs(operation_id)",
)

# Fields of a search operation that may change after creation.
_UPDATABLE_OPERATION_FIELDS = frozenset({
    "status",
    "end_time",
    "searched_locations",
    "total_results",
    "current_location",
    "progress",
    "error",
})


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_OPERATIONS_TABLE)
    conn.execute(_PROFILES_TABLE)
    conn.execute(_LOCATIONS_TABLE)
    conn.execute(_SEARCH_RUNS_TABLE)
    for statement in _INDEXES:
        conn.execute(statement)
    conn.commit()
    return conn


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SearchStore:
    """Durable record of operations, profiles and location statistics.

    Every sqlite3.Error is re-raised as StoreError so callers can treat
    persistence failures as fatal without depending on sqlite3.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as e:
            msg = f"Database {operation} failed: {e}"
            raise StoreError(msg, operation) from e

    def close(self) -> None:
        self._conn.close()

    # --- Search operations ---

    def create_operation(self, operation: SearchOperation) -> None:
        with self._guard("create_operation"):
            self._conn.execute(
                """
                INSERT INTO search_operations
                    (id, query, status, start_time, end_time, total_locations,
                     searched_locations, total_results, current_location,
                     progress, error, config)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    operation.id,
                    operation.query,
                    operation.status.value,
                    operation.start_time.isoformat(),
                    _iso(operation.end_time),
                    operation.total_locations,
                    operation.searched_locations,
                    operation.total_results,
                    operation.current_location,
                    operation.progress,
                    operation.error,
                    operation.config.model_dump_json(),
                ),
            )
            self._conn.commit()
        logger.debug("Created operation %s for '%s'", operation.id, operation.query)

    def update_operation(self, operation_id: str, **fields: Any) -> bool:
        """Apply a partial update. Omitted fields are left unchanged.

        Returns False without writing when the record is missing or already
        terminal (terminal statuses are immutable).
        """
        unknown = set(fields) - _UPDATABLE_OPERATION_FIELDS
        if unknown:
            msg = f"Cannot update operation fields: {sorted(unknown)}"
            raise ValueError(msg)
        if not fields:
            return True

        with self._guard("update_operation"):
            row = self._conn.execute(
                "SELECT status FROM search_operations WHERE id = ?", (operation_id,),
            ).fetchone()
            if row is None:
                logger.warning("Update for unknown operation %s ignored", operation_id)
                return False
            if OperationStatus(row["status"]) in TERMINAL_STATUSES:
                logger.debug(
                    "Operation %s is %s - ignoring update %s",
                    operation_id, row["status"], sorted(fields),
                )
                return False

            columns: list[str] = []
            values: list[Any] = []
            for name, value in fields.items():
                if isinstance(value, OperationStatus):
                    value = value.value
                elif isinstance(value, datetime):
                    value = value.isoformat()
                columns.append(f"{name} = ?")
                values.append(value)
            values.append(operation_id)

            self._conn.execute(
                f"UPDATE search_operations SET {', '.join(columns)} WHERE id = ?",
                values,
            )
            self._conn.commit()
        return True

    def get_operation(self, operation_id: str) -> SearchOperation | None:
        with self._guard("get_operation"):
            row = self._conn.execute(
                "SELECT * FROM search_operations WHERE id = ?", (operation_id,),
            ).fetchone()
        return self._row_to_operation(row) if row is not None else None

    def list_active_operations(self) -> list[SearchOperation]:
        """Return operations still marked pending or running."""
        with self._guard("list_active_operations"):
            rows = self._conn.execute(
                """
                SELECT * FROM search_operations
                WHERE status IN ('pending', 'running')
                ORDER BY start_time DESC
                """,
            ).fetchall()
        return [self._row_to_operation(r) for r in rows]

    def list_operations(self, limit: int = 50) -> list[SearchOperation]:
        with self._guard("list_operations"):
            rows = self._conn.execute(
                "SELECT * FROM search_operations ORDER BY start_time DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._row_to_operation(r) for r in rows]

    @staticmethod
    def _row_to_operation(row: sqlite3.Row) -> SearchOperation:
        return SearchOperation(
            id=row["id"],
            query=row["query"],
            status=OperationStatus(row["status"]),
            start_time=datetime.fromisoformat(row["start_time"]),
            end_time=_parse_dt(row["end_time"]),
            total_locations=row["total_locations"],
            searched_locations=row["searched_locations"],
            total_results=row["total_results"],
            current_location=row["current_location"],
            progress=row["progress"],
            error=row["error"],
            config=OperationConfig.model_validate_json(row["config"]),
        )

    # --- Profiles ---

    def insert_profile(self, profile: ProfileRecord) -> str:
        """Insert a profile and return its generated ID."""
        profile_id = profile.id or str(uuid.uuid4())
        with self._guard("insert_profile"):
            self._conn.execute(
                """
                INSERT INTO profiles
                    (id, name, title, company, location, profile_url, email, phone,
                     linkedin_url, source, search_query, search_location, operation_id,
                     extracted_at, enriched_at, relevance_score, enrichment_data)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    profile_id,
                    profile.name,
                    profile.title,
                    profile.company,
                    profile.location,
                    profile.profile_url,
                    profile.email,
                    profile.phone,
                    profile.linkedin_url,
                    profile.source,
                    profile.search_query,
                    profile.search_location,
                    profile.operation_id,
                    profile.extracted_at.isoformat(),
                    _iso(profile.enriched_at),
                    profile.relevance_score,
                    json.dumps(profile.enrichment_data) if profile.enrichment_data else None,
                ),
            )
            self._conn.commit()
        return profile_id

    def get_profiles(
        self,
        *,
        search_query: str | None = None,
        location: str | None = None,
        company: str | None = None,
        operation_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[ProfileRecord]:
        """Return stored profiles, newest first, narrowed by optional filters."""
        sql = "SELECT * FROM profiles WHERE 1=1"
        params: list[Any] = []

        if search_query:
            sql += " AND search_query LIKE ?"
            params.append(f"%{search_query}%")
        if location:
            sql += " AND search_location LIKE ?"
            params.append(f"%{location}%")
        if company:
            sql += " AND company LIKE ?"
            params.append(f"%{company}%")
        if operation_id:
            sql += " AND operation_id = ?"
            params.append(operation_id)
        if start is not None:
            sql += " AND extracted_at >= ?"
            params.append(start.isoformat())
        if end is not None:
            sql += " AND extracted_at <= ?"
            params.append(end.isoformat())

        sql += " ORDER BY extracted_at DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
            if offset is not None:
                sql += " OFFSET ?"
                params.append(offset)

        with self._guard("get_profiles"):
            rows = self._conn.execute(sql, params).fetchall()
        return [self._row_to_profile(r) for r in rows]

    def attach_enrichment(self, profile_url: str, contact: Contact) -> int:
        """Write enrichment data back onto every profile with this URL.

        Email and phone are only overwritten when the contact carries them.
        Returns the number of rows updated.
        """
        with self._guard("attach_enrichment"):
            cursor = self._conn.execute(
                """
                UPDATE profiles
                SET enrichment_data = ?,
                    email = COALESCE(?, email),
                    phone = COALESCE(?, phone),
                    linkedin_url = COALESCE(linkedin_url, ?),
                    enriched_at = ?
                WHERE profile_url = ?
                """,
                (
                    contact.model_dump_json(exclude_none=True),
                    contact.email,
                    contact.phone,
                    contact.linkedin_url,
                    datetime.now().isoformat(),
                    profile_url,
                ),
            )
            self._conn.commit()
        return cursor.rowcount

    @staticmethod
    def _row_to_profile(row: sqlite3.Row) -> ProfileRecord:
        raw_enrichment = row["enrichment_data"]
        return ProfileRecord(
            id=row["id"],
            name=row["name"],
            title=row["title"],
            company=row["company"],
            location=row["location"],
            profile_url=row["profile_url"],
            email=row["email"],
            phone=row["phone"],
            linkedin_url=row["linkedin_url"],
            source=row["source"],
            search_query=row["search_query"],
            search_location=row["search_location"],
            operation_id=row["operation_id"],
            extracted_at=datetime.fromisoformat(row["extracted_at"]),
            enriched_at=_parse_dt(row["enriched_at"]),
            relevance_score=row["relevance_score"],
            enrichment_data=json.loads(raw_enrichment) if raw_enrichment else None,
        )

    # --- Locations ---

    def insert_location(self, location: Location) -> str:
        with self._guard("insert_location"):
            self._conn.execute(
                """
                INSERT INTO locations
                    (id, name, country, country_code, region, city, search_code,
                     priority, is_active, last_searched, success_rate,
                     total_searches, successful_searches)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    location.id,
                    location.name,
                    location.country,
                    location.country_code,
                    location.region,
                    location.city,
                    location.search_code,
                    location.priority,
                    int(location.is_active),
                    _iso(location.last_searched),
                    location.success_rate,
                    location.total_searches,
                    location.successful_searches,
                ),
            )
            self._conn.commit()
        return location.id

    def get_locations(self, active_only: bool = True) -> list[Location]:
        sql = "SELECT * FROM locations"
        if active_only:
            sql += " WHERE is_active = 1"
        sql += " ORDER BY priority DESC, success_rate DESC"
        with self._guard("get_locations"):
            rows = self._conn.execute(sql).fetchall()
        return [
            Location(
                id=r["id"],
                name=r["name"],
                country=r["country"],
                country_code=r["country_code"],
                region=r["region"],
                city=r["city"],
                search_code=r["search_code"],
                priority=r["priority"],
                is_active=bool(r["is_active"]),
                last_searched=_parse_dt(r["last_searched"]),
                success_rate=r["success_rate"],
                total_searches=r["total_searches"],
                successful_searches=r["successful_searches"],
            )
            for r in rows
        ]

    def update_location(self, location: Location) -> None:
        with self._guard("update_location"):
            self._conn.execute(
                """
                UPDATE locations
                SET priority = ?, is_active = ?, last_searched = ?, success_rate = ?,
                    total_searches = ?, successful_searches = ?
                WHERE id = ?
                """,
                (
                    location.priority,
                    int(location.is_active),
                    _iso(location.last_searched),
                    location.success_rate,
                    location.total_searches,
                    location.successful_searches,
                    location.id,
                ),
            )
            self._conn.commit()

    # --- Search runs ---

    def insert_search_run(self, run: SearchRunRecord) -> int:
        """Record one executed query variant. Returns the row ID."""
        with self._guard("insert_search_run"):
            cursor = self._conn.execute(
                """
                INSERT INTO search_runs
                    (operation_id, query, location, results_count, duration_ms,
                     success, error, executed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run.operation_id,
                    run.query,
                    run.location,
                    run.results_count,
                    run.duration_ms,
                    int(run.success),
                    run.error,
                    run.executed_at.isoformat(),
                ),
            )
            self._conn.commit()
        return cursor.lastrowid or 0

    def get_search_runs(
        self, operation_id: str | None = None, limit: int = 100,
    ) -> list[SearchRunRecord]:
        sql = "SELECT * FROM search_runs"
        params: list[Any] = []
        if operation_id:
            sql += " WHERE operation_id = ?"
            params.append(operation_id)
        sql += " ORDER BY id DESC LIMIT ?"
        params.append(limit)
        with self._guard("get_search_runs"):
            rows = self._conn.execute(sql, params).fetchall()
        return [
            SearchRunRecord(
                operation_id=r["operation_id"],
                query=r["query"],
                location=r["location"],
                results_count=r["results_count"],
                duration_ms=r["duration_ms"],
                success=bool(r["success"]),
                error=r["error"],
                executed_at=datetime.fromisoformat(r["executed_at"]),
            )
            for r in rows
        ]

    def get_stats(self) -> dict[str, float]:
        """Return headline counts across all tables."""
        with self._guard("get_stats"):
            profiles = self._conn.execute("SELECT COUNT(*) FROM profiles").fetchone()[0]
            runs = self._conn.execute("SELECT COUNT(*) FROM search_runs").fetchone()[0]
            operations = self._conn.execute(
                "SELECT COUNT(*) FROM search_operations",
            ).fetchone()[0]
            active = self._conn.execute(
                "SELECT COUNT(*) FROM search_operations WHERE status IN ('pending', 'running')",
            ).fetchone()[0]
            rate = self._conn.execute(
                "SELECT AVG(CAST(success AS REAL)) FROM search_runs",
            ).fetchone()[0]
        return {
            "total_profiles": profiles,
            "total_search_runs": runs,
            "total_operations": operations,
            "active_operations": active,
            "avg_success_rate": rate or 0.0,
        }
