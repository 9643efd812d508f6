"""Core data models for the profile search engine."""

import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

MIN_RECOMMENDED_DELAY_MS = 30_000


class OperationStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {OperationStatus.COMPLETED, OperationStatus.FAILED, OperationStatus.CANCELLED}
)


class OperationConfig(BaseModel):
    """Per-operation knobs, snapshotted into the operation record."""

    max_locations: int = Field(default=10, ge=1, le=50)
    delay_between_searches_ms: int = Field(default=120_000, ge=0)
    enable_query_expansion: bool = True
    enable_result_filtering: bool = True
    enable_contact_enrichment: bool = False
    ai_provider: str | None = None
    relevance_threshold: float = Field(default=0.7, ge=0.0, le=1.0)

    @field_validator("delay_between_searches_ms")
    @classmethod
    def warn_short_delay(cls, v: int) -> int:
        if v < MIN_RECOMMENDED_DELAY_MS:
            logger.warning(
                "delay_between_searches_ms=%d is below the recommended %d ms; "
                "providers may start rate limiting",
                v, MIN_RECOMMENDED_DELAY_MS,
            )
        return v


class SearchOperation(BaseModel):
    """One query run across one or more locations.

    Mutable: the orchestrator owns the in-memory copy while the operation is
    active and mirrors every change to the store.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    query: str
    status: OperationStatus = OperationStatus.PENDING
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: datetime | None = None
    total_locations: int = Field(default=0, ge=0)
    searched_locations: int = Field(default=0, ge=0)
    total_results: int = Field(default=0, ge=0)
    current_location: str | None = None
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    error: str | None = None
    config: OperationConfig = Field(default_factory=OperationConfig)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class Location(BaseModel):
    """A geographic search scope with historical success statistics."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    country: str
    country_code: str
    region: str | None = None
    city: str | None = None
    search_code: str
    priority: int = 1
    is_active: bool = True
    success_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    last_searched: datetime | None = None
    total_searches: int = Field(default=0, ge=0)
    successful_searches: int = Field(default=0, ge=0)


class SearchResult(BaseModel):
    """A raw hit returned by a search provider.

    Frozen: scores are attached with ``model_copy(update=...)``.
    """

    model_config = ConfigDict(frozen=True)

    title: str = ""
    url: str
    snippet: str = ""
    display_url: str = ""
    source: str
    timestamp: datetime = Field(default_factory=datetime.now)
    relevance_score: float | None = Field(default=None, ge=0.0, le=1.0)


class Organization(BaseModel):
    name: str | None = None
    website_url: str | None = None
    industry: str | None = None
    size: str | None = None


class Contact(BaseModel):
    """Contact details returned by an enrichment provider."""

    id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    name: str | None = None
    title: str | None = None
    company: str | None = None
    email: str | None = None
    phone: str | None = None
    linkedin_url: str | None = None
    twitter_url: str | None = None
    facebook_url: str | None = None
    organization: Organization | None = None


class ProfileRecord(BaseModel):
    """A person profile extracted from a search result and persisted."""

    id: str | None = None
    name: str
    title: str | None = None
    company: str | None = None
    location: str | None = None
    profile_url: str
    email: str | None = None
    phone: str | None = None
    linkedin_url: str | None = None
    source: str
    search_query: str
    search_location: str = "unknown"
    operation_id: str | None = None
    extracted_at: datetime = Field(default_factory=datetime.now)
    enriched_at: datetime | None = None
    relevance_score: float | None = None
    enrichment_data: dict[str, Any] | None = None


class QueryExpansion(BaseModel):
    variants: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str | None = None


class FilterOutcome(BaseModel):
    kept: list[SearchResult] = Field(default_factory=list)
    removed_count: int = Field(default=0, ge=0)
    reasoning: str | None = None


class SearchProgress(BaseModel):
    """Snapshot returned to callers polling an operation."""

    operation_id: str
    status: OperationStatus
    progress: float
    current_location: str | None = None
    searched_locations: int
    total_locations: int
    results_found: int
    estimated_time_remaining_s: float | None = None
    last_update: datetime = Field(default_factory=datetime.now)


class SearchRunRecord(BaseModel):
    """One executed query variant against one location."""

    operation_id: str | None = None
    query: str
    location: str
    results_count: int = 0
    duration_ms: int = 0
    success: bool = True
    error: str | None = None
    executed_at: datetime = Field(default_factory=datetime.now)
