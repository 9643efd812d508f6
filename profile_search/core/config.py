"""Configuration models and YAML loader for the profile search engine.

Credentials never live in YAML: each provider reads its own environment
variable (see the provider modules).
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from profile_search.core.schemas import OperationConfig

SEARCH_PROVIDER_CHOICES = ("google", "bing", "fallback")

ONE_MINUTE = 60.0
ONE_DAY = 86_400.0
THIRTY_DAYS = 30 * ONE_DAY


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/search.db"

    @field_validator("path")
    @classmethod
    def path_is_sqlite_file(cls, v: str) -> str:
        if not v.endswith(".db"):
            msg = "database path must end with .db"
            raise ValueError(msg)
        return v


class SearchProviderConfig(BaseModel):
    """Web search provider selection."""

    provider: str | None = None
    max_results: int = Field(default=10, ge=1, le=100)
    timeout_s: float = Field(default=30.0, gt=0)

    @field_validator("provider")
    @classmethod
    def provider_known(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.lower().strip()
        if v not in SEARCH_PROVIDER_CHOICES:
            msg = f"search provider must be one of {list(SEARCH_PROVIDER_CHOICES)}, got '{v}'"
            raise ValueError(msg)
        return v


class RateLimitConfig(BaseModel):
    """Token bucket size for a single provider: capacity requests per period."""

    capacity: int = Field(ge=1)
    period_s: float = Field(gt=0)


DEFAULT_RATE_LIMITS: dict[str, RateLimitConfig] = {
    "google": RateLimitConfig(capacity=100, period_s=ONE_DAY),
    "bing": RateLimitConfig(capacity=1000, period_s=ONE_DAY),
    "apollo": RateLimitConfig(capacity=1000, period_s=THIRTY_DAYS),
    "openai": RateLimitConfig(capacity=60, period_s=ONE_MINUTE),
    "anthropic": RateLimitConfig(capacity=60, period_s=ONE_MINUTE),
    "gemini": RateLimitConfig(capacity=60, period_s=ONE_MINUTE),
    "openrouter": RateLimitConfig(capacity=60, period_s=ONE_MINUTE),
    "ollama": RateLimitConfig(capacity=60, period_s=ONE_MINUTE),
}


class AIConfig(BaseModel):
    """Language model providers used for query expansion and filtering."""

    default_provider: str | None = None
    models: dict[str, str] = Field(default_factory=dict)
    timeout_s: float = Field(default=30.0, gt=0)
    local_timeout_s: float = Field(default=60.0, gt=0)


class ApolloConfig(BaseModel):
    """Contact enrichment provider."""

    base_url: str = "https://api.apollo.io/v1"
    timeout_s: float = Field(default=30.0, gt=0)


class LoggingConfig(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    search: SearchProviderConfig = Field(default_factory=SearchProviderConfig)
    rate_limits: dict[str, RateLimitConfig] = Field(default_factory=dict)
    ai: AIConfig = Field(default_factory=AIConfig)
    apollo: ApolloConfig = Field(default_factory=ApolloConfig)
    operation: OperationConfig = Field(default_factory=OperationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def rate_limit_for(self, provider: str) -> RateLimitConfig | None:
        """Return the configured bucket for a provider, falling back to defaults."""
        return self.rate_limits.get(provider) or DEFAULT_RATE_LIMITS.get(provider)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
