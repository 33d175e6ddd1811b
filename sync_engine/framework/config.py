"""
Configuration management for the sync engine.

Provides typed configuration classes with environment variable
injection and validation.
"""

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any

from ..utils.errors import ConfigurationError


class HasMorePolicy(str, Enum):
    """How an endpoint decides whether more pages exist."""
    EXPLICIT_THEN_HEURISTIC = "explicit_then_heuristic"
    HEURISTIC = "heuristic"


def _ttl_by_kind_from_env() -> Dict[str, float]:
    raw = os.getenv("SYNC_ENGINE_CACHE_TTL_BY_KIND")
    if not raw:
        return {"counts": 900.0}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            "SYNC_ENGINE_CACHE_TTL_BY_KIND must be a JSON object",
            config_key="SYNC_ENGINE_CACHE_TTL_BY_KIND",
            config_value=raw,
        ) from e
    return {str(kind): float(ttl) for kind, ttl in parsed.items()}


@dataclass
class RemoteApiConfig:
    """Remote data API configuration."""
    base_url: str = field(default_factory=lambda: os.getenv("SYNC_ENGINE_API_BASE_URL", "http://localhost:5000/api"))
    timeout_seconds: float = field(default_factory=lambda: float(os.getenv("SYNC_ENGINE_API_TIMEOUT", "30")))
    aggregate_timeout_seconds: float = field(default_factory=lambda: float(os.getenv("SYNC_ENGINE_API_AGGREGATE_TIMEOUT", "300")))
    max_retries: int = field(default_factory=lambda: int(os.getenv("SYNC_ENGINE_API_MAX_RETRIES", "2")))
    retry_backoff_seconds: float = field(default_factory=lambda: float(os.getenv("SYNC_ENGINE_API_RETRY_BACKOFF", "0.5")))
    max_connections: int = field(default_factory=lambda: int(os.getenv("SYNC_ENGINE_API_MAX_CONNECTIONS", "10")))


@dataclass
class PaginationConfig:
    """Pagination configuration."""
    page_size: int = field(default_factory=lambda: int(os.getenv("SYNC_ENGINE_PAGE_SIZE", "1000")))
    offset_ceiling: int = field(default_factory=lambda: int(os.getenv("SYNC_ENGINE_OFFSET_CEILING", "2000")))
    has_more_policy: HasMorePolicy = field(
        default_factory=lambda: HasMorePolicy(os.getenv("SYNC_ENGINE_HAS_MORE_POLICY", "explicit_then_heuristic"))
    )


@dataclass
class CacheConfig:
    """Result-set cache configuration."""
    default_ttl_seconds: float = field(default_factory=lambda: float(os.getenv("SYNC_ENGINE_CACHE_TTL", "600")))
    ttl_by_kind: Dict[str, float] = field(default_factory=_ttl_by_kind_from_env)
    namespace: str = field(default_factory=lambda: os.getenv("SYNC_ENGINE_CACHE_NAMESPACE", "sync"))

    def ttl_for(self, kind: Optional[str]) -> float:
        """TTL in seconds for a resource kind."""
        if kind and kind in self.ttl_by_kind:
            return self.ttl_by_kind[kind]
        return self.default_ttl_seconds


@dataclass
class InteractionConfig:
    """User interaction timing configuration."""
    search_quiet_period: float = field(default_factory=lambda: float(os.getenv("SYNC_ENGINE_SEARCH_QUIET_PERIOD", "0.5")))
    scroll_debounce: float = field(default_factory=lambda: float(os.getenv("SYNC_ENGINE_SCROLL_DEBOUNCE", "0.1")))
    scroll_margin_px: float = field(default_factory=lambda: float(os.getenv("SYNC_ENGINE_SCROLL_MARGIN", "200")))
    bulk_min_selection: int = field(default_factory=lambda: int(os.getenv("SYNC_ENGINE_BULK_MIN_SELECTION", "2")))


@dataclass
class SnapshotConfig:
    """Warm-start snapshot configuration."""
    enabled: bool = field(default_factory=lambda: os.getenv("SYNC_ENGINE_SNAPSHOTS_ENABLED", "true").lower() == "true")
    redis_url: Optional[str] = field(default_factory=lambda: os.getenv("SYNC_ENGINE_SNAPSHOT_REDIS_URL"))
    ttl_seconds: Optional[int] = field(default_factory=lambda: int(os.getenv("SYNC_ENGINE_SNAPSHOT_TTL", "86400")))


@dataclass
class ObservabilityConfig:
    """Observability configuration."""
    log_level: str = field(default_factory=lambda: os.getenv("SYNC_ENGINE_LOG_LEVEL", "info"))
    log_format: str = field(default_factory=lambda: os.getenv("SYNC_ENGINE_LOG_FORMAT", "json"))
    metrics_enabled: bool = field(default_factory=lambda: os.getenv("SYNC_ENGINE_METRICS_ENABLED", "true").lower() == "true")


@dataclass
class EndpointConfig:
    """Declaration of one remote collection endpoint."""
    name: str
    path: str
    publish_path: Optional[str] = None
    limit: Optional[int] = None
    aggregate: bool = False
    has_more_policy: Optional[HasMorePolicy] = None
    cache_kind: Optional[str] = None
    records_key: str = "records"
    params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("endpoint name is required", config_key="name")
        if not self.path:
            raise ConfigurationError("endpoint path is required", config_key="path", config_value=self.name)
        if self.limit is not None and self.limit <= 0:
            raise ConfigurationError("endpoint limit must be positive", config_key="limit", config_value=self.limit)


@dataclass
class EngineConfig:
    """Base configuration for one view's sync engine."""
    view_name: str
    environment: str = field(default_factory=lambda: os.getenv("SYNC_ENGINE_ENV", "local"))

    remote: RemoteApiConfig = field(default_factory=RemoteApiConfig)
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    interaction: InteractionConfig = field(default_factory=InteractionConfig)
    snapshots: SnapshotConfig = field(default_factory=SnapshotConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.view_name:
            raise ConfigurationError("view_name is required", config_key="view_name")

        if self.environment not in ["local", "dev", "staging", "prod", "test"]:
            raise ConfigurationError(
                f"Invalid environment: {self.environment}",
                config_key="environment",
                config_value=self.environment,
            )

        if self.pagination.page_size <= 0:
            raise ConfigurationError(
                "page_size must be positive",
                config_key="pagination.page_size",
                config_value=self.pagination.page_size,
            )

        if self.pagination.offset_ceiling <= 0:
            raise ConfigurationError(
                "offset_ceiling must be positive",
                config_key="pagination.offset_ceiling",
                config_value=self.pagination.offset_ceiling,
            )

        if self.remote.max_retries < 0:
            raise ConfigurationError(
                "max_retries cannot be negative",
                config_key="remote.max_retries",
                config_value=self.remote.max_retries,
            )

    @classmethod
    def from_env(cls, view_name: str) -> "EngineConfig":
        """Create configuration from environment variables."""
        return cls(view_name=view_name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "view_name": self.view_name,
            "environment": self.environment,
            "remote": {
                "base_url": self.remote.base_url,
                "timeout_seconds": self.remote.timeout_seconds,
                "aggregate_timeout_seconds": self.remote.aggregate_timeout_seconds,
                "max_retries": self.remote.max_retries,
                "retry_backoff_seconds": self.remote.retry_backoff_seconds,
                "max_connections": self.remote.max_connections,
            },
            "pagination": {
                "page_size": self.pagination.page_size,
                "offset_ceiling": self.pagination.offset_ceiling,
                "has_more_policy": self.pagination.has_more_policy.value,
            },
            "cache": {
                "default_ttl_seconds": self.cache.default_ttl_seconds,
                "ttl_by_kind": dict(self.cache.ttl_by_kind),
                "namespace": self.cache.namespace,
            },
            "interaction": {
                "search_quiet_period": self.interaction.search_quiet_period,
                "scroll_debounce": self.interaction.scroll_debounce,
                "scroll_margin_px": self.interaction.scroll_margin_px,
                "bulk_min_selection": self.interaction.bulk_min_selection,
            },
            "snapshots": {
                "enabled": self.snapshots.enabled,
                "redis_url": self.snapshots.redis_url,
                "ttl_seconds": self.snapshots.ttl_seconds,
            },
            "observability": {
                "log_level": self.observability.log_level,
                "log_format": self.observability.log_format,
                "metrics_enabled": self.observability.metrics_enabled,
            },
        }
