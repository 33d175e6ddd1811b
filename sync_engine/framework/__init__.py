"""
Core framework components for the sync engine.

Provides configuration, retry policy and metrics shared by
every view's engine.
"""

from .config import (
    EngineConfig,
    RemoteApiConfig,
    PaginationConfig,
    CacheConfig,
    InteractionConfig,
    SnapshotConfig,
    ObservabilityConfig,
    EndpointConfig,
    HasMorePolicy,
)
from .retry import RetryPolicy, call_with_retry
from .metrics import SyncMetrics

__all__ = [
    "EngineConfig",
    "RemoteApiConfig",
    "PaginationConfig",
    "CacheConfig",
    "InteractionConfig",
    "SnapshotConfig",
    "ObservabilityConfig",
    "EndpointConfig",
    "HasMorePolicy",
    "RetryPolicy",
    "call_with_retry",
    "SyncMetrics",
]
