"""Pytest configuration and fixtures."""

import pytest

from sync_engine.engine.cache_layer import CacheLayer
from sync_engine.engine.notifications import NotificationCenter
from sync_engine.engine.transition_policy import TransitionPolicy
from sync_engine.framework.config import (
    CacheConfig,
    EndpointConfig,
    EngineConfig,
    InteractionConfig,
    ObservabilityConfig,
    PaginationConfig,
    RemoteApiConfig,
    SnapshotConfig,
)
from sync_engine.framework.metrics import SyncMetrics
from sync_engine.framework.retry import RetryPolicy
from sync_engine.storage.kv_store import InMemoryKeyValueStore
from tests.fixtures.fake_remote import FakeClock, FakeRemoteSource


@pytest.fixture
def clock():
    """Manually advanced clock fixture."""
    return FakeClock()


@pytest.fixture
def policy():
    return TransitionPolicy()


@pytest.fixture
def notifications():
    return NotificationCenter("test-view")


@pytest.fixture
def metrics():
    return SyncMetrics(namespace="test_sync")


@pytest.fixture
def store(clock):
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def cache_config():
    return CacheConfig(default_ttl_seconds=600, ttl_by_kind={"counts": 900}, namespace="test")


@pytest.fixture
def cache(cache_config, store, clock, notifications, metrics):
    return CacheLayer(cache_config, store=store, clock=clock, notifications=notifications, metrics=metrics)


@pytest.fixture
def endpoint():
    return EndpointConfig(
        name="records",
        path="/records",
        publish_path="/records/status",
    )


@pytest.fixture
def pagination_config():
    return PaginationConfig(page_size=1000, offset_ceiling=2000)


@pytest.fixture
def fast_retry():
    """Retry policy without real backoff."""
    return RetryPolicy(max_retries=2, backoff_seconds=0, timeout_seconds=5)


@pytest.fixture
def source():
    return FakeRemoteSource()


@pytest.fixture
def engine_config():
    """Engine configuration with test-friendly timings."""
    return EngineConfig(
        view_name="test-view",
        environment="test",
        remote=RemoteApiConfig(
            base_url="http://remote.test/api",
            timeout_seconds=5,
            aggregate_timeout_seconds=10,
            max_retries=2,
            retry_backoff_seconds=0,
            max_connections=4,
        ),
        pagination=PaginationConfig(page_size=1000, offset_ceiling=2000),
        cache=CacheConfig(default_ttl_seconds=600, ttl_by_kind={"counts": 900}, namespace="test"),
        interaction=InteractionConfig(
            search_quiet_period=0.05,
            scroll_debounce=0.01,
            scroll_margin_px=200,
            bulk_min_selection=2,
        ),
        snapshots=SnapshotConfig(enabled=True, redis_url=None, ttl_seconds=3600),
        observability=ObservabilityConfig(log_level="debug", log_format="console", metrics_enabled=True),
    )
