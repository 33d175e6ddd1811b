"""Prometheus metrics collection for the sync engine."""

from typing import Dict, Any, Optional

from prometheus_client import (
    Counter, Histogram, CollectorRegistry, generate_latest
)


class SyncMetrics:
    """Centralized metrics collection for one engine host."""

    def __init__(self, namespace: str = "sync_engine", registry: Optional[CollectorRegistry] = None):
        self.namespace = namespace
        self.registry = registry or CollectorRegistry()
        self._counts: Dict[str, int] = {}

        self.fetches = Counter(
            f"{namespace}_fetches_total",
            "Page fetches by endpoint and outcome",
            ["endpoint", "outcome"],
            registry=self.registry
        )

        self.fetch_duration = Histogram(
            f"{namespace}_fetch_duration_seconds",
            "Page fetch duration in seconds",
            ["endpoint"],
            buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0],
            registry=self.registry
        )

        self.retries = Counter(
            f"{namespace}_fetch_retries_total",
            "Fetch retries by endpoint and transport code",
            ["endpoint", "transport_code"],
            registry=self.registry
        )

        self.stale_responses = Counter(
            f"{namespace}_stale_responses_discarded_total",
            "Responses discarded because their sequence token was superseded",
            ["view"],
            registry=self.registry
        )

        self.duplicates_dropped = Counter(
            f"{namespace}_duplicate_records_dropped_total",
            "Records dropped on merge because their id was already in the window",
            ["view"],
            registry=self.registry
        )

        self.cache_lookups = Counter(
            f"{namespace}_cache_lookups_total",
            "Cache lookups by result (hit, stale, miss)",
            ["result"],
            registry=self.registry
        )

        self.cache_refreshes = Counter(
            f"{namespace}_cache_refreshes_total",
            "Background cache refreshes by outcome",
            ["outcome"],
            registry=self.registry
        )

        self.publishes = Counter(
            f"{namespace}_publishes_total",
            "Bulk edit publishes by outcome",
            ["view", "outcome"],
            registry=self.registry
        )

    def _bump(self, name: str) -> None:
        self._counts[name] = self._counts.get(name, 0) + 1

    def record_fetch(self, endpoint: str, outcome: str, duration: Optional[float] = None) -> None:
        """Record a finished page fetch."""
        self.fetches.labels(endpoint=endpoint, outcome=outcome).inc()
        if duration is not None:
            self.fetch_duration.labels(endpoint=endpoint).observe(duration)
        self._bump(f"fetch_{outcome}")

    def record_retry(self, endpoint: str, transport_code: str) -> None:
        self.retries.labels(endpoint=endpoint, transport_code=transport_code).inc()
        self._bump("retry")

    def record_stale_response(self, view: str) -> None:
        self.stale_responses.labels(view=view).inc()
        self._bump("stale_response")

    def record_duplicates(self, view: str, count: int) -> None:
        if count <= 0:
            return
        self.duplicates_dropped.labels(view=view).inc(count)
        self._counts["duplicates_dropped"] = self._counts.get("duplicates_dropped", 0) + count

    def record_cache_lookup(self, result: str) -> None:
        self.cache_lookups.labels(result=result).inc()
        self._bump(f"cache_{result}")

    def record_cache_refresh(self, outcome: str) -> None:
        self.cache_refreshes.labels(outcome=outcome).inc()
        self._bump(f"refresh_{outcome}")

    def record_publish(self, view: str, outcome: str) -> None:
        self.publishes.labels(view=view, outcome=outcome).inc()
        self._bump(f"publish_{outcome}")

    def get_metrics(self) -> Dict[str, Any]:
        """Get a plain snapshot of recorded counts."""
        return dict(self._counts)

    def export(self) -> bytes:
        """Export metrics in Prometheus text format."""
        return generate_latest(self.registry)
