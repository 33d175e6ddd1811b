"""Warm-start snapshots of a view's first page."""

import time
from typing import Any, Callable, Dict, List, Optional

import structlog

from ..schemas.models import FilterSignature, Record
from ..storage.kv_store import KeyValueStore, InMemoryKeyValueStore

SNAPSHOT_VERSION = 1


class SnapshotStore:
    """
    Persists the records last shown by a view so the next mount can paint
    them before its first live fetch completes.

    Snapshots are advisory: anything unreadable, from another version or for
    a different signature is ignored, and a live fetch always replaces them.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        ttl_seconds: Optional[float] = 86400,
        max_records: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store if store is not None else InMemoryKeyValueStore(clock=clock)
        self.ttl_seconds = ttl_seconds
        self.max_records = max_records
        self.clock = clock
        self.logger = structlog.get_logger("snapshots")

    @staticmethod
    def _key(view: str) -> str:
        return f"snapshot:{view}"

    async def load(self, view: str, signature: FilterSignature) -> Optional[List[Record]]:
        raw = await self.store.get(self._key(view))
        if raw is None:
            return None
        try:
            if raw.get("version") != SNAPSHOT_VERSION:
                self.logger.debug("Ignoring snapshot from another version", view=view, version=raw.get("version"))
                return None
            if raw.get("signature") != signature.key():
                return None
            return [Record.from_snapshot(item) for item in raw["records"]]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            self.logger.warning("Ignoring corrupt snapshot", view=view, error=str(e))
            return None

    async def save(self, view: str, signature: FilterSignature, records: List[Record]) -> None:
        if self.max_records is not None:
            records = records[: self.max_records]
        payload: Dict[str, Any] = {
            "version": SNAPSHOT_VERSION,
            "signature": signature.key(),
            "saved_at": self.clock(),
            "records": [record.to_snapshot() for record in records],
        }
        await self.store.put(self._key(view), payload, ttl=self.ttl_seconds)
        self.logger.debug("Snapshot saved", view=view, records=len(records))

    async def discard(self, view: str) -> bool:
        return await self.store.delete(self._key(view)) > 0
