"""Injectable key-value stores used for cache entries and warm-start snapshots."""

import fnmatch
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple


class KeyValueStore(ABC):
    """Async key-value interface with optional per-key TTL metadata."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the stored value or ``None`` when absent or expired."""
        pass

    @abstractmethod
    async def put(self, key: str, value: Dict[str, Any], ttl: Optional[float] = None) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> int:
        """Remove ``key``; returns the number of keys removed."""
        pass

    @abstractmethod
    async def keys(self, pattern: str = "*") -> List[str]:
        """List keys matching a glob pattern."""
        pass

    async def close(self) -> None:
        """Release any underlying resources."""
        return None


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store; values are kept as given, TTLs measured with ``clock``."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._data: Dict[str, Tuple[Dict[str, Any], Optional[float]]] = {}

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self.clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def put(self, key: str, value: Dict[str, Any], ttl: Optional[float] = None) -> None:
        expires_at = self.clock() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> int:
        return 1 if self._data.pop(key, None) is not None else 0

    async def keys(self, pattern: str = "*") -> List[str]:
        return [key for key in list(self._data) if fnmatch.fnmatch(key, pattern) and await self.get(key) is not None]

    def __len__(self) -> int:
        return len(self._data)
