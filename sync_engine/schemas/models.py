"""
Data models for the sync engine.

Defines the core data structures shared by the pagination,
cache and reconciliation components with serialization support.
"""

import hashlib
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, List


@dataclass
class Record:
    """One remote entity: stable id, field bag and optional status."""
    id: str
    fields: Dict[str, Any] = field(default_factory=dict)
    status: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], status_field: str = "status") -> "Record":
        """Build a record from an API payload row."""
        if "id" not in data or data["id"] in (None, ""):
            raise ValueError("record payload is missing an id")
        fields = {k: v for k, v in data.items() if k not in ("id", status_field)}
        return cls(id=str(data["id"]), fields=fields, status=data.get(status_field))

    def to_dict(self, status_field: str = "status") -> Dict[str, Any]:
        """Convert to dictionary."""
        result = {"id": self.id}
        result.update(self.fields)
        result[status_field] = self.status
        return result

    def to_snapshot(self) -> Dict[str, Any]:
        """API-independent form used for cache entries and warm-start snapshots."""
        return {"id": self.id, "fields": dict(self.fields), "status": self.status}

    @classmethod
    def from_snapshot(cls, data: Dict[str, Any]) -> "Record":
        return cls(id=str(data["id"]), fields=dict(data.get("fields") or {}), status=data.get("status"))


@dataclass(frozen=True, eq=False)
class FilterSignature:
    """Search term plus filters identifying one result set."""
    search: str = ""
    filters: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "search", (self.search or "").strip())
        cleaned = {k: v for k, v in (self.filters or {}).items() if v not in (None, "", [], ())}
        object.__setattr__(self, "filters", cleaned)

    def key(self) -> str:
        """Stable cache key for this signature."""
        payload = json.dumps(
            {"search": self.search.lower(), "filters": self.filters},
            sort_keys=True,
            default=str,
        )
        return hashlib.md5(payload.encode()).hexdigest()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FilterSignature):
            return NotImplemented
        return self.key() == other.key()

    def __hash__(self) -> int:
        return hash(self.key())

    def with_search(self, search: str) -> "FilterSignature":
        return FilterSignature(search=search, filters=dict(self.filters))

    def with_filters(self, filters: Dict[str, Any]) -> "FilterSignature":
        return FilterSignature(search=self.search, filters=dict(filters))

    def to_params(self) -> Dict[str, Any]:
        """Query parameters for the remote API."""
        params: Dict[str, Any] = {}
        if self.search:
            params["search"] = self.search
        params.update(self.filters)
        return params

    def to_dict(self) -> Dict[str, Any]:
        return {"search": self.search, "filters": dict(self.filters)}


@dataclass(frozen=True)
class Position:
    """Where the next page starts: an integer offset or an opaque cursor."""
    offset: Optional[int] = None
    cursor: Optional[str] = None

    def __post_init__(self):
        if (self.offset is None) == (self.cursor is None):
            raise ValueError("position requires exactly one of offset or cursor")
        if self.offset is not None and self.offset < 0:
            raise ValueError("offset cannot be negative")

    @classmethod
    def at_offset(cls, offset: int) -> "Position":
        return cls(offset=offset)

    @classmethod
    def at_cursor(cls, cursor: str) -> "Position":
        return cls(cursor=cursor)

    @property
    def is_cursor(self) -> bool:
        return self.cursor is not None

    def to_params(self) -> Dict[str, Any]:
        if self.cursor is not None:
            return {"cursor": self.cursor}
        return {"offset": self.offset}


@dataclass
class PageResult:
    """One loaded page."""
    records: List[Record]
    next_position: Optional[Position]
    has_more: bool
    total: Optional[int] = None
    cursor: Optional[str] = None
    degraded: bool = False


@dataclass
class PendingEdit:
    """An uncommitted proposed status change."""
    record_id: str
    from_state: Optional[str]
    to_state: Optional[str]
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "from_state": self.from_state,
            "to_state": self.to_state,
            "timestamp": self.timestamp,
        }


@dataclass
class CacheEntry:
    """Last-known-good payload for one cache key."""
    key: str
    payload: Any
    timestamp: float
    ttl: float
    kind: Optional[str] = None

    def age(self, now: float) -> float:
        return max(0.0, now - self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "payload": self.payload,
            "timestamp": self.timestamp,
            "ttl": self.ttl,
            "kind": self.kind,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            key=data["key"],
            payload=data.get("payload"),
            timestamp=float(data["timestamp"]),
            ttl=float(data["ttl"]),
            kind=data.get("kind"),
        )


class FetchState(Enum):
    """Lifecycle of a fetch request."""
    CREATED = "created"
    IN_FLIGHT = "in_flight"
    RETRIED = "retried"
    MERGED = "merged"
    FAILED = "failed"
    DISCARDED = "discarded"
    DISPOSED = "disposed"


@dataclass
class FetchRequest:
    """One page request tagged with the sequence token of its window."""
    token: int
    signature_key: str
    position: Position
    limit: int
    state: FetchState = FetchState.CREATED
    attempts: int = 0
    created_at: float = field(default_factory=time.time)

    def mark(self, state: FetchState) -> None:
        self.state = state
