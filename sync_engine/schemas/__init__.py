"""Data model for the sync engine."""

from .models import (
    Record,
    FilterSignature,
    Position,
    PageResult,
    PendingEdit,
    CacheEntry,
    FetchState,
    FetchRequest,
)

__all__ = [
    "Record",
    "FilterSignature",
    "Position",
    "PageResult",
    "PendingEdit",
    "CacheEntry",
    "FetchState",
    "FetchRequest",
]
