"""
Incremental synchronisation engine.

Provides the components that keep one list view in step with a
paginated remote collection:
- Pagination with offset and cursor continuation
- Stale-while-revalidate result-set caching
- Debounced search and scroll-triggered loading
- Validated status edits and bulk publishing
"""

from .transition_policy import TransitionPolicy, TransitionRule, BulkOptions, NONE_STATUS, DEFAULT_TRANSITION_RULES
from .notifications import Notification, NotificationCenter, NotificationLevel
from .cache_layer import CacheLayer, CacheResult, format_age
from .debouncer import SearchDebouncer
from .pagination import PaginationController, Window
from .scroll_trigger import ScrollTrigger, ScrollGeometry
from .reconciler import BulkEditReconciler, PublishResult, ReconcilerState
from .snapshots import SnapshotStore
from .view import ViewSession, ViewState

__all__ = [
    "TransitionPolicy",
    "TransitionRule",
    "BulkOptions",
    "NONE_STATUS",
    "DEFAULT_TRANSITION_RULES",
    "Notification",
    "NotificationCenter",
    "NotificationLevel",
    "CacheLayer",
    "CacheResult",
    "format_age",
    "SearchDebouncer",
    "PaginationController",
    "Window",
    "ScrollTrigger",
    "ScrollGeometry",
    "BulkEditReconciler",
    "PublishResult",
    "ReconcilerState",
    "SnapshotStore",
    "ViewSession",
    "ViewState",
]
