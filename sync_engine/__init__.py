"""
View sync engine.

Keeps client-side views of large remote record collections in sync
with the server: incremental pagination, result-set caching, debounced
search, scroll-triggered loading and validated bulk status edits.
"""

from .framework.config import EngineConfig, EndpointConfig
from .engine.view import ViewSession, ViewState
from .schemas.models import Record, FilterSignature

__version__ = "0.1.0"

__all__ = [
    "EngineConfig",
    "EndpointConfig",
    "ViewSession",
    "ViewState",
    "Record",
    "FilterSignature",
]
