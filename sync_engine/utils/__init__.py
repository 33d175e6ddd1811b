"""
Utility modules for the sync engine.

Provides common utilities for:
- Structured logging
- Error handling
"""

from .logging import setup_logging, setup_logging_from_config, get_logger, bind_view
from .errors import (
    SyncEngineError,
    FetchError,
    TransportError,
    RemoteError,
    ValidationError,
    InvalidTransitionError,
    PublishError,
    ConfigurationError,
)

__all__ = [
    "setup_logging",
    "setup_logging_from_config",
    "get_logger",
    "bind_view",
    "SyncEngineError",
    "FetchError",
    "TransportError",
    "RemoteError",
    "ValidationError",
    "InvalidTransitionError",
    "PublishError",
    "ConfigurationError",
]
