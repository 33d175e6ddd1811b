"""
Structured logging setup for applications hosting sync engine views.

Every engine component logs through ``structlog.get_logger("<component>")``
with keyword context; this module only decides how those events are
rendered and which context is attached everywhere.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from structlog.stdlib import LoggerFactory


def app_name_processor(app_name: str):
    """Processor adding ``app`` to every event unless already bound."""

    def add_app_name(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("app", app_name)
        return event_dict

    return add_app_name


def setup_logging(
    app_name: str,
    log_level: str = "info",
    format_type: str = "json"
) -> None:
    """
    Setup structured logging for the engine host.

    Args:
        app_name: Name of the hosting application, attached as ``app``
        log_level: Logging level (debug, info, warning, error)
        format_type: Output format (json, console)
    """
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger("sync_engine").setLevel(level)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        app_name_processor(app_name),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if format_type == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def setup_logging_from_config(config, app_name: str) -> None:
    """Apply an ``ObservabilityConfig``."""
    setup_logging(app_name, log_level=config.log_level, format_type=config.log_format)


def get_logger(name: Optional[str] = None, **context: Any) -> structlog.BoundLogger:
    """Get a structured logger, optionally with context already bound."""
    logger = structlog.get_logger(name)
    return logger.bind(**context) if context else logger


def bind_view(logger: structlog.BoundLogger, view_name: str, **context: Any) -> structlog.BoundLogger:
    """Add the view name (and any extra context) to a logger."""
    return logger.bind(view=view_name, **context)


def add_correlation_id(logger: structlog.BoundLogger, correlation_id: str) -> structlog.BoundLogger:
    return logger.bind(correlation_id=correlation_id)
