"""
Error classes for the sync engine.

Provides structured error handling with error codes,
context information, and proper exception chaining.
"""

from typing import Optional, Dict, Any
from dataclasses import dataclass


@dataclass
class ErrorContext:
    """Error context information."""
    view: str
    operation: str
    signature_key: Optional[str] = None
    record_id: Optional[str] = None
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}


class SyncEngineError(Exception):
    """Base exception for sync engine errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        result = {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }

        if self.context:
            result["context"] = {
                "view": self.context.view,
                "operation": self.context.operation,
                "signature_key": self.context.signature_key,
                "record_id": self.context.record_id,
                "correlation_id": self.context.correlation_id,
                "metadata": self.context.metadata,
            }

        return result


class FetchError(SyncEngineError):
    """Error raised when a page cannot be loaded from the remote API."""

    def __init__(
        self,
        message: str,
        error_code: str = "FETCH_ERROR",
        endpoint: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            context=context,
            details=details or {}
        )
        self.endpoint = endpoint

        if endpoint:
            self.details["endpoint"] = endpoint

    @property
    def retryable(self) -> bool:
        return False


class TransportError(FetchError):
    """Network or timeout failure talking to the remote API."""

    def __init__(
        self,
        message: str,
        transport_code: str = "network",
        endpoint: Optional[str] = None,
        attempts: int = 1,
        status: Optional[int] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="TRANSPORT_ERROR",
            endpoint=endpoint,
            context=context,
            details=details or {}
        )
        self.transport_code = transport_code
        self.attempts = attempts
        self.status = status

        self.details["transport_code"] = transport_code
        self.details["attempts"] = attempts
        if status is not None:
            self.details["status"] = status

    @property
    def retryable(self) -> bool:
        return True


class RemoteError(FetchError):
    """Structured ``{error: message}`` payload returned by the remote API."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        endpoint: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="REMOTE_ERROR",
            endpoint=endpoint,
            context=context,
            details=details or {}
        )
        self.status = status

        if status is not None:
            self.details["status"] = status


class ValidationError(SyncEngineError):
    """Error raised when a proposed edit is rejected locally."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None,
        error_code: str = "VALIDATION_ERROR"
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            context=context,
            details=details or {}
        )
        self.field = field
        self.value = value

        if field:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = str(value)


class InvalidTransitionError(ValidationError):
    """Error raised when a status transition is not allowed."""

    def __init__(
        self,
        message: str,
        from_state: Optional[str] = None,
        to_state: Optional[str] = None,
        record_id: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            field="status",
            value=to_state,
            context=context,
            details=details or {},
            error_code="INVALID_TRANSITION"
        )
        self.from_state = from_state
        self.to_state = to_state
        self.record_id = record_id

        self.details["from_state"] = from_state
        self.details["to_state"] = to_state
        if record_id:
            self.details["record_id"] = record_id


class PublishError(SyncEngineError):
    """Error raised when a publish round-trip fails."""

    def __init__(
        self,
        message: str,
        requested_count: Optional[int] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="PUBLISH_ERROR",
            context=context,
            details=details or {}
        )
        self.requested_count = requested_count

        if requested_count is not None:
            self.details["requested_count"] = requested_count


class ConfigurationError(SyncEngineError):
    """Error raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            context=context,
            details=details or {}
        )
        self.config_key = config_key
        self.config_value = config_value

        if config_key:
            self.details["config_key"] = config_key
        if config_value is not None:
            self.details["config_value"] = str(config_value)


def create_error_context(
    view: str,
    operation: str,
    signature_key: Optional[str] = None,
    record_id: Optional[str] = None,
    correlation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> ErrorContext:
    """Create error context."""
    return ErrorContext(
        view=view,
        operation=operation,
        signature_key=signature_key,
        record_id=record_id,
        correlation_id=correlation_id,
        metadata=metadata or {}
    )
