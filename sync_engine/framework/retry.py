"""Bounded retry with timeout for remote calls."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from ..utils.errors import FetchError, TransportError
from .config import RemoteApiConfig

logger = structlog.get_logger("retry")

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Retry configuration for one kind of remote call."""
    max_retries: int = 2
    backoff_seconds: float = 0.5
    timeout_seconds: Optional[float] = 30.0

    @classmethod
    def for_endpoint(cls, config: RemoteApiConfig, aggregate: bool = False) -> "RetryPolicy":
        """Build a policy from remote API config; aggregate endpoints get the long timeout."""
        return cls(
            max_retries=config.max_retries,
            backoff_seconds=config.retry_backoff_seconds,
            timeout_seconds=config.aggregate_timeout_seconds if aggregate else config.timeout_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based)."""
        return self.backoff_seconds * attempt


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    operation_name: str = "remote_call",
    on_retry: Optional[Callable[[int, FetchError], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` with a timeout, retrying retryable failures.

    Only ``TransportError`` (network, timeout, throttling) is retried. Any
    other ``FetchError`` propagates immediately. After ``max_retries``
    retries the last ``TransportError`` is raised with its attempt count.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            if policy.timeout_seconds:
                return await asyncio.wait_for(operation(), timeout=policy.timeout_seconds)
            return await operation()
        except asyncio.TimeoutError as e:
            error = TransportError(
                f"{operation_name} timed out after {policy.timeout_seconds}s",
                transport_code="timeout",
                attempts=attempt,
            )
            error.__cause__ = e
        except TransportError as e:
            error = e
            error.attempts = attempt
            error.details["attempts"] = attempt

        if attempt > policy.max_retries:
            logger.error(
                "Remote call failed after retries",
                operation=operation_name,
                attempts=attempt,
                transport_code=error.transport_code,
                error=error.message,
            )
            raise error

        delay = policy.delay_for(attempt)
        logger.warning(
            "Remote call failed, retrying",
            operation=operation_name,
            attempt=attempt,
            delay=delay,
            transport_code=error.transport_code,
            error=error.message,
        )
        if on_retry:
            on_retry(attempt, error)
        await sleep(delay)
