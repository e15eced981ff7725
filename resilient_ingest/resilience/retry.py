"""Bounded retry with exponential backoff and permanent-error classification.

Wraps a single unreliable async operation. Permanent failures (bad
credentials, unknown resources, malformed requests) are raised on the first
attempt; everything else is retried up to ``max_attempts`` times with
jittered exponential backoff. Cancellation is never retried.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

import httpx
import structlog

from resilient_ingest.errors import (
    PermanentProviderError,
    ProviderError,
    TransientProviderError,
)
from resilient_ingest.resilience.backoff import ExponentialBackoff

if TYPE_CHECKING:
    from resilient_ingest.config.settings import Settings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

T = TypeVar("T")

PERMANENT_STATUS_CODES = frozenset({400, 401, 403, 404, 405, 410, 422})

_PERMANENT_MESSAGE_MARKERS = ("401", "403", "404", "unauthorized", "invalid api key")


def is_permanent_error(exc: BaseException) -> bool:
    """Default classifier: True when retrying the operation cannot help.

    Provider errors are classified by type alone: their messages carry
    request URLs, which may contain anything. Other exceptions are checked
    for an HTTP status and then for auth/not-found markers in the message.

    Args:
        exc: The exception raised by the operation.

    Returns:
        True for authentication, not-found and bad-request class failures.
    """
    if isinstance(exc, PermanentProviderError):
        return True
    if isinstance(exc, TransientProviderError):
        return False
    if isinstance(exc, ProviderError):
        return exc.status_code in PERMANENT_STATUS_CODES

    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in PERMANENT_STATUS_CODES

    message = str(exc).lower()
    return any(marker in message for marker in _PERMANENT_MESSAGE_MARKERS)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for one class of operation.

    Attributes:
        max_attempts: Total attempts including the first one.
        initial_delay: Delay in seconds before the second attempt.
        max_delay: Upper bound for any single delay in seconds.
        backoff_multiplier: Growth factor applied after each attempt.
        jitter: Fractional jitter applied to each delay (0.25 = ±25%).
        is_permanent: Classifier deciding which errors abort immediately.
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: float = 0.25
    is_permanent: Callable[[BaseException], bool] = field(default=is_permanent_error)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        """Build the default policy from application settings."""
        return cls(
            max_attempts=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
            backoff_multiplier=settings.retry_backoff_multiplier,
        )

    def backoff(self) -> ExponentialBackoff:
        """Fresh backoff sequence for one retry loop."""
        return ExponentialBackoff(
            base_delay=self.initial_delay,
            max_delay=self.max_delay,
            multiplier=self.backoff_multiplier,
            jitter_range=self.jitter,
        )


DEFAULT_RETRY_POLICY = RetryPolicy()


async def retry(
    operation: Callable[[], Awaitable[T]],
    label: str,
    policy: RetryPolicy | None = None,
) -> T:
    """Run ``operation`` with bounded retries.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        label: Name used in log entries (e.g. ``"feed:hnrss.org"``).
        policy: Retry configuration. Uses DEFAULT_RETRY_POLICY if None.

    Returns:
        The result of the first successful attempt.

    Raises:
        The permanent error immediately, or the last transient error once
        ``policy.max_attempts`` attempts have failed.
    """
    policy = policy or DEFAULT_RETRY_POLICY
    backoff = policy.backoff()

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            if policy.is_permanent(exc):
                logger.error(
                    "retry_permanent_error",
                    label=label,
                    attempt=attempt,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                raise

            if attempt == policy.max_attempts:
                logger.error(
                    "retry_exhausted",
                    label=label,
                    attempts=attempt,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                raise

            delay = backoff.next_delay()
            retry_after = getattr(exc, "retry_after", None)
            if retry_after is not None:
                delay = max(delay, min(float(retry_after), policy.max_delay))

            logger.warning(
                "retry_scheduled",
                label=label,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay_seconds=round(delay, 3),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await asyncio.sleep(delay)

    # Unreachable: the loop either returns or raises.
    raise RuntimeError(f"retry loop for {label} exited without a result")
