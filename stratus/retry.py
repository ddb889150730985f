"""Retry policy for provider calls.

One logical call is attempted up to ``max_attempts`` times. Between
attempts the policy sleeps a fixed ``delay`` (no jitter, no growth unless
``backoff`` is raised above 1.0). Only failures classified as retryable
are retried; anything else surfaces on the first occurrence.

Example:
    from stratus.retry import RetryPolicy, retry

    policy = RetryPolicy(max_attempts=3, delay=2.0)

    @retry(policy)
    async def list_servers():
        ...

    # Or without a decorator
    servers = await policy.call(client.list_servers)

Cancellation is never retried: ``asyncio.CancelledError`` is a
BaseException and interrupts the inter-attempt sleep immediately.
"""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import ParamSpec, TypeVar

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from stratus.core.exceptions import is_retryable

P = ParamSpec("P")
T = TypeVar("T")

RetryPredicate = Callable[[BaseException], bool]

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 2.0
RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    sleep = state.next_action.sleep if state.next_action else 0.0
    logger.bind(component="retry").warning(
        "Retry {attempt} after {error}: {message}. Waiting {sleep:.1f}s...",
        attempt=state.attempt_number,
        error=type(exc).__name__,
        message=exc,
        sleep=sleep,
    )


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How many times to attempt a call and how long to wait in between.

    Args:
        max_attempts: Total attempts, including the first one.
        delay: Seconds to sleep between attempts.
        backoff: Delay multiplier per attempt. 1.0 keeps the delay fixed.
        max_delay: Cap for the grown delay when backoff > 1.0.
        on: Predicate selecting which failures are retried.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    delay: float = DEFAULT_RETRY_DELAY
    backoff: float = 1.0
    max_delay: float = 60.0
    on: RetryPredicate = field(default=is_retryable)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay < 0:
            raise ValueError("delay must not be negative")

    def retrying(self) -> AsyncRetrying:
        wait = (
            wait_fixed(self.delay)
            if self.backoff <= 1.0
            else wait_exponential(
                multiplier=self.delay, exp_base=self.backoff, max=self.max_delay
            )
        )
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait,
            retry=retry_if_exception(self.on),
            before_sleep=_log_retry,
            reraise=True,
        )

    async def call(
        self, fn: Callable[P, Awaitable[T]], /, *args: P.args, **kwargs: P.kwargs
    ) -> T:
        """Run ``fn`` under this policy and return its result."""
        async for attempt in self.retrying():
            with attempt:
                return await fn(*args, **kwargs)
        raise AssertionError("unreachable")  # pragma: no cover


def retry(
    policy: RetryPolicy | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator form of RetryPolicy.call."""
    resolved = policy or RetryPolicy()

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await resolved.call(func, *args, **kwargs)

        return wrapper

    return decorator


# =============================================================================
# Common Predicates
# =============================================================================


def on_status_code(*codes: int) -> RetryPredicate:
    """Create a predicate that retries on specific HTTP status codes.

    Works with ProviderError and anything else exposing a ``status`` attribute.
    """

    def predicate(e: BaseException) -> bool:
        return getattr(e, "status", None) in codes

    return predicate


def any_of(*predicates: RetryPredicate) -> RetryPredicate:
    """Combine predicates with OR logic (retry if ANY predicate matches)."""

    def combined(e: BaseException) -> bool:
        return any(p(e) for p in predicates)

    return combined


__all__ = [
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_RETRY_DELAY",
    "RETRYABLE_STATUSES",
    "RetryPolicy",
    "any_of",
    "on_status_code",
    "retry",
]
