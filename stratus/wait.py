"""Generic wait/polling utilities for providers.

Two recurring needs share this loop: "await public IP" after a create and
"await absence" after a delete. Polling is bounded by attempt count, not
wall-clock time, so the budget is ``max_attempts × interval``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from loguru import logger

from stratus.core.exceptions import ProviderError, TimeoutError

log = logger.bind(component="wait")


async def wait_until(
    check: Callable[[], Awaitable[bool]],
    *,
    interval: float,
    max_attempts: int,
    description: str = "condition",
    state: Callable[[], object] | None = None,
) -> None:
    """Evaluate ``check`` until it returns True.

    Errors raised by ``check`` propagate immediately. Cancellation takes
    effect at the next await, including mid-sleep.

    Args:
        check: Async predicate. True means done.
        interval: Seconds to sleep between evaluations.
        max_attempts: Maximum number of evaluations.
        description: Description for log and error messages.
        state: Optional callable returning the last observed state, included
            in the timeout error.

    Raises:
        TimeoutError: If ``check`` never returned True.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        if await check():
            log.debug(
                "{description} satisfied after {attempt} attempt(s)",
                description=description, attempt=attempt,
            )
            return
        if attempt < max_attempts:
            log.debug(
                "Waiting for {description} (attempt {attempt}/{max_attempts})",
                description=description, attempt=attempt, max_attempts=max_attempts,
            )
            await asyncio.sleep(interval)

    raise TimeoutError(description, max_attempts, state() if state else None)


async def wait_for_ready[T](
    poll_fn: Callable[[], Awaitable[T | None]],
    ready_check: Callable[[T], bool],
    *,
    interval: float,
    max_attempts: int,
    ignore: tuple[type[Exception], ...] = (),
    terminal_check: Callable[[T], bool] | None = None,
    describe: Callable[[T], object] | None = None,
    description: str = "resource",
) -> T:
    """Poll until ``poll_fn`` returns something that passes ``ready_check``.

    A ``None`` result, or one of the ``ignore`` exceptions, counts as "not
    ready yet" (e.g. a freshly created server that the API does not list yet).

    Args:
        poll_fn: Async function that fetches the resource state.
        ready_check: Returns True when the resource is ready.
        interval: Seconds between polls.
        max_attempts: Maximum number of polls.
        ignore: Exception types treated as "not ready yet".
        terminal_check: Returns True if the resource reached a failure state
            it will never leave (e.g. an errored action).
        describe: Renders the last observed state for the timeout error.
        description: Description for error messages.

    Returns:
        The ready resource.

    Raises:
        TimeoutError: If the resource never became ready.
        ProviderError: If the resource reached a terminal state.
    """
    found: list[T] = []
    last: object = None

    async def check() -> bool:
        nonlocal last
        try:
            result = await poll_fn()
        except ignore as e:
            last = f"{type(e).__name__}: {e}"
            return False
        if result is None:
            last = None
            return False
        last = describe(result) if describe else result
        if ready_check(result):
            found.append(result)
            return True
        if terminal_check is not None and terminal_check(result):
            raise ProviderError(f"{description} reached terminal state: {last!r}")
        return False

    await wait_until(
        check,
        interval=interval,
        max_attempts=max_attempts,
        description=description,
        state=lambda: last,
    )
    return found[-1]


__all__ = ["wait_for_ready", "wait_until"]
