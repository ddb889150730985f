"""In-process event bus separating "instances created" from "provision them".

Publishing is fire-and-forget from the producer's side: a handler failure
is logged, never raised to the publisher, and never stops the other
handlers for the same event. A single dispatcher drains a bounded queue,
so events are delivered in publish order; handlers for one event run
concurrently (no ordering among them), bounded by a semaphore.

Example:
    async with EventBus() as bus:
        @bus.on(EventType.CREATED)
        async def provision(event: Event) -> None:
            await runner.run(event.job_id, event.inventory)

        await bus.publish(Event.created("job-1", instances))
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from stratus.events import Event, EventType

type Handler = Callable[[Event], Awaitable[None]]

EVENT_QUEUE_SIZE = 100
MAX_CONCURRENT_HANDLERS = 16


class EventBus:
    """Bounded asyncio publish/subscribe dispatcher.

    Args:
        queue_size: Pending events before ``publish`` waits (backpressure).
        max_concurrent_handlers: Handler invocations allowed in flight.
        handler_timeout: Seconds after which a running handler is cancelled.
            None means no limit.
    """

    def __init__(
        self,
        *,
        queue_size: int = EVENT_QUEUE_SIZE,
        max_concurrent_handlers: int = MAX_CONCURRENT_HANDLERS,
        handler_timeout: float | None = None,
    ) -> None:
        self._handlers: defaultdict[EventType, list[Handler]] = defaultdict(list)
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=queue_size)
        self._slots = asyncio.Semaphore(max_concurrent_handlers)
        self._handler_timeout = handler_timeout
        self._inflight: set[asyncio.Task[None]] = set()
        self._dispatcher: asyncio.Task[None] | None = None
        self._log = logger.bind(component="bus")

    # -------------------------------------------------------------------------
    # Subscription
    # -------------------------------------------------------------------------

    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        self._handlers[event_type].append(handler)
        self._log.debug(
            "Registered handler {handler} for {event_type}",
            handler=getattr(handler, "__name__", repr(handler)), event_type=event_type,
        )

    def on[F: Callable[..., Any]](self, *event_types: EventType) -> Callable[[F], F]:
        """Decorator form of ``subscribe`` for one or more event types."""

        def decorator(fn: F) -> F:
            for event_type in event_types:
                self.subscribe(event_type, fn)
            return fn

        return decorator

    def handlers(self, event_type: EventType) -> tuple[Handler, ...]:
        return tuple(self._handlers.get(event_type, ()))

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    async def publish(self, event: Event) -> None:
        """Queue an event, waiting only if the queue is full.

        The dispatcher is started on first publish if ``start`` was not called.
        """
        self.start()
        await self._queue.put(event)
        self._log.debug("Published {type} (job {job})", type=event.type, job=event.job_id)

    def publish_nowait(self, event: Event) -> None:
        """Queue an event from synchronous code.

        Raises:
            asyncio.QueueFull: If the bus is saturated.
            RuntimeError: If called outside a running event loop.
        """
        self.start()
        self._queue.put_nowait(event)
        self._log.debug("Published {type} (job {job})", type=event.type, job=event.job_id)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._dispatcher is not None and not self._dispatcher.done()

    def start(self) -> None:
        if self.running:
            return
        self._dispatcher = asyncio.get_running_loop().create_task(
            self._dispatch_loop(), name="stratus-event-bus"
        )
        self._log.info("Started event dispatcher")

    async def _dispatch_loop(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                for handler in self.handlers(event.type):
                    await self._slots.acquire()
                    task = asyncio.create_task(self._run_handler(handler, event))
                    self._inflight.add(task)
                    task.add_done_callback(self._handler_done)
            finally:
                self._queue.task_done()

    def _handler_done(self, task: asyncio.Task[None]) -> None:
        self._inflight.discard(task)
        self._slots.release()

    async def _run_handler(self, handler: Handler, event: Event) -> None:
        name = getattr(handler, "__name__", repr(handler))
        try:
            if self._handler_timeout is None:
                await handler(event)
            else:
                async with asyncio.timeout(self._handler_timeout):
                    await handler(event)
        except Exception:
            self._log.exception(
                "Handler {name} failed for {type} (job {job})",
                name=name, type=event.type, job=event.job_id,
            )
        else:
            self._log.debug(
                "Handler {name} processed {type} (job {job})",
                name=name, type=event.type, job=event.job_id,
            )

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        if not self._queue.empty():
            self.start()
        await self._queue.join()
        while self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    async def stop(self) -> None:
        """Cancel the dispatcher and any running handlers."""
        tasks = [*self._inflight]
        if self._dispatcher is not None:
            tasks.append(self._dispatcher)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._dispatcher = None
        self._log.info("Stopped event dispatcher")

    async def __aenter__(self) -> EventBus:
        self.start()
        return self

    async def __aexit__(self, exc_type: object, *_: Any) -> None:
        if exc_type is None:
            await self.join()
        await self.stop()


__all__ = ["EVENT_QUEUE_SIZE", "EventBus", "Handler", "MAX_CONCURRENT_HANDLERS"]
