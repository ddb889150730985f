"""Per-instance lifecycle state machine.

    REQUESTED → CREATING → (AWAITING_NETWORK) → READY
    READY → DELETE_REQUESTED → AWAITING_ABSENCE → GONE

Any non-terminal state may move to FAILED. Instances are identified by
``(name, region)``. Each create or delete begins a fresh Lifecycle for
that key, which supersedes whatever was tracked before; a superseded
lifecycle keeps validating its own moves but no longer updates the
tracker. Finished lifecycles leave the active set and are remembered in a
bounded history.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from enum import StrEnum

from loguru import logger

from stratus.core.exceptions import InvalidTransitionError

type InstanceKey = tuple[str, str]

DEFAULT_HISTORY_SIZE = 1024


class InstanceState(StrEnum):
    REQUESTED = "requested"
    CREATING = "creating"
    AWAITING_NETWORK = "awaiting_network"
    READY = "ready"
    DELETE_REQUESTED = "delete_requested"
    AWAITING_ABSENCE = "awaiting_absence"
    GONE = "gone"
    FAILED = "failed"


_TRANSITIONS: dict[InstanceState, frozenset[InstanceState]] = {
    InstanceState.REQUESTED: frozenset({InstanceState.CREATING}),
    InstanceState.CREATING: frozenset({InstanceState.AWAITING_NETWORK, InstanceState.READY}),
    InstanceState.AWAITING_NETWORK: frozenset({InstanceState.READY}),
    InstanceState.READY: frozenset({InstanceState.DELETE_REQUESTED}),
    InstanceState.DELETE_REQUESTED: frozenset({InstanceState.AWAITING_ABSENCE}),
    InstanceState.AWAITING_ABSENCE: frozenset({InstanceState.GONE}),
    InstanceState.GONE: frozenset(),
    InstanceState.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({InstanceState.GONE, InstanceState.FAILED})

# A create starts from REQUESTED; a delete can target instances created by
# an earlier process, so it starts from READY.
_ENTRY_STATES = {
    InstanceState.CREATING: InstanceState.REQUESTED,
    InstanceState.DELETE_REQUESTED: InstanceState.READY,
}


def can_transition(current: InstanceState, target: InstanceState) -> bool:
    if target is InstanceState.FAILED:
        return current not in TERMINAL_STATES
    return target in _TRANSITIONS[current]


class Lifecycle:
    """One create or delete run of a single instance."""

    __slots__ = ("_tracker", "key", "state")

    def __init__(self, tracker: InstanceTracker, key: InstanceKey, state: InstanceState) -> None:
        self._tracker = tracker
        self.key = key
        self.state = state

    @property
    def name(self) -> str:
        return self.key[0]

    @property
    def current(self) -> bool:
        """False once a newer create or delete of the same instance took over."""
        return self._tracker._owner(self.key) is self

    def advance(self, target: InstanceState) -> None:
        self._tracker._advance(self, target)

    def __repr__(self) -> str:
        return f"Lifecycle({self.name!r}, region={self.key[1]!r}, state={self.state})"


class InstanceTracker:
    """Thread-safe record of where each instance is in its lifecycle.

    Example:
        lifecycle = tracker.begin("web-0", InstanceState.CREATING, region="nyc1")
        lifecycle.advance(InstanceState.AWAITING_NETWORK)
        lifecycle.advance(InstanceState.READY)
        tracker.state("web-0", region="nyc1")  # InstanceState.READY

    Args:
        provider: Provider name, bound to every log line.
        history_size: Finished lifecycles remembered for ``state()``.
    """

    def __init__(self, provider: str, *, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        self._active: dict[InstanceKey, Lifecycle] = {}
        self._finished: OrderedDict[InstanceKey, InstanceState] = OrderedDict()
        self._history_size = history_size
        self._lock = threading.Lock()
        self._log = logger.bind(component="lifecycle", provider=provider)

    def begin(self, name: str, target: InstanceState, *, region: str = "") -> Lifecycle:
        """Start a create (``CREATING``) or delete (``DELETE_REQUESTED``) of an instance."""
        try:
            entry = _ENTRY_STATES[target]
        except KeyError:
            raise InvalidTransitionError(
                f"Instance {name}: a lifecycle cannot begin at {target}"
            ) from None

        key = (name, region)
        lifecycle = Lifecycle(self, key, target)
        with self._lock:
            previous = self._active.get(key)
            self._active[key] = lifecycle
            self._finished.pop(key, None)
        if previous is not None:
            self._log.debug(
                "{name}: {previous} superseded by a new lifecycle", name=name, previous=previous.state
            )
        self._log.debug("{name}: {current} -> {target}", name=name, current=entry, target=target)
        return lifecycle

    def _owner(self, key: InstanceKey) -> Lifecycle | None:
        with self._lock:
            return self._active.get(key)

    def _advance(self, lifecycle: Lifecycle, target: InstanceState) -> None:
        with self._lock:
            current = lifecycle.state
            if not can_transition(current, target):
                raise InvalidTransitionError(
                    f"Instance {lifecycle.name}: cannot move from {current} to {target}"
                )
            lifecycle.state = target
            owned = self._active.get(lifecycle.key) is lifecycle
            if owned and target in TERMINAL_STATES:
                del self._active[lifecycle.key]
                self._finished[lifecycle.key] = target
                while len(self._finished) > self._history_size:
                    self._finished.popitem(last=False)
        self._log.debug(
            "{name}: {current} -> {target}{note}",
            name=lifecycle.name, current=current, target=target,
            note="" if owned else " (superseded)",
        )

    def state(self, name: str, *, region: str = "") -> InstanceState | None:
        """Latest known state of ``(name, region)``, or None if never seen or forgotten."""
        key = (name, region)
        with self._lock:
            lifecycle = self._active.get(key)
            if lifecycle is not None:
                return lifecycle.state
            return self._finished.get(key)

    def active(self) -> dict[InstanceKey, InstanceState]:
        """States of every instance with a create or delete in progress."""
        with self._lock:
            return {key: lc.state for key, lc in self._active.items()}


__all__ = [
    "InstanceKey",
    "InstanceState",
    "InstanceTracker",
    "Lifecycle",
    "TERMINAL_STATES",
    "can_transition",
]
