"""
Two-phase deletion with an undo grace window.

Each deferred deletion moves through Live -> PENDING -> RELEASED (or back to
Live through cancel). Expiry runs on a timer; cancellation goes through an
explicit token so a timer that fires after cancel() does nothing.
"""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, Optional, Protocol, TypeVar

from loguru import logger

T = TypeVar("T")


class TimerLike(Protocol):
    """The subset of threading.Timer the scheduler relies on."""

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerLike]


def default_timer_factory(interval: float, callback: Callable[[], None]) -> TimerLike:
    """Create a daemon threading.Timer."""
    timer = threading.Timer(interval, callback)
    timer.daemon = True
    return timer


class DeletionState(str, Enum):
    """State of a deferred deletion."""

    PENDING = "pending"
    RESTORED = "restored"
    RELEASED = "released"


@dataclass
class PendingDeletion(Generic[T]):
    """A payload waiting out its grace window."""

    key: str
    payload: T
    deadline: float  # time.monotonic() value
    on_release: Callable[[T], None]
    state: DeletionState = DeletionState.PENDING
    cancel_token: threading.Event = field(default_factory=threading.Event)
    timer: Optional[TimerLike] = None


class DeferredDeletions(Generic[T]):
    """Pending-deletion buffer keyed by an id.

    Args:
        timer_factory: Builds the expiry timer (threading.Timer by default)
        clock: Monotonic clock used for deadlines
    """

    def __init__(
        self,
        timer_factory: TimerFactory = default_timer_factory,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._timer_factory = timer_factory
        self._clock = clock
        self._pending: dict[str, PendingDeletion[T]] = {}
        self._lock = threading.Lock()

    def schedule(
        self,
        key: str,
        payload: T,
        grace_seconds: float,
        on_release: Callable[[T], None],
    ) -> PendingDeletion[T]:
        """Hold payload for grace_seconds, then hand it to on_release.

        If key is already pending, the earlier deletion is released first.
        """
        previous = None
        with self._lock:
            previous = self._pending.pop(key, None)
        if previous is not None:
            self._finalize(previous)

        pending = PendingDeletion(
            key=key,
            payload=payload,
            deadline=self._clock() + grace_seconds,
            on_release=on_release,
        )
        pending.timer = self._timer_factory(grace_seconds, lambda: self._expire(pending))

        with self._lock:
            self._pending[key] = pending
        pending.timer.start()

        logger.debug(f"Scheduled deletion of {key} in {grace_seconds:.1f}s")
        return pending

    def cancel(self, key: str) -> Optional[T]:
        """Undo a pending deletion.

        Returns:
            The held payload, or None if nothing is pending under key
        """
        with self._lock:
            pending = self._pending.pop(key, None)
            if pending is None:
                return None
            pending.cancel_token.set()
            pending.state = DeletionState.RESTORED

        if pending.timer is not None:
            pending.timer.cancel()
        logger.debug(f"Cancelled deletion of {key}")
        return pending.payload

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return key in self._pending

    def peek(self, key: str) -> Optional[T]:
        """Return the payload pending under key without cancelling it."""
        with self._lock:
            pending = self._pending.get(key)
        return pending.payload if pending is not None else None

    def pending_keys(self) -> list[str]:
        with self._lock:
            return list(self._pending.keys())

    def remaining(self, key: str) -> Optional[float]:
        """Seconds left in key's grace window, or None if not pending."""
        with self._lock:
            pending = self._pending.get(key)
        if pending is None:
            return None
        return max(0.0, pending.deadline - self._clock())

    def flush(self) -> int:
        """Release every pending deletion immediately.

        Returns:
            Number of deletions released
        """
        with self._lock:
            pending_items = list(self._pending.values())
            self._pending.clear()

        for pending in pending_items:
            if pending.timer is not None:
                pending.timer.cancel()
            self._finalize(pending)
        return len(pending_items)

    def _expire(self, pending: PendingDeletion[T]) -> None:
        with self._lock:
            if pending.cancel_token.is_set():
                return
            if self._pending.get(pending.key) is not pending:
                return
            del self._pending[pending.key]
        self._finalize(pending)

    def _finalize(self, pending: PendingDeletion[Any]) -> None:
        if pending.state is not DeletionState.PENDING:
            return
        pending.cancel_token.set()
        pending.state = DeletionState.RELEASED
        try:
            pending.on_release(pending.payload)
        except Exception:
            logger.exception(f"Release of {pending.key} failed")
        logger.debug(f"Released {pending.key}")
