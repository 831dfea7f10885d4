# src/apicapture/capture/buffer.py
"""Bounded buffer holding sampled events until they are delivered.

Unlike a ring buffer, a full EventBuffer rejects new events and keeps the
oldest ones: the oldest events are the ones already part of an in-flight or
retried batch, and removing them would desynchronize the "remove the first N
after a confirmed send" bookkeeping.

Key design decisions:
- deque without maxlen: capacity is checked explicitly before append
- take_first(n) is the only removal path, used after a confirmed delivery
- last_flush_at lives here so the size and age triggers read one state
"""

from __future__ import annotations

import threading
from collections import deque
from typing import TYPE_CHECKING

import structlog

from apicapture.core.clock import DEFAULT_CLOCK

if TYPE_CHECKING:
    from apicapture.contracts.events import EventRecord
    from apicapture.core.clock import Clock

logger = structlog.get_logger(__name__)


class EventBuffer:
    """Capacity-bounded, insertion-ordered event buffer.

    Thread Safety:
        Every operation holds the buffer's lock. The lock is re-entrant and
        is normally shared with the CaptureManager, FlushScheduler and
        Dispatcher so that "append then decide" and "confirm then remove"
        are each atomic across the whole triad of buffer contents,
        last_flush_at and scheduler state.

    Example:
        buffer = EventBuffer(capacity=100)
        if buffer.try_append(event):
            batch = buffer.snapshot()
            ...
            buffer.take_first(len(batch))
    """

    # Overflow warnings are aggregated over this many drops
    _LOG_INTERVAL = 100

    def __init__(
        self,
        capacity: int,
        *,
        clock: Clock | None = None,
        lock: threading.RLock | None = None,
    ) -> None:
        """Initialize the buffer.

        Args:
            capacity: Maximum number of events held at once.
            clock: Clock used to stamp last_flush_at. Defaults to system clock.
            lock: Shared re-entrant lock. A private one is created if omitted.

        Raises:
            ValueError: If capacity < 1.
        """
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._lock = lock if lock is not None else threading.RLock()
        self._events: deque[EventRecord] = deque()
        self._dropped_count = 0
        self._last_logged_drop_count = 0
        # Counting from construction so a quiet start is not an "overdue" batch
        self._last_flush_at = self._clock.monotonic()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def dropped_count(self) -> int:
        """Number of events rejected because the buffer was full."""
        with self._lock:
            return self._dropped_count

    @property
    def last_flush_at(self) -> float:
        """Monotonic time of the last send attempt (or of construction)."""
        with self._lock:
            return self._last_flush_at

    def mark_flushed(self, now: float) -> None:
        """Record a send attempt at ``now``."""
        with self._lock:
            self._last_flush_at = now

    def seconds_since_flush(self) -> float:
        with self._lock:
            return self._clock.monotonic() - self._last_flush_at

    def try_append(self, event: EventRecord) -> bool:
        """Append an event unless the buffer is full.

        Overflow is a silent drop from the caller's point of view: it is
        counted, never raised. The first drop is logged, then one warning
        per _LOG_INTERVAL drops, since a down collector keeps the buffer
        full for every request.

        Returns:
            True if appended, False if dropped.
        """
        with self._lock:
            if len(self._events) >= self._capacity:
                self._dropped_count += 1
                since_last = self._dropped_count - self._last_logged_drop_count
                if self._dropped_count == 1 or since_last >= self._LOG_INTERVAL:
                    logger.warning(
                        "Skipped event, event buffer is full",
                        dropped_since_last_log=since_last,
                        dropped_total=self._dropped_count,
                        capacity=self._capacity,
                    )
                    self._last_logged_drop_count = self._dropped_count
                return False
            self._events.append(event)
            return True

    def snapshot(self) -> list[EventRecord]:
        """Return the buffered events, oldest first, without removing them."""
        with self._lock:
            return list(self._events)

    def take_first(self, count: int) -> list[EventRecord]:
        """Remove and return up to ``count`` oldest events.

        Args:
            count: Number of events confirmed delivered.

        Returns:
            The removed events in FIFO order. Shorter than ``count`` only if
            the buffer held fewer events.
        """
        with self._lock:
            taken = []
            for _ in range(min(count, len(self._events))):
                taken.append(self._events.popleft())
            return taken

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
