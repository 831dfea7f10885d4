# src/apicapture/capture/scheduler.py
"""Flush scheduling: guarantees a send attempt within max_batch_time.

Under low traffic the size trigger never fires and the age trigger is only
evaluated when another event arrives. The FlushScheduler closes that gap with
a single one-shot timer that is armed lazily and cancelled when a send
happens for another reason.

State machine:
    IDLE --ensure_scheduled()--> SCHEDULED --timer--> FIRED --callback done--> IDLE
    SCHEDULED --cancel()--> IDLE

Invariant: at most one live timer per scheduler. Arming always cancels the
previous handle first, and every armed timer carries a token so a timer that
fires after being superseded or cancelled does nothing.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from apicapture.contracts.enums import SchedulerState

if TYPE_CHECKING:
    from apicapture.capture.protocols import TimerFactory, TimerHandle

logger = structlog.get_logger(__name__)


def daemon_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    """Default TimerFactory: a daemon threading.Timer (not yet started)."""
    timer = threading.Timer(delay, callback)
    timer.name = "apicapture-flush-timer"
    timer.daemon = True
    return timer


class FlushScheduler:
    """Cancellable, idempotent one-shot flush timer.

    Thread Safety:
        All state transitions hold the shared lock. The timer callback runs
        on the timer's own thread and re-acquires the lock before invoking
        on_fire, so on_fire executes inside the same critical section as
        appends and dispatch completions.
    """

    def __init__(
        self,
        delay_seconds: float,
        on_fire: Callable[[], None],
        *,
        lock: threading.RLock | None = None,
        timer_factory: TimerFactory | None = None,
        debug: bool = False,
    ) -> None:
        """Initialize an idle scheduler.

        Args:
            delay_seconds: Delay between arming and firing (max_batch_time).
            on_fire: Flush callback, invoked with the lock held.
            lock: Shared re-entrant lock. A private one is created if omitted.
            timer_factory: Creates timers. Defaults to daemon threading.Timer.
            debug: Log arm/cancel transitions.

        Raises:
            ValueError: If delay_seconds <= 0.
        """
        if delay_seconds <= 0:
            raise ValueError(f"delay_seconds must be > 0, got {delay_seconds}")
        self._delay = delay_seconds
        self._on_fire = on_fire
        self._lock = lock if lock is not None else threading.RLock()
        self._timer_factory: TimerFactory = timer_factory if timer_factory is not None else daemon_timer
        self._debug = debug
        self._state = SchedulerState.IDLE
        self._handle: TimerHandle | None = None
        self._token: object | None = None

    @property
    def state(self) -> SchedulerState:
        with self._lock:
            return self._state

    @property
    def is_scheduled(self) -> bool:
        with self._lock:
            return self._state == SchedulerState.SCHEDULED

    def ensure_scheduled(self) -> bool:
        """Arm the timer unless one is already pending.

        Returns:
            True if a new timer was armed, False if one was already scheduled.
        """
        with self._lock:
            if self._state == SchedulerState.SCHEDULED:
                return False
            self._cancel_handle()

            token = object()
            handle = self._timer_factory(self._delay, lambda: self._fire(token))
            self._token = token
            self._handle = handle
            self._state = SchedulerState.SCHEDULED
            handle.start()
            if self._debug:
                logger.info("Flush scheduled", delay_seconds=self._delay)
            return True

    def cancel(self) -> bool:
        """Cancel the pending timer, if any.

        Best effort: a timer whose callback already started cannot be
        un-fired, but its token no longer matches and it will do nothing.

        Returns:
            True if a scheduled timer was cancelled.
        """
        with self._lock:
            if self._state != SchedulerState.SCHEDULED:
                return False
            self._cancel_handle()
            self._state = SchedulerState.IDLE
            if self._debug:
                logger.info("Scheduled flush cancelled")
            return True

    def _cancel_handle(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._token = None

    def _fire(self, token: object) -> None:
        """Timer callback."""
        with self._lock:
            if token is not self._token or self._state != SchedulerState.SCHEDULED:
                # Superseded or cancelled while waiting for the lock
                return
            self._state = SchedulerState.FIRED
            self._handle = None
            self._token = None
            if self._debug:
                logger.info("Flushing events by scheduler")
            try:
                self._on_fire()
            except Exception as e:
                # Timer threads have nobody to report to
                logger.error("Scheduled flush failed", error=str(e), error_type=type(e).__name__)
            finally:
                # on_fire may have re-armed (e.g. send refused while in flight)
                if self._state == SchedulerState.FIRED:
                    self._state = SchedulerState.IDLE
