# src/apicapture/capture/dispatcher.py
"""Asynchronous batch delivery with confirm-then-remove semantics.

The dispatcher never removes events before the collector has accepted them:

1. send_batch() snapshots the buffer, records flush_size and stamps
   last_flush_at (optimistically, so the age trigger does not re-fire while
   the send is in flight), then hands the batch to a worker executor.
2. On an accepted (201) response the flush_size oldest events are removed
   and the pending scheduled flush is cancelled.
3. On any other status or a transport failure the buffer is left intact and
   a flush is scheduled max_batch_time later. There is no backoff: the retry
   cadence is the batch time.

Only one batch is in flight at a time. Events appended meanwhile stay behind
the in-flight range, so removing the first flush_size events on success is
always exact.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import CancelledError, Executor, Future
from functools import partial
from typing import TYPE_CHECKING

import structlog

from apicapture.capture.errors import classify_failure
from apicapture.contracts.enums import FlushReason
from apicapture.contracts.events import encode_events
from apicapture.core.clock import DEFAULT_CLOCK

if TYPE_CHECKING:
    from apicapture.capture.buffer import EventBuffer
    from apicapture.capture.protocols import CollectorProtocol
    from apicapture.capture.scheduler import FlushScheduler
    from apicapture.contracts.events import BatchResponse, EventRecord
    from apicapture.core.clock import Clock

logger = structlog.get_logger(__name__)


def payload_size_bytes(events: list[EventRecord]) -> int:
    """Size of the batch as JSON, for failure diagnostics."""
    return len(encode_events(events))


class Dispatcher:
    """Submits buffer snapshots to the collector on a worker executor.

    Thread Safety:
        send_batch() and the completion callback both hold the buffer's
        (shared) lock while touching the buffer, last_flush_at, the scheduler
        or the in-flight flag. The collector call itself runs on the
        executor, outside the lock.
    """

    def __init__(
        self,
        collector: CollectorProtocol,
        buffer: EventBuffer,
        scheduler: FlushScheduler,
        executor: Executor,
        *,
        clock: Clock | None = None,
        on_config_etag: Callable[[str | None], None] | None = None,
        debug: bool = False,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            collector: Destination for batches.
            buffer: Buffer to snapshot and trim. Its lock is the shared lock.
            scheduler: Flush scheduler to cancel or re-arm.
            executor: Runs collector calls off the request thread.
            clock: Clock used to stamp last_flush_at. Defaults to system clock.
            on_config_etag: Called (outside the lock) with the config ETag
                advertised by an accepted batch response.
            debug: Log payload details on failure.
        """
        self._collector = collector
        self._buffer = buffer
        self._scheduler = scheduler
        self._executor = executor
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._on_config_etag = on_config_etag
        self._debug = debug
        self._lock = buffer.lock

        self._in_flight: Future[BatchResponse] | None = None
        self._idle = threading.Event()
        self._idle.set()

        self._batches_sent = 0
        self._events_sent = 0
        self._batch_failures = 0

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight is not None

    @property
    def batches_sent(self) -> int:
        return self._batches_sent

    @property
    def events_sent(self) -> int:
        return self._events_sent

    @property
    def batch_failures(self) -> int:
        return self._batch_failures

    def send_batch(self, reason: FlushReason = FlushReason.EXPLICIT) -> bool:
        """Start sending the current buffer contents.

        Returns:
            True if a batch was handed to the executor. False if the buffer
            is empty, a batch is already in flight, or the executor refused.
        """
        with self._lock:
            if self._in_flight is not None:
                return False
            events = self._buffer.snapshot()
            if not events:
                return False

            flush_size = len(events)
            self._buffer.mark_flushed(self._clock.monotonic())
            if self._debug:
                logger.info(
                    "Flushing events",
                    reason=reason.value,
                    flush_size=flush_size,
                    capacity=self._buffer.capacity,
                )

            try:
                future = self._executor.submit(self._collector.create_events_batch, events)
            except RuntimeError as e:
                # Executor already shut down
                logger.warning("Could not submit event batch", flush_size=flush_size, error=str(e))
                return False

            self._in_flight = future
            self._idle.clear()
        # Inline executors complete immediately; attach outside the lock either way
        future.add_done_callback(partial(self._on_complete, events))
        return True

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no batch is in flight.

        Returns:
            True if idle, False if the timeout elapsed first.
        """
        return self._idle.wait(timeout)

    def _on_complete(self, events: list[EventRecord], future: Future[BatchResponse]) -> None:
        """Completion callback; may run on any executor thread."""
        flush_size = len(events)
        error: BaseException | None
        if future.cancelled():
            error = CancelledError("event batch cancelled before it was sent")
        else:
            error = future.exception()
        response = future.result() if error is None else None
        etag: str | None = None

        with self._lock:
            try:
                if response is not None and response.accepted:
                    self._buffer.take_first(flush_size)
                    self._scheduler.cancel()
                    if len(self._buffer) > 0:
                        # Events appended during the flight still need a deadline
                        self._scheduler.ensure_scheduled()
                    self._batches_sent += 1
                    self._events_sent += flush_size
                    etag = response.config_etag
                    logger.info(
                        "Sent events successfully",
                        flush_size=flush_size,
                        capacity=self._buffer.capacity,
                    )
                else:
                    self._batch_failures += 1
                    self._log_failure(events, response, error)
                    self._scheduler.ensure_scheduled()
            finally:
                self._in_flight = None
                self._idle.set()

        if etag is not None and self._on_config_etag is not None:
            try:
                self._on_config_etag(etag)
            except Exception as e:
                logger.warning("Config ETag callback failed", error=str(e))

    def _log_failure(
        self,
        events: list[EventRecord],
        response: BatchResponse | None,
        error: BaseException | None,
    ) -> None:
        flush_size = len(events)
        if response is not None:
            logger.warning(
                "Collector rejected event batch",
                status_code=response.status_code,
                flush_size=flush_size,
                capacity=self._buffer.capacity,
                buffer_size=len(self._buffer),
            )
        else:
            logger.warning(
                "Failed to send event batch",
                failure_kind=classify_failure(error).value if error is not None else "unknown",
                error=str(error),
                error_type=type(error).__name__,
                flush_size=flush_size,
                capacity=self._buffer.capacity,
                buffer_size=len(self._buffer),
            )
        if self._debug:
            logger.warning(
                "Failed batch payload",
                payload_bytes=payload_size_bytes(events),
            )
