# src/apicapture/capture/manager.py
"""CaptureManager: the host-facing entry point of the capture subsystem.

For every completed request/response the host calls submit_event(). The
manager then:
1. Applies the host's skip predicate, if any
2. Samples the event (static + adaptive) using the cached sampling config
3. Masks the payload (host hook) and assigns the replay weight
4. Appends to the bounded buffer and evaluates the flush triggers
5. Sends immediately on a size/age trigger, otherwise arms the flush timer

Design principles:
- submit_event() never raises and never blocks on network I/O
- One re-entrant lock guards buffer contents, last_flush_at and the
  scheduler state; the sampling config is read outside it
- Telemetry must never break the monitored service: every failure in this
  subsystem is logged and absorbed

Thread Safety:
    submit_event() is called concurrently from request threads. Batch sends
    complete on executor threads, the flush timer fires on its own thread
    and the config refresher runs on another. All of them serialize on the
    shared lock before touching buffer/scheduler state.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

import structlog

from apicapture.capture.app_config import AppConfigCache, PeriodicConfigRefresher
from apicapture.capture.buffer import EventBuffer
from apicapture.capture.dispatcher import Dispatcher
from apicapture.capture.sampling import SamplingDecider
from apicapture.capture.scheduler import FlushScheduler
from apicapture.contracts.enums import FlushReason
from apicapture.core.clock import DEFAULT_CLOCK

if TYPE_CHECKING:
    import random

    from apicapture.capture.protocols import CollectorProtocol, TimerFactory
    from apicapture.contracts.config import RuntimeCaptureConfig
    from apicapture.contracts.events import EventRecord
    from apicapture.core.clock import Clock

logger = structlog.get_logger(__name__)

SkipPredicate = Callable[["EventRecord"], bool]
MaskFunction = Callable[["EventRecord"], "EventRecord"]


class CaptureManager:
    """Samples, buffers and ships captured API events.

    Example:
        >>> manager = CaptureManager(config, collector)
        >>> manager.start()
        >>> manager.submit_event(EventRecord(payload={...}, user_id="u-1"))
        >>> manager.close()
    """

    def __init__(
        self,
        config: RuntimeCaptureConfig,
        collector: CollectorProtocol,
        *,
        skip: SkipPredicate | None = None,
        mask: MaskFunction | None = None,
        clock: Clock | None = None,
        executor: Executor | None = None,
        timer_factory: TimerFactory | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the manager and its components.

        Args:
            config: Runtime capture configuration.
            collector: Configured collector used for config fetches and batches.
            skip: Host predicate; events for which it returns True are ignored.
            mask: Host redaction hook applied to kept events before buffering.
            clock: Clock for batch age and config freshness. Defaults to system clock.
            executor: Runs collector calls. Defaults to a single-worker pool
                owned (and shut down) by the manager.
            timer_factory: Creates flush timers. Defaults to daemon threading.Timer.
            rng: Random source for sampling.
        """
        self._config = config
        self._collector = collector
        self._skip = skip
        self._mask = mask
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._debug = config.debug

        self._owns_executor = executor is None
        self._executor: Executor = (
            executor if executor is not None else ThreadPoolExecutor(max_workers=1, thread_name_prefix="apicapture-dispatch")
        )

        self._lock = threading.RLock()
        self._config_cache = AppConfigCache(
            collector,
            refresh_interval_seconds=config.config_refresh_interval_seconds,
            clock=self._clock,
        )
        self._refresher = PeriodicConfigRefresher(self._config_cache)
        self._decider = SamplingDecider(
            self._config_cache,
            static_sampling_percentage=config.static_sampling_percentage,
            rng=rng,
        )
        self._buffer = EventBuffer(config.max_events_in_memory, clock=self._clock, lock=self._lock)
        self._scheduler = FlushScheduler(
            config.max_batch_time_seconds,
            self._flush_on_timer,
            lock=self._lock,
            timer_factory=timer_factory,
            debug=self._debug,
        )
        self._dispatcher = Dispatcher(
            collector,
            self._buffer,
            self._scheduler,
            self._executor,
            clock=self._clock,
            on_config_etag=self._on_config_etag,
            debug=self._debug,
        )

        # Health metrics (guarded by _metrics_lock; request threads write them)
        self._metrics_lock = threading.Lock()
        self._events_submitted = 0
        self._events_skipped = 0
        self._events_sampled_out = 0
        self._events_failed = 0

        self._closed = threading.Event()

        logger.info(
            "Capture manager initialized",
            collector=collector.name,
            max_events_in_memory=config.max_events_in_memory,
            max_batch_time_seconds=config.max_batch_time_seconds,
            static_sampling_percentage=config.static_sampling_percentage,
        )

    # ------------------------------------------------------------------
    # Component access (read-only, for hosts and tests)
    # ------------------------------------------------------------------

    @property
    def config(self) -> RuntimeCaptureConfig:
        return self._config

    @property
    def config_cache(self) -> AppConfigCache:
        return self._config_cache

    @property
    def buffer(self) -> EventBuffer:
        return self._buffer

    @property
    def scheduler(self) -> FlushScheduler:
        return self._scheduler

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def capture_request_body(self) -> bool:
        """Whether host integrations should capture request bodies."""
        return self._config.request_body_processing_enabled

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic sampling-config refresh. Idempotent."""
        if self._closed.is_set():
            return
        self._refresher.start()

    def close(self, timeout: float = 5.0) -> None:
        """Stop background work and attempt a final delivery.

        Shutdown sequence:
        1. Reject new events
        2. Stop the config refresher and cancel the flush timer
        3. Wait for an in-flight batch, then send whatever is left once
        4. Shut down the owned executor and close the collector

        Idempotent. Failures are logged, never raised.
        """
        if self._closed.is_set():
            return
        self._closed.set()

        self._refresher.stop(timeout=timeout)
        self._scheduler.cancel()

        if not self._dispatcher.wait_idle(timeout):
            logger.error("In-flight event batch did not complete before shutdown")
        else:
            # Refused when a timer fire won the race and already has a batch out;
            # wait for whichever batch is in flight before closing the collector
            self._dispatcher.send_batch(FlushReason.SHUTDOWN)
            if not self._dispatcher.wait_idle(timeout):
                logger.error("Final event batch did not complete before shutdown")
        # A failed final send re-arms the timer; nobody is left to retry it
        self._scheduler.cancel()

        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

        remaining = len(self._buffer)
        if remaining:
            logger.warning("Capture manager closed with undelivered events", undelivered=remaining)
        logger.info("Capture manager closing", **self.health_metrics)

        try:
            self._collector.close()
        except Exception as e:
            logger.warning("Collector close failed", collector=self._collector.name, error=str(e))

    # ------------------------------------------------------------------
    # Event path
    # ------------------------------------------------------------------

    def submit_event(self, event: EventRecord) -> None:
        """Sample, buffer and (maybe) send one event.

        Safe to call from any thread. Never raises: any failure drops this
        event and is logged.
        """
        if self._closed.is_set():
            return
        try:
            self._submit(event)
        except Exception as e:
            with self._metrics_lock:
                self._events_failed += 1
            logger.warning(
                "Failed to capture API event",
                error=str(e),
                error_type=type(e).__name__,
            )

    def _submit(self, event: EventRecord) -> None:
        with self._metrics_lock:
            self._events_submitted += 1

        if self._skip is not None and self._skip(event):
            with self._metrics_lock:
                self._events_skipped += 1
            return

        # Decided on the original identity fields, before any masking
        decision = self._decider.decide(event)
        if not decision.keep:
            with self._metrics_lock:
                self._events_sampled_out += 1
            if self._debug:
                logger.info("Skipped event due to sampling", sample_rate=decision.sample_rate)
            return

        masked = self._mask(event) if self._mask is not None else event
        assert decision.weight is not None  # kept decisions always carry a weight
        record = masked.with_weight(decision.weight)
        # Rejected here, or it would fail every batch it joins
        record.to_json()

        with self._lock:
            self._buffer.try_append(record)
            self._evaluate_triggers()

    def _evaluate_triggers(self) -> None:
        """Send now on a size or age trigger, otherwise make sure a timer is armed.

        Must be called with the lock held.
        """
        if len(self._buffer) >= self._config.max_events_in_memory:
            reason: FlushReason | None = FlushReason.SIZE
        elif self._buffer.seconds_since_flush() > self._config.max_batch_time_seconds:
            reason = FlushReason.AGE
        else:
            reason = None

        if reason is not None and self._dispatcher.send_batch(reason):
            return
        self._scheduler.ensure_scheduled()

    def flush(self) -> bool:
        """Request an immediate send of the buffered events.

        Returns:
            True if a batch was started.
        """
        with self._lock:
            return self._dispatcher.send_batch(FlushReason.EXPLICIT)

    def _flush_on_timer(self) -> None:
        """FlushScheduler callback, invoked with the lock held."""
        if self._dispatcher.send_batch(FlushReason.TIMER):
            return
        # Refused because a batch is still in flight: check again later
        if len(self._buffer) > 0 and self._dispatcher.in_flight:
            self._scheduler.ensure_scheduled()

    def _on_config_etag(self, etag: str | None) -> None:
        """A batch response advertised a config version; refetch if it is new."""
        if self._closed.is_set() or not self._config_cache.needs_refresh(etag):
            return
        try:
            self._executor.submit(self._config_cache.refresh, force=True)
        except RuntimeError as e:
            logger.debug("Config refresh not scheduled", reason=str(e))

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @property
    def health_metrics(self) -> dict[str, Any]:
        """Snapshot of capture health for monitoring.

        Reads are approximately consistent; counters written by other threads
        may be slightly stale.
        """
        with self._metrics_lock:
            counters = {
                "events_submitted": self._events_submitted,
                "events_skipped": self._events_skipped,
                "events_sampled_out": self._events_sampled_out,
                "events_failed": self._events_failed,
            }
        return {
            **counters,
            "events_dropped": self._buffer.dropped_count,
            "events_sent": self._dispatcher.events_sent,
            "batches_sent": self._dispatcher.batches_sent,
            "batch_failures": self._dispatcher.batch_failures,
            "buffer_depth": len(self._buffer),
            "buffer_capacity": self._buffer.capacity,
            "scheduler_state": self._scheduler.state.value,
            "global_sample_rate": self._config_cache.current.global_rate,
        }
