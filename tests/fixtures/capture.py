# tests/fixtures/capture.py
"""Deterministic test doubles for the capture subsystem.

- ManualTimers: TimerFactory whose timers only fire when the test says so
- InlineExecutor: runs submitted work synchronously inside submit()
- DeferredExecutor: queues submitted work until run_pending(), to hold a
  batch "in flight" for as long as a test needs
- RecordingCollector: scripted collector that records every call
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Sequence
from concurrent.futures import Executor, Future
from typing import Any

from apicapture.contracts.config import CollectorConfig, RuntimeCaptureConfig
from apicapture.contracts.events import BatchResponse, EventRecord, SampleConfig


def make_event(user_id: str | None = "user-1", company_id: str | None = None, **payload: Any) -> EventRecord:
    body = payload or {"request": {"verb": "GET", "uri": "https://api.example.com/items"}, "response": {"status": 200}}
    return EventRecord(payload=body, user_id=user_id, company_id=company_id)


def make_config(**overrides: Any) -> RuntimeCaptureConfig:
    values: dict[str, Any] = {
        "enabled": True,
        "application_id": "app-123",
        "collector_endpoint": "https://collector.example.com",
        "max_events_in_memory": 3,
        "max_batch_time_seconds": 1.0,
        "static_sampling_percentage": 100.0,
        "config_refresh_interval_seconds": 300.0,
        "request_body_processing_enabled": True,
        "debug": False,
        "collector": CollectorConfig(name="recording", options={}),
    }
    values.update(overrides)
    return RuntimeCaptureConfig(**values)


class ManualTimer:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def live(self) -> bool:
        return self.started and not self.cancelled


class ManualTimers:
    """TimerFactory that records timers; fire() runs the live ones."""

    def __init__(self) -> None:
        self.created: list[ManualTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay, callback)
        self.created.append(timer)
        return timer

    @property
    def live(self) -> list[ManualTimer]:
        return [t for t in self.created if t.live]

    def fire(self) -> int:
        """Fire every currently live timer. Returns how many fired."""
        due = self.live
        for timer in due:
            timer.cancelled = True
            timer.callback()
        return len(due)


class InlineExecutor(Executor):
    """Runs work synchronously; futures are complete when submit() returns."""

    def __init__(self) -> None:
        self.submitted = 0
        self._shutdown = False

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future[Any]:
        if self._shutdown:
            raise RuntimeError("cannot schedule new futures after shutdown")
        self.submitted += 1
        future: Future[Any] = Future()
        future.set_running_or_notify_cancel()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        self._shutdown = True


class DeferredExecutor(Executor):
    """Queues work until run_pending() is called."""

    def __init__(self) -> None:
        self.pending: deque[tuple[Future[Any], Callable[..., Any], tuple[Any, ...], dict[str, Any]]] = deque()
        self._shutdown = False

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future[Any]:
        if self._shutdown:
            raise RuntimeError("cannot schedule new futures after shutdown")
        future: Future[Any] = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_pending(self) -> int:
        ran = 0
        while self.pending:
            future, fn, args, kwargs = self.pending.popleft()
            if not future.set_running_or_notify_cancel():
                continue
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)
            ran += 1
        return ran

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        self._shutdown = True
        if cancel_futures:
            while self.pending:
                future, *_ = self.pending.popleft()
                future.cancel()


class RecordingCollector:
    """Collector double with scripted answers.

    batch_results items are either a status code or an exception to raise;
    once exhausted every batch is answered with 201. config_results works the
    same way with SampleConfig values or exceptions; once exhausted the last
    config (or the default) is returned.
    """

    _name = "recording"

    def __init__(
        self,
        *,
        batch_results: Sequence[int | BaseException] = (),
        config_results: Sequence[SampleConfig | BaseException] = (),
        config_etag: str | None = None,
    ) -> None:
        self.batch_results: deque[int | BaseException] = deque(batch_results)
        self.config_results: deque[SampleConfig | BaseException] = deque(config_results)
        self.config_etag = config_etag
        self.batches: list[list[EventRecord]] = []
        self.config_fetches = 0
        self.configured_with: dict[str, Any] | None = None
        self.close_count = 0
        self._last_config = SampleConfig.default()

    @property
    def name(self) -> str:
        return self._name

    def configure(self, config: dict[str, Any]) -> None:
        self.configured_with = dict(config)

    def fetch_app_config(self) -> SampleConfig:
        self.config_fetches += 1
        if self.config_results:
            result = self.config_results.popleft()
            if isinstance(result, BaseException):
                raise result
            self._last_config = result
        return self._last_config

    def create_events_batch(self, events: Sequence[EventRecord]) -> BatchResponse:
        self.batches.append(list(events))
        result: int | BaseException = self.batch_results.popleft() if self.batch_results else 201
        if isinstance(result, BaseException):
            raise result
        return BatchResponse(status_code=result, config_etag=self.config_etag)

    def close(self) -> None:
        self.close_count += 1
