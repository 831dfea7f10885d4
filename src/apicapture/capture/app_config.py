# src/apicapture/capture/app_config.py
"""Cached sampling configuration fetched from the collector.

The cache holds one immutable SampleConfig snapshot. Readers (the sampling
path, on request threads) read the current reference without locking and
never wait for a fetch. Refreshes replace the reference wholesale.

Failure policy is fail-open: if a fetch fails, the previous snapshot is kept
but its global rate is forced to 100 so capture degrades to "sample
everything" rather than "sample nothing".
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import TYPE_CHECKING

import structlog

from apicapture.capture.errors import classify_failure
from apicapture.contracts.events import SampleConfig
from apicapture.core.clock import DEFAULT_CLOCK

if TYPE_CHECKING:
    from apicapture.capture.protocols import CollectorProtocol
    from apicapture.core.clock import Clock

logger = structlog.get_logger(__name__)


class AppConfigCache:
    """Last-known-good sampling configuration with single-flight refresh.

    Thread Safety:
        current is a plain attribute read; reference assignment is atomic,
        so readers always see a complete snapshot. refresh() uses a
        non-blocking lock: a refresh triggered while another is in flight
        returns immediately without fetching.

    Example:
        cache = AppConfigCache(collector, refresh_interval_seconds=300)
        cache.refresh()           # fetches: never fetched before
        cache.refresh()           # no-op: still fresh
        rate = cache.current.rate_for(user_id, company_id)
    """

    def __init__(
        self,
        collector: CollectorProtocol,
        *,
        refresh_interval_seconds: float = 300.0,
        clock: Clock | None = None,
    ) -> None:
        if refresh_interval_seconds <= 0:
            raise ValueError(f"refresh_interval_seconds must be > 0, got {refresh_interval_seconds}")
        self._collector = collector
        self._interval = refresh_interval_seconds
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._config = SampleConfig.default()
        self._refresh_lock = threading.Lock()
        self._fetch_failures = 0

    @property
    def current(self) -> SampleConfig:
        """Last successfully fetched config, or the default. Never blocks."""
        return self._config

    @property
    def refresh_interval_seconds(self) -> float:
        return self._interval

    @property
    def consecutive_failures(self) -> int:
        """Failed fetches since the last successful one."""
        return self._fetch_failures

    def is_stale(self) -> bool:
        """True if never fetched, or the fetch is older than the refresh interval."""
        fetched_at = self._config.fetched_at
        if fetched_at is None:
            return True
        return self._clock.monotonic() > fetched_at + self._interval

    def needs_refresh(self, etag: str | None) -> bool:
        """True if the collector advertised a config version we do not hold."""
        return etag is not None and etag != self._config.etag

    def refresh(self, *, force: bool = False) -> bool:
        """Fetch a new config if stale (or forced).

        Never raises. Overlapping calls are no-ops.

        Args:
            force: Fetch even if the cached config is still fresh.

        Returns:
            True if a new config was fetched and installed.
        """
        if not self._refresh_lock.acquire(blocking=False):
            return False
        try:
            if not force and not self.is_stale():
                return False
            try:
                fetched = self._collector.fetch_app_config()
            except Exception as e:
                self._fetch_failures += 1
                self._config = self._config.failed_open()
                logger.warning(
                    "Failed to fetch sampling config, sampling all events",
                    failure_kind=classify_failure(e).value,
                    error=str(e),
                    consecutive_failures=self._fetch_failures,
                )
                return False

            self._config = replace(fetched, fetched_at=self._clock.monotonic())
            self._fetch_failures = 0
            logger.debug(
                "Sampling config refreshed",
                global_rate=fetched.global_rate,
                user_overrides=len(fetched.user_rates),
                company_overrides=len(fetched.company_rates),
                etag=fetched.etag,
            )
            return True
        finally:
            self._refresh_lock.release()


class PeriodicConfigRefresher:
    """Background thread driving AppConfigCache.refresh() on a fixed period.

    The first refresh happens as soon as the thread starts; after that the
    thread waits refresh_interval_seconds between attempts. The loop never
    dies on an exception: refresh() already swallows fetch failures, and
    anything else is logged.
    """

    def __init__(self, cache: AppConfigCache, *, interval_seconds: float | None = None) -> None:
        self._cache = cache
        self._interval = interval_seconds if interval_seconds is not None else cache.refresh_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the refresh thread. Idempotent."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="apicapture-config-refresh",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the thread to exit and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.error("Config refresh thread did not exit cleanly within timeout")
            self._thread = None

    def _run(self) -> None:
        # Ticks are the refresh cadence themselves; only the first one
        # defers to the staleness check (a host may have refreshed already).
        force = False
        while True:
            try:
                self._cache.refresh(force=force)
            except Exception as e:
                logger.error("Config refresh loop failed unexpectedly", error=str(e))
            force = True
            if self._stop_event.wait(self._interval):
                break
