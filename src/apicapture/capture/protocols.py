# src/apicapture/capture/protocols.py
"""Protocol definitions for collectors and flush timers.

Collectors are the outbound side of the capture subsystem: they fetch the
sampling policy and accept batches of events. The built-in HTTP collector
talks to a remote API; tests and local debugging use simpler ones.
"""

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from apicapture.contracts.events import BatchResponse, EventRecord, SampleConfig


@runtime_checkable
class CollectorProtocol(Protocol):
    """Protocol for remote event collectors.

    Lifecycle:
        1. Discovery: apicapture_get_collectors hook returns collector classes
        2. Instantiation: the factory creates one instance
        3. Configuration: configure() called with collector-specific settings
        4. Operation: fetch_app_config() and create_events_batch() called from
           worker threads (never from the request thread)
        5. Shutdown: close() called once the manager stops

    Error handling:
        - configure() MUST raise CollectorConfigurationError on invalid config
        - fetch_app_config() and create_events_batch() raise on failure,
          preferably CollectorTimeoutError / CollectorAPIError so failures
          classify correctly; callers log and recover
        - close() MUST be idempotent
    """

    @property
    def name(self) -> str:
        """Collector name for configuration reference.

            collector:
              name: http  # matches this property
        """
        ...

    def configure(self, config: dict[str, Any]) -> None:
        """Configure the collector.

        Args:
            config: Collector options merged with application_id and
                collector_endpoint

        Raises:
            CollectorConfigurationError: If configuration is invalid
        """
        ...

    def fetch_app_config(self) -> "SampleConfig":
        """Fetch the current sampling policy.

        Side-effect free and idempotent. The returned config need not carry
        fetched_at; the cache stamps it.
        """
        ...

    def create_events_batch(self, events: Sequence["EventRecord"]) -> "BatchResponse":
        """Submit a batch of events.

        Returns:
            BatchResponse for any answer from the collector. Only a 201
            status counts as delivered.

        Thread Safety:
            Called from the dispatch worker. At most one batch is in flight
            per manager, so calls never overlap for one collector.
        """
        ...

    def close(self) -> None:
        """Release resources held by the collector. Idempotent."""
        ...


class TimerHandle(Protocol):
    """One-shot timer as produced by a TimerFactory (threading.Timer shape)."""

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]
"""Create an unstarted one-shot timer: (delay_seconds, callback) -> handle."""
