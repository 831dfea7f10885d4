# src/apicapture/contracts/config.py
"""Runtime configuration consumed by the capture subsystem.

Settings (Pydantic, core.config) are the user-facing schema. The runtime
dataclasses here are what the manager, dispatcher and collectors actually
read: frozen, unit-normalized (seconds, not milliseconds), and free of any
Pydantic dependency.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from apicapture.core.config import CaptureSettings


@dataclass(frozen=True, slots=True)
class CollectorConfig:
    """Which collector plugin to use and the options passed to configure().

    Example YAML that produces a CollectorConfig:
        collector:
          name: http
          options:
            timeout_seconds: 10
    """

    name: str
    options: dict[str, Any]

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("collector name cannot be empty")


@dataclass(frozen=True, slots=True)
class RuntimeCaptureConfig:
    """Runtime configuration for event capture and dispatch.

    Field Origins (all from CaptureSettings):
        - enabled, application_id, collector_endpoint, debug: direct
        - max_events_in_memory: max_api_events_to_hold_in_memory
        - max_batch_time_seconds: max_batch_time_ms / 1000
        - static_sampling_percentage: direct
        - config_refresh_interval_seconds: direct
        - request_body_processing_enabled: direct (read by host integrations)
        - collector: CollectorConfig built from settings.collector
    """

    enabled: bool
    application_id: str
    collector_endpoint: str
    max_events_in_memory: int
    max_batch_time_seconds: float
    static_sampling_percentage: float
    config_refresh_interval_seconds: float
    request_body_processing_enabled: bool
    debug: bool
    collector: CollectorConfig

    def __post_init__(self) -> None:
        if self.max_events_in_memory < 1:
            raise ValueError(f"max_events_in_memory must be >= 1, got {self.max_events_in_memory}")
        if self.max_batch_time_seconds <= 0:
            raise ValueError(f"max_batch_time_seconds must be > 0, got {self.max_batch_time_seconds}")
        if not 0 <= self.static_sampling_percentage <= 100:
            raise ValueError(f"static_sampling_percentage must be within [0, 100], got {self.static_sampling_percentage}")

    @classmethod
    def default(cls) -> RuntimeCaptureConfig:
        """Defaults matching CaptureSettings, with capture disabled."""
        return cls(
            enabled=False,
            application_id="",
            collector_endpoint="https://api.moesif.net",
            max_events_in_memory=100,
            max_batch_time_seconds=2.0,
            static_sampling_percentage=100.0,
            config_refresh_interval_seconds=300.0,
            request_body_processing_enabled=True,
            debug=False,
            collector=CollectorConfig(name="http", options={}),
        )

    @classmethod
    def from_settings(cls, settings: CaptureSettings) -> RuntimeCaptureConfig:
        """Factory from the validated CaptureSettings model.

        Args:
            settings: Validated Pydantic settings model

        Returns:
            RuntimeCaptureConfig with mapped values
        """
        return cls(
            enabled=settings.enabled,
            application_id=settings.application_id,
            collector_endpoint=settings.collector_endpoint,
            max_events_in_memory=settings.max_api_events_to_hold_in_memory,
            max_batch_time_seconds=settings.max_batch_time_ms / 1000.0,
            static_sampling_percentage=settings.static_sampling_percentage,
            config_refresh_interval_seconds=settings.config_refresh_interval_seconds,
            request_body_processing_enabled=settings.request_body_processing_enabled,
            debug=settings.debug,
            collector=CollectorConfig(
                name=settings.collector.name,
                options=dict(settings.collector.options),
            ),
        )
