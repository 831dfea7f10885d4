"""Shared contracts: records, enums and runtime configuration."""

from apicapture.contracts.config import CollectorConfig, RuntimeCaptureConfig
from apicapture.contracts.enums import FailureKind, FlushReason, SchedulerState
from apicapture.contracts.events import (
    BATCH_ACCEPTED_STATUS,
    BatchResponse,
    EventRecord,
    SampleConfig,
    build_request_uri,
    encode_events,
    weight_for_rate,
)

__all__ = [
    "BATCH_ACCEPTED_STATUS",
    "BatchResponse",
    "CollectorConfig",
    "EventRecord",
    "FailureKind",
    "FlushReason",
    "RuntimeCaptureConfig",
    "SampleConfig",
    "SchedulerState",
    "build_request_uri",
    "encode_events",
    "weight_for_rate",
]
