# src/apicapture/contracts/enums.py
"""Enumerations shared across the capture subsystem."""

from enum import StrEnum


class SchedulerState(StrEnum):
    """Lifecycle of the flush timer owned by a FlushScheduler.

    Values:
        IDLE: No timer armed
        SCHEDULED: Timer armed, will fire after max_batch_time
        FIRED: Timer callback is running a flush attempt
    """

    IDLE = "idle"
    SCHEDULED = "scheduled"
    FIRED = "fired"


class FailureKind(StrEnum):
    """Classification of a collector failure, used for logging only.

    Values:
        TIMEOUT: The transport gave up waiting for the collector
        API_ERROR: The collector answered with an error status
        OTHER: Anything else (connection refused, serialization, bugs)
    """

    TIMEOUT = "timeout"
    API_ERROR = "api_error"
    OTHER = "other"


class FlushReason(StrEnum):
    """Why a batch send was requested."""

    SIZE = "size"
    AGE = "age"
    TIMER = "timer"
    EXPLICIT = "explicit"
    SHUTDOWN = "shutdown"
