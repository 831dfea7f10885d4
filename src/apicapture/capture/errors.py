# src/apicapture/capture/errors.py
"""Capture-specific exceptions and failure classification.

Collectors translate their transport's exceptions into the CollectorError
family so the dispatcher and config cache can classify failures without
knowing which HTTP library sits underneath.

Classification only drives log messages. Every failure kind gets the same
recovery: keep the data and try again later.
"""

from apicapture.contracts.enums import FailureKind


class CollectorError(Exception):
    """Base class for failures talking to the remote collector."""


class CollectorTimeoutError(CollectorError):
    """The collector did not answer in time."""


class CollectorAPIError(CollectorError):
    """The collector answered with an error status.

    Attributes:
        status_code: Status returned by the collector
        body: Leading part of the response body, for diagnostics
    """

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"collector returned status {status_code}: {body[:200]}")


class CollectorConfigurationError(Exception):
    """Raised when a collector cannot be discovered or configured.

    This is raised during setup (factory/configure), NOT during capture.
    Runtime paths log failures instead of raising.

    Attributes:
        collector_name: Name of the collector that failed
        message: Human-readable error description
    """

    def __init__(self, collector_name: str, message: str) -> None:
        self.collector_name = collector_name
        self.message = message
        super().__init__(f"Collector '{collector_name}' failed: {message}")


def classify_failure(error: BaseException) -> FailureKind:
    """Classify a collector failure from the exception instance itself.

    Args:
        error: Exception raised by a collector call

    Returns:
        TIMEOUT for collector or builtin timeouts, API_ERROR for error
        statuses, OTHER for everything else.
    """
    match error:
        case CollectorTimeoutError() | TimeoutError():
            return FailureKind.TIMEOUT
        case CollectorAPIError():
            return FailureKind.API_ERROR
        case _:
            return FailureKind.OTHER
