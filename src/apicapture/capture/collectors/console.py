# src/apicapture/capture/collectors/console.py
"""Console collector for captured events.

Writes each batch to stdout or stderr, one JSON object per event, and always
accepts it. Serves the default (sample everything) config. Used for local
debugging and tests.
"""

from __future__ import annotations

import sys
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Literal, TextIO, TypeGuard

import structlog

from apicapture.capture.errors import CollectorConfigurationError
from apicapture.contracts.events import BATCH_ACCEPTED_STATUS, BatchResponse, SampleConfig

if TYPE_CHECKING:
    from apicapture.contracts.events import EventRecord

logger = structlog.get_logger(__name__)


def _is_valid_output(v: str) -> TypeGuard[Literal["stdout", "stderr"]]:
    """TypeGuard for output validation - enables mypy type narrowing."""
    return v in {"stdout", "stderr"}


class ConsoleCollector:
    """Print event batches instead of sending them anywhere.

    Configuration options:
        output: Output stream - "stdout" (default) or "stderr"

    Example configuration:
        collector:
          name: console
          options:
            output: stderr
    """

    _name = "console"

    _VALID_OUTPUTS: frozenset[str] = frozenset({"stdout", "stderr"})

    def __init__(self) -> None:
        self._output: Literal["stdout", "stderr"] = "stdout"
        self._stream: TextIO = sys.stdout

    @property
    def name(self) -> str:
        return self._name

    def configure(self, config: dict[str, Any]) -> None:
        """Configure the output stream.

        application_id and collector_endpoint are accepted and ignored.

        Raises:
            CollectorConfigurationError: If output is not a known stream name
        """
        output_value = config.get("output", "stdout")
        if not isinstance(output_value, str):
            raise CollectorConfigurationError(
                self._name,
                f"'output' must be a string, got {type(output_value).__name__}",
            )
        if _is_valid_output(output_value):
            self._output = output_value
        else:
            raise CollectorConfigurationError(
                self._name,
                f"Invalid output '{output_value}'. Must be one of: {', '.join(sorted(self._VALID_OUTPUTS))}",
            )
        self._stream = sys.stdout if self._output == "stdout" else sys.stderr
        logger.debug("Console collector configured", output=self._output)

    def fetch_app_config(self) -> SampleConfig:
        return SampleConfig.default()

    def create_events_batch(self, events: Sequence[EventRecord]) -> BatchResponse:
        """Write one JSON line per event and accept the batch."""
        for event in events:
            print(event.to_json(), file=self._stream)
        self._stream.flush()
        return BatchResponse(status_code=BATCH_ACCEPTED_STATUS)

    def close(self) -> None:
        """No-op: the console collector does not own stdout/stderr."""
