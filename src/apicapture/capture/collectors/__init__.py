"""Built-in collectors.

Available collectors:
- HttpCollector: Remote collection API over HTTP (default)
- ConsoleCollector: Print batches to stdout/stderr for debugging

Plugin registration:
    Collectors are registered via the apicapture_get_collectors hook.
    The BuiltinCollectorsPlugin in this module registers all built-in collectors.
"""

from apicapture.capture.collectors.console import ConsoleCollector
from apicapture.capture.collectors.http import HttpCollector
from apicapture.capture.hookspecs import hookimpl


class BuiltinCollectorsPlugin:
    """Plugin that registers built-in collectors."""

    @hookimpl
    def apicapture_get_collectors(self) -> list[type]:
        """Return built-in collector classes."""
        return [HttpCollector, ConsoleCollector]


__all__ = [
    "BuiltinCollectorsPlugin",
    "ConsoleCollector",
    "HttpCollector",
]
