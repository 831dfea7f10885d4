# src/apicapture/capture/hookspecs.py
"""pluggy hook specifications for collectors.

Collectors implement these hooks to register themselves. The factory calls
them to discover which collector names are available.

Usage (implementing a collector plugin):
    from apicapture.capture.hookspecs import hookimpl

    class MyCollectorPlugin:
        @hookimpl
        def apicapture_get_collectors(self):
            return [MyCollector]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from apicapture.capture.protocols import CollectorProtocol

PROJECT_NAME = "apicapture"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)

hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class ApiCaptureCollectorSpec:
    """Hook specifications for collector plugins."""

    @hookspec
    def apicapture_get_collectors(self) -> list[type["CollectorProtocol"]]:  # type: ignore[empty-body]
        """Return collector classes.

        Returns:
            List of collector classes (not instances) that implement
            CollectorProtocol
        """
