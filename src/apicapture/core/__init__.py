# src/apicapture/core/__init__.py
"""Core infrastructure: Configuration, Clock, Logging."""

from apicapture.core.clock import DEFAULT_CLOCK, Clock, MockClock, SystemClock
from apicapture.core.config import CaptureSettings, CollectorSettings, LoggingSettings, load_settings
from apicapture.core.logging import configure_capture_logging, configure_logging, get_logger

__all__ = [
    "DEFAULT_CLOCK",
    "CaptureSettings",
    "Clock",
    "CollectorSettings",
    "LoggingSettings",
    "MockClock",
    "SystemClock",
    "configure_capture_logging",
    "configure_logging",
    "get_logger",
    "load_settings",
]
