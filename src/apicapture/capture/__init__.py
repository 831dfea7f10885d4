# src/apicapture/capture/__init__.py
"""Capture subsystem: sampling, buffering and batched delivery of API events.

Components:
- app_config: AppConfigCache (remote sampling policy) and its periodic refresher
- sampling: SamplingDecider for two-stage (static + adaptive) sampling
- buffer: EventBuffer, bounded, drop-new on overflow
- scheduler: FlushScheduler, the one-shot max_batch_time timer
- dispatcher: Dispatcher, asynchronous confirm-then-remove batch delivery
- manager: CaptureManager tying the above together behind submit_event()
- protocols / hookspecs: CollectorProtocol and pluggy discovery hooks
- collectors: Built-in collectors (HttpCollector, ConsoleCollector)
- errors: Collector error family and failure classification

Usage:
    from apicapture.capture import create_capture_manager_from_settings
    from apicapture.core import load_settings
    from apicapture.contracts import EventRecord

    manager = create_capture_manager_from_settings(load_settings(path))
    if manager is not None:
        manager.start()
        manager.submit_event(EventRecord(payload=payload, user_id="u-1"))
        manager.close()
"""

from apicapture.capture.app_config import AppConfigCache, PeriodicConfigRefresher
from apicapture.capture.buffer import EventBuffer
from apicapture.capture.collectors import ConsoleCollector, HttpCollector
from apicapture.capture.dispatcher import Dispatcher
from apicapture.capture.errors import (
    CollectorAPIError,
    CollectorConfigurationError,
    CollectorError,
    CollectorTimeoutError,
    classify_failure,
)
from apicapture.capture.factory import (
    create_capture_manager,
    create_capture_manager_from_settings,
    create_collector,
    discover_collectors,
)
from apicapture.capture.manager import CaptureManager
from apicapture.capture.protocols import CollectorProtocol
from apicapture.capture.sampling import SamplingDecider, SamplingDecision
from apicapture.capture.scheduler import FlushScheduler

__all__ = [
    "AppConfigCache",
    "CaptureManager",
    "CollectorAPIError",
    "CollectorConfigurationError",
    "CollectorError",
    "CollectorProtocol",
    "CollectorTimeoutError",
    "ConsoleCollector",
    "Dispatcher",
    "EventBuffer",
    "FlushScheduler",
    "HttpCollector",
    "PeriodicConfigRefresher",
    "SamplingDecider",
    "SamplingDecision",
    "classify_failure",
    "create_capture_manager",
    "create_capture_manager_from_settings",
    "create_collector",
    "discover_collectors",
]
