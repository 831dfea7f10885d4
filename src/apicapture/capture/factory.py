# src/apicapture/capture/factory.py
"""Factory functions for creating a CaptureManager from configuration.

This module provides the glue between configuration (RuntimeCaptureConfig)
and the runtime CaptureManager instance. It handles:
1. Discovering collector classes via pluggy hooks
2. Instantiating and configuring the selected collector
3. Creating the CaptureManager around it

Usage:
    from apicapture.contracts.config import RuntimeCaptureConfig
    from apicapture.capture.factory import create_capture_manager

    config = RuntimeCaptureConfig.from_settings(load_settings(path))
    manager = create_capture_manager(config, mask=redact_headers)
    if manager is not None:
        manager.start()
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import pluggy
import structlog

from apicapture.capture.collectors import BuiltinCollectorsPlugin
from apicapture.capture.errors import CollectorConfigurationError
from apicapture.capture.hookspecs import PROJECT_NAME, ApiCaptureCollectorSpec
from apicapture.capture.manager import CaptureManager, MaskFunction, SkipPredicate
from apicapture.capture.protocols import CollectorProtocol
from apicapture.contracts.config import RuntimeCaptureConfig
from apicapture.core.logging import configure_capture_logging

if TYPE_CHECKING:
    from apicapture.core.config import CaptureSettings

logger = structlog.get_logger(__name__)

_DISCOVERY = "collector_plugins"


def _resolve_collector_name(collector_class: type[CollectorProtocol]) -> str:
    """Resolve a collector's name from its class-level _name, else an instance.

    Raises:
        CollectorConfigurationError: If the name is missing or not a non-empty string.
    """
    class_name = collector_class.__name__
    class_dict = collector_class.__dict__
    if "_name" in class_dict:
        hint = class_dict["_name"]
        if type(hint) is str and hint != "":
            return hint
        raise CollectorConfigurationError(
            class_name,
            f"Collector class attribute _name must be a non-empty string, got {hint!r}",
        )

    try:
        instance = collector_class()
    except Exception as e:
        raise CollectorConfigurationError(
            class_name,
            f"Failed to instantiate collector class during discovery: {e}",
        ) from e

    resolved = instance.name
    if type(resolved) is not str or resolved == "":
        raise CollectorConfigurationError(
            class_name,
            f"Collector name must be a non-empty string, got {resolved!r}",
        )
    return resolved


def discover_collectors(
    collector_plugins: Iterable[Any] = (),
) -> dict[str, type[CollectorProtocol]]:
    """Discover collectors via pluggy hooks.

    Registers the built-in collectors plus any plugin objects provided by the
    caller, then calls ``apicapture_get_collectors`` to build the name->class
    registry.

    Args:
        collector_plugins: Additional plugin objects implementing
            ``apicapture_get_collectors``.

    Returns:
        Mapping of collector name to collector class.

    Raises:
        CollectorConfigurationError: If plugin registration fails, a hook
            returns something other than an iterable of classes, or two
            collectors share a name.
    """
    plugin_manager = pluggy.PluginManager(PROJECT_NAME)
    plugin_manager.add_hookspecs(ApiCaptureCollectorSpec)

    for plugin in [BuiltinCollectorsPlugin(), *list(collector_plugins)]:
        try:
            plugin_manager.register(plugin)
            plugin_manager.check_pending()
        except (pluggy.PluginValidationError, ValueError) as e:
            # ValueError: the same plugin object or name registered twice
            if isinstance(e, pluggy.PluginValidationError):
                plugin_manager.unregister(plugin=plugin)
            raise CollectorConfigurationError(
                _DISCOVERY,
                f"Invalid collector plugin {type(plugin).__name__}: {e}",
            ) from e

    registry: dict[str, type[CollectorProtocol]] = {}
    for hook_impl in plugin_manager.hook.apicapture_get_collectors.get_hookimpls():
        plugin_name = type(hook_impl.plugin).__name__
        try:
            collectors = hook_impl.function()
        except Exception as e:
            raise CollectorConfigurationError(
                _DISCOVERY,
                f"Collector plugin {plugin_name} failed in apicapture_get_collectors: {e}",
            ) from e

        if collectors is None or type(collectors) in (str, bytes):
            raise CollectorConfigurationError(
                _DISCOVERY,
                f"apicapture_get_collectors in plugin {plugin_name} returned {type(collectors).__name__}; "
                "expected iterable of collector classes",
            )
        try:
            collector_iter = iter(collectors)
        except TypeError as e:
            raise CollectorConfigurationError(
                _DISCOVERY,
                f"apicapture_get_collectors in plugin {plugin_name} returned {type(collectors).__name__}; "
                "expected iterable of collector classes",
            ) from e

        for collector_class in collector_iter:
            collector_name = _resolve_collector_name(collector_class)
            if collector_name in registry:
                existing = registry[collector_name].__name__
                raise CollectorConfigurationError(
                    collector_name,
                    f"Duplicate collector name '{collector_name}' discovered: {existing} and {collector_class.__name__}",
                )
            registry[collector_name] = collector_class

    return registry


def create_collector(
    config: RuntimeCaptureConfig,
    *,
    collector_plugins: Iterable[Any] = (),
) -> CollectorProtocol:
    """Instantiate and configure the collector named in config.

    application_id and collector_endpoint are merged into the collector
    options; explicit options win.

    Raises:
        CollectorConfigurationError: Unknown collector name or invalid options.
    """
    registry = discover_collectors(collector_plugins)
    try:
        collector_class = registry[config.collector.name]
    except KeyError:
        available = sorted(registry.keys())
        raise CollectorConfigurationError(
            config.collector.name,
            f"Unknown collector. Available collectors: {available}",
        ) from None

    options = {
        "application_id": config.application_id,
        "collector_endpoint": config.collector_endpoint,
        **config.collector.options,
    }
    collector = collector_class()
    collector.configure(options)
    logger.debug(
        "Collector configured",
        collector=config.collector.name,
        options_keys=sorted(options.keys()),
    )
    return collector


def create_capture_manager(
    config: RuntimeCaptureConfig,
    *,
    collector_plugins: Iterable[Any] = (),
    skip: SkipPredicate | None = None,
    mask: MaskFunction | None = None,
) -> CaptureManager | None:
    """Create a CaptureManager from runtime configuration.

    Args:
        config: Runtime configuration from RuntimeCaptureConfig.from_settings().
        collector_plugins: Additional collector plugin objects.
        skip: Host predicate for events that should never be captured.
        mask: Host redaction hook for kept events.

    Returns:
        CaptureManager if capture is enabled, None otherwise. The manager is
        not started; call start() to begin config refreshes.

    Raises:
        CollectorConfigurationError: If collector discovery or configuration fails.
    """
    if not config.enabled:
        logger.debug("Capture disabled", reason="config.enabled=False")
        return None

    collector = create_collector(config, collector_plugins=collector_plugins)
    return CaptureManager(config, collector, skip=skip, mask=mask)


def create_capture_manager_from_settings(
    settings: CaptureSettings,
    *,
    configure_logs: bool = True,
    collector_plugins: Iterable[Any] = (),
    skip: SkipPredicate | None = None,
    mask: MaskFunction | None = None,
) -> CaptureManager | None:
    """Create a CaptureManager straight from loaded CaptureSettings.

    Hosts without their own logging setup get the ``logging:`` section and
    ``debug`` flag applied first, so the manager's startup lines already
    render in the configured format.

    Args:
        settings: Settings from load_settings().
        configure_logs: Apply settings.logging/settings.debug via
            configure_capture_logging(). Pass False if the host owns logging.
        collector_plugins: Additional collector plugin objects.
        skip: Host predicate for events that should never be captured.
        mask: Host redaction hook for kept events.

    Returns:
        CaptureManager if capture is enabled, None otherwise.
    """
    if configure_logs:
        configure_capture_logging(settings)
    return create_capture_manager(
        RuntimeCaptureConfig.from_settings(settings),
        collector_plugins=collector_plugins,
        skip=skip,
        mask=mask,
    )
