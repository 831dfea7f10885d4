# src/apicapture/core/logging.py
"""Structured logging setup for hosts that let apicapture own log output.

The capture subsystem itself only ever calls structlog.get_logger(); nothing
here is required for capture to work. Hosts that want apicapture to render
logs call configure_capture_logging(settings) once at startup, which reads
the ``logging:`` section and the ``debug`` flag of CaptureSettings.

Stdlib records from the host (logging.getLogger(...)) are routed through the
same ProcessorFormatter chain, so both render identically.

Verbosity:
    ``logging.level`` sets the root level for everything.
    ``debug: true`` lowers only the ``apicapture`` logger to DEBUG, so flush
    reasons, timer arming and sampling rejections become visible without
    turning on DEBUG for the host or the HTTP transport.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter

if TYPE_CHECKING:
    from apicapture.core.config import CaptureSettings, LoggingSettings

CAPTURE_LOGGER_NAME = "apicapture"

# Log every pooled connection at DEBUG; kept at WARNING or above.
_TRANSPORT_LOGGERS: tuple[str, ...] = ("httpx", "httpcore")


def _drop_formatter_bookkeeping(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Strip the keys ProcessorFormatter adds for its own use."""
    event_dict.pop("_record", None)
    event_dict.pop("_from_structlog", None)
    return event_dict


def _build_handler(json_output: bool, stream: TextIO, shared: list[Any]) -> logging.Handler:
    renderer: list[Any]
    if json_output:
        renderer = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=False)]

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        ProcessorFormatter(
            processors=[_drop_formatter_bookkeeping, *renderer],
            foreign_pre_chain=shared,
        )
    )
    return handler


def configure_logging(
    settings: LoggingSettings | None = None,
    *,
    debug: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        settings: Level and renderer. Defaults to INFO console output.
        debug: Lower the apicapture logger to DEBUG regardless of level.
        stream: Destination. Defaults to sys.stdout.
    """
    level = settings.level if settings is not None else "INFO"
    json_output = settings.json_output if settings is not None else False
    root_level = logging.getLevelName(level)

    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=[*shared, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Reconfigurable at runtime (tests, settings reloads)
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    root.handlers = [_build_handler(json_output, stream if stream is not None else sys.stdout, shared)]
    root.setLevel(root_level)

    logging.getLogger(CAPTURE_LOGGER_NAME).setLevel(logging.DEBUG if debug else logging.NOTSET)

    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(max(root_level, logging.WARNING))


def configure_capture_logging(settings: CaptureSettings, *, stream: TextIO | None = None) -> None:
    """Configure logging from loaded CaptureSettings (``logging:`` and ``debug``)."""
    configure_logging(settings.logging, debug=settings.debug, stream=stream)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a bound logger for a module.

    Args:
        name: Logger name (typically __name__).
    """
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
