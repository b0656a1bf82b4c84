"""Route the library's log records through structlog.

The library logs through ``logging.getLogger(__name__)`` and never
configures logging on import. :func:`configure_logging` is opt-in: it
attaches one structlog-formatted stderr handler to the
``functional_models`` logger and stops those records from reaching the
root logger. The host application's root logger is left untouched.
"""

from __future__ import annotations

import logging
import sys

import structlog

LOGGER_NAME = "functional_models"

_SHARED_PROCESSORS: tuple[structlog.types.Processor, ...] = (
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
)


class _LibraryHandler(logging.StreamHandler):
    """The stderr handler owned by :func:`configure_logging`."""


def _formatter(*, log_json: bool) -> structlog.stdlib.ProcessorFormatter:
    renderer: structlog.types.Processor
    if log_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=list(_SHARED_PROCESSORS),
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )


def configure_logging(*, verbose: bool = False, log_json: bool = False) -> logging.Logger:
    """Attach structlog output to the ``functional_models`` logger.

    Calling it again replaces the handler it installed earlier; handlers
    added by anyone else stay in place.

    Args:
        verbose: DEBUG for the library's records. When False, only WARNING+.
        log_json: Render JSON lines instead of console output.

    Returns:
        The configured package logger.
    """
    structlog.configure(
        processors=[*_SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    package_logger = logging.getLogger(LOGGER_NAME)
    for existing in [h for h in package_logger.handlers if isinstance(h, _LibraryHandler)]:
        package_logger.removeHandler(existing)

    handler = _LibraryHandler(sys.stderr)
    handler.setFormatter(_formatter(log_json=log_json))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    package_logger.propagate = False
    return package_logger
