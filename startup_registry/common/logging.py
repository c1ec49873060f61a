"""Structured logging for the registry processes.

The service and the maintenance CLIs share one ``structlog`` setup: JSON
lines in production, coloured console output for local work, each event
tagged with the process's service name.

- ``configure_logging`` once at startup
- ``structlog.get_logger(name)`` for module loggers
- ``RunLogger`` for a unit of work whose events must be correlated
- ``log_performance`` for timing events
"""

import logging
import sys
import uuid
from typing import Any, Dict

import structlog
from structlog.stdlib import LoggerFactory, add_logger_name

LOG_FORMATS = ("json", "console")

performance_logger = structlog.get_logger("performance")


def _resolve_level(log_level: str) -> int:
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")
    return level


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
) -> None:
    """Route stdlib logging and structlog through one renderer.

    ``log_level`` is case-insensitive; ``log_format`` is ``json`` or
    ``console``. Unknown values raise ``ValueError``.
    """
    if log_format not in LOG_FORMATS:
        raise ValueError(f"Unknown log format: {log_format}")

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=_resolve_level(log_level),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_logger_name,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


class RunLogger:
    """Logger for one run of a batch job.

    Every event carries the run's context, including a generated ``run_id``
    unless one is supplied. ``bind`` returns a child for a sub-step (one
    company, say) and leaves the parent untouched.
    """

    def __init__(self, component: str, **context: Any):
        context.setdefault("run_id", uuid.uuid4().hex)
        self.component = component
        self.context: Dict[str, Any] = context
        self._logger = structlog.get_logger(component).bind(**context)

    @property
    def run_id(self) -> str:
        return self.context["run_id"]

    def bind(self, **context: Any) -> "RunLogger":
        return RunLogger(self.component, **{**self.context, **context})

    def debug(self, event: str, **kwargs: Any) -> None:
        self._logger.debug(event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._logger.info(event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._logger.warning(event, **kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self._logger.error(event, **kwargs)


def log_performance(operation: str, duration_ms: float, **dimensions: Any) -> None:
    """Emit an ``Operation timed`` event; dimensions set to ``None`` are left out."""
    performance_logger.info(
        "Operation timed",
        operation=operation,
        duration_ms=round(duration_ms, 2),
        **{key: value for key, value in dimensions.items() if value is not None},
    )
