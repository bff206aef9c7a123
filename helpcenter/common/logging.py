"""Structured logging setup for the help-center engine.

Components log through ``structlog.get_logger("helpcenter.<component>")``
with key-value events. This module only decides how those events are
rendered: JSON lines in deployed environments, the colored console renderer
for local work. Every line carries the ``service`` and ``env`` it came from.
"""

import logging
import sys
from typing import Any, List, Optional

import structlog
from structlog.stdlib import LoggerFactory, add_logger_name

from .config import HelpCenterConfig

LOG_FORMATS = ("json", "console")


def _resolve_level(log_level: str) -> int:
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")
    return level


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
    env: Optional[str] = None,
) -> None:
    """Route structlog through stdlib logging on stdout.

    Parameters
    - service_name: Bound to every event as ``service``
    - log_level: Standard level name, case-insensitive
    - log_format: ``json`` or ``console``
    - env: Deployment environment, bound as ``env`` when given
    """
    if log_format not in LOG_FORMATS:
        raise ValueError(f"Unknown log format: {log_format}")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=_resolve_level(log_level))

    renderer: Any
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        renderer,
    ]
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    context = {"service": service_name}
    if env:
        context["env"] = env
    structlog.contextvars.bind_contextvars(**context)


def configure_logging_from_config(config: HelpCenterConfig, service_name: str = "helpcenter") -> None:
    """Apply the ``HELPCENTER_LOG_*`` settings and bind ``HELPCENTER_ENV``."""
    configure_logging(service_name, config.log_level, config.log_format, env=config.env)
