"""
Structured logging configuration using structlog.

JSON logs in production, coloured console logs in development.
Connector invocations bind ``run_id``, ``connector_id`` and
``request_id`` so every event of a run, including the per-binding
ones, can be correlated.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from src.config.settings import get_settings

_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "asyncpg")


def setup_logging(level: str | None = None) -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        level: Override for the configured log level (e.g. from ``--verbose``)

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Binding sync finished", binding_id="...", outcome="completed")
    """
    settings = get_settings()
    level_name = (level or settings.log_level).upper()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_production:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stderr keeps CLI stdout clean for command output
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level_name, logging.INFO),
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**kwargs) -> None:
    """
    Bind context variables to all subsequent log messages.

    ``None`` values are dropped so optional ids do not clutter events.

    Args:
        **kwargs: Key-value pairs to bind
    """
    structlog.contextvars.bind_contextvars(
        **{key: value for key, value in kwargs.items() if value is not None}
    )


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
