"""structlog setup shared by the monitor runner and library modules."""

import logging

import structlog

from portfolio_risk.core.config import settings

_configured = False


def configure_logging(json_output: bool = False, debug: bool | None = None) -> None:
    """Install the risk engine's structlog pipeline; later calls are no-ops.

    Args:
        json_output: One JSON object per line, for log shippers.
        debug: Emit debug events. Defaults to ``settings.debug``.
    """
    global _configured
    if _configured:
        return

    if debug is None:
        debug = settings.debug
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if debug else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(logger_name=name)
