"""structlog setup for BudgetFlow.

Modules log through ``structlog.get_logger()`` with snake_case event names
and keyword context. Nothing is configured on import; applications call
:func:`configure_logging` (or :func:`configure_from`) once at startup.
"""

import logging

import structlog

from .config import BudgetFlowConfig, LogFormat


def configure_logging(level: str = "INFO", fmt: LogFormat = LogFormat.CONSOLE) -> None:
    """Install the structlog processor chain.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: Render events for humans (console) or machines (json).
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    renderer = (
        structlog.processors.JSONRenderer()
        if LogFormat(fmt) == LogFormat.JSON
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
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )


def configure_from(config: BudgetFlowConfig) -> None:
    """Configure logging from the root settings object."""
    configure_logging(level=config.log_level, fmt=config.log_format)
