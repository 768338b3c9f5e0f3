import logging
import os

import structlog
from dotenv import load_dotenv

load_dotenv()

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def resolve_level(name: str | None) -> int:
    """Map a LOG_LEVEL name to a logging level, falling back to DEBUG."""
    if not name:
        return logging.DEBUG
    return _LEVELS.get(name.upper(), logging.DEBUG)


def setup_logging(level: int | None = logging.INFO, json_output: bool = False) -> None:
    """
    Configure structured logging for the engine and its adapters.

    Args:
        level: The logging level to use. Defaults to INFO.
        json_output: Render one JSON object per line instead of the console format.
    """
    logging.basicConfig(level=level)
    logging.getLogger().setLevel(level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
            pad_event=50,
        )
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_from_env() -> None:
    """Apply LOG_LEVEL / LOG_FORMAT from the environment (or .env)."""
    setup_logging(
        level=resolve_level(os.getenv("LOG_LEVEL")),
        json_output=os.getenv("LOG_FORMAT", "").lower() == "json",
    )


configure_from_env()

log = structlog.get_logger("anomaly-engine")
