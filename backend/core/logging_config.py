"""Structured logging configuration using structlog.

JSON lines in production, colored console output in development.
Execution-scoped fields (execution_id, workflow_id) are carried through
contextvars so every event emitted while walking a workflow is tagged.
"""

import logging
import sys
from typing import Optional

import structlog
from app.config import get_settings


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Configure structured logging for the whole process.

    Args:
        level: Overrides LOG_LEVEL from settings
        fmt: Overrides LOG_FORMAT from settings ("json" or "text")
    """
    settings = get_settings()
    level = level or settings.LOG_LEVEL
    fmt = fmt or settings.LOG_FORMAT

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development or fmt == "text":
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Third-party noise
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if settings.SQLALCHEMY_ECHO else logging.WARNING
    )
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def bind_execution(execution_id: str, workflow_id: Optional[str] = None) -> None:
    """Tag all log events in the current task with the execution ids."""
    values = {"execution_id": execution_id}
    if workflow_id:
        values["workflow_id"] = workflow_id
    structlog.contextvars.bind_contextvars(**values)


def unbind_execution() -> None:
    structlog.contextvars.unbind_contextvars("execution_id", "workflow_id")
