"""
Structured logging for pipeline runs.

Uses structlog to produce JSON logs in production and readable console
output in development. Every entry emitted while a pipeline run is active
carries that run's ``run_id``.

Usage:
    from src.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("stage_completed", stage="extracting", elapsed_ms=812)
"""
import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict

import structlog

from src.config import settings

# Bound by the orchestrator at the start of each run
run_id_var: ContextVar[str] = ContextVar("run_id", default="")


def _inject_run_id(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add the active run_id to every log entry."""
    run_id = run_id_var.get("")
    if run_id:
        event_dict["run_id"] = run_id
    return event_dict


def generate_run_id() -> str:
    """Short unique id used to correlate the log lines of one pipeline run."""
    return uuid.uuid4().hex[:12]


def setup_logging() -> None:
    """
    Configure structlog and the stdlib root logger.

    Production renders JSON lines; development renders colored console output.
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        _inject_run_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_production:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

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
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())

    for noisy in ("httpx", "httpcore", "openai", "anthropic", "faiss"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a named structured logger."""
    return structlog.get_logger(name)
