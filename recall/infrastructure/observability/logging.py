"""
Structured logging for the recall backend.

Every line is a JSON object; pipeline stages and HTTP requests share the
request_id bound by the request middleware.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

QUIET_LOGGERS = ("httpx", "httpcore", "urllib3", "openai", "uvicorn.access")


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog with JSON output on stdout.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_pipeline_context,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _add_pipeline_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Merge context variables bound for the current request (request_id)."""
    return structlog.contextvars.merge_contextvars(logger, method_name, event_dict)


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_pipeline_stage(
    stage: str,
    user_id: str,
    duration_ms: float,
    result_count: int,
    failures: int = 0,
):
    """One line per completed stage; warning level when any account failed."""
    logger = get_logger("pipeline")
    fields = dict(
        stage=stage,
        user_id=user_id,
        duration_ms=duration_ms,
        result_count=result_count,
        failures=failures,
    )
    if failures:
        logger.warning("Pipeline stage completed with failures", **fields)
    else:
        logger.info("Pipeline stage completed", **fields)


def log_request(method: str, path: str, status_code: int, duration_ms: float):
    logger = get_logger("http")
    log = logger.warning if status_code >= 400 else logger.info
    log(
        "HTTP request finished",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
    )
