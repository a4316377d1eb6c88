"""
Structured Logging Configuration with structlog

Both structlog loggers (API layer) and stdlib loggers (moderation engine,
"[NSFW]" lines) are rendered by the same processor chain, so every line
carries version, timestamp and, inside a detection, its request_id and stage.
"""

import sys
import asyncio
import logging
import time
import structlog
from contextlib import contextmanager
from typing import Optional, Any, Dict
from contextvars import ContextVar
from functools import wraps

from content_guard.core.config import settings

# Request-scoped context: one request_id per detection call
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
stage_var: ContextVar[Optional[str]] = ContextVar("stage", default=None)

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "PIL")


def add_request_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Attach version plus the current request_id / stage, when set."""
    event_dict["version"] = settings.APP_VERSION

    request_id = request_id_var.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)

    stage = stage_var.get()
    if stage:
        event_dict.setdefault("stage", stage)

    return event_dict


def _shared_processors():
    return [
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        add_request_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
    ]


def setup_logging(
    log_level: str = "INFO",
    json_format: bool = True,
):
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, output JSON; if False, output colored console logs
    """
    level = getattr(logging, log_level.upper())

    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    # stdlib records (engine modules) pass through the same chain
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class LogContext:
    """
    Context manager for setting logging context.

    Usage:
        with LogContext(request_id=str(uuid.uuid4()), stage="nsfw_detection"):
            logger.info("[NSFW] Detection started")
    """

    def __init__(self, request_id: Optional[str] = None, stage: Optional[str] = None):
        self.request_id = request_id
        self.stage = stage
        self._tokens = []

    def __enter__(self):
        if self.request_id:
            self._tokens.append((request_id_var, request_id_var.set(self.request_id)))
        if self.stage:
            self._tokens.append((stage_var, stage_var.set(self.stage)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
        return False


@contextmanager
def _timed_stage(stage: str, logger_name: str):
    logger = get_logger(logger_name)
    token = stage_var.set(stage)
    start = time.perf_counter()
    logger.info("stage_started", stage=stage)
    try:
        yield
    except Exception as e:
        logger.error(
            "stage_failed",
            stage=stage,
            duration_ms=int((time.perf_counter() - start) * 1000),
            error=str(e),
            error_type=type(e).__name__
        )
        raise
    else:
        logger.info("stage_completed", stage=stage, duration_ms=int((time.perf_counter() - start) * 1000))
    finally:
        stage_var.reset(token)


def with_logging(stage: str):
    """
    Decorator that logs start, completion (with duration) or failure of a stage.

    Works on plain and async functions; the stage is visible to every log
    line emitted inside the call.

    Usage:
        @with_logging("model_load")
        def _load_session(self):
            ...
    """
    def decorator(func):
        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                with _timed_stage(stage, func.__module__):
                    return await func(*args, **kwargs)
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            with _timed_stage(stage, func.__module__):
                return func(*args, **kwargs)
        return sync_wrapper

    return decorator
