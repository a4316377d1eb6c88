"""
Global Exception Handling

Errors raised by the inference engine and how the admin API renders them.
Detection itself never raises: stage failures are folded into a blocking
verdict by the decision policy. These exceptions surface only through
engine calls made directly (warmup, setup script, tests).
"""

import traceback
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from content_guard.core.logging import get_logger, request_id_var

logger = get_logger(__name__)


# =============================================================================
# Custom Exceptions
# =============================================================================

class ModerationBaseException(Exception):
    """Base exception for Content Guard."""

    code = 500
    stage: Optional[str] = None

    def __init__(
        self,
        message: str,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.request_id = request_id or request_id_var.get()
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "request_id": self.request_id,
            "code": self.code,
            "stage": self.stage,
            "details": self.details,
        }


class ModelInitializationError(ModerationBaseException):
    """The model artifact could not be fetched, loaded or made ready in time."""
    code = 503
    stage = "model_init"


class InferenceError(ModerationBaseException):
    """A ready model failed to score a tensor."""
    code = 500
    stage = "inference"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# Exception Handlers
# =============================================================================

def register_exception_handlers(app: FastAPI):
    """Register custom exception handlers with FastAPI app."""

    @app.exception_handler(ModerationBaseException)
    async def moderation_exception_handler(request: Request, exc: ModerationBaseException):
        logger.error(
            "moderation_exception",
            error=exc.message,
            code=exc.code,
            stage=exc.stage,
            path=str(request.url.path),
        )

        body = exc.to_dict()
        body["request_id"] = body["request_id"] or request_id_var.get()
        body["timestamp"] = _timestamp()
        return JSONResponse(status_code=exc.code, content=body)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
            traceback=traceback.format_exc()
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "request_id": request_id_var.get(),
                "code": 500,
                "timestamp": _timestamp(),
            }
        )
