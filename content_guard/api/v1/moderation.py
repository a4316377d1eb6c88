"""
Moderation Administration Endpoints

Read-side access to the detection pipeline for operators.

Features:
- Audit trail listing (most recent first) and clearing
- Aggregate block statistics
- Model warmup and engine health
- Active thresholds
"""

from typing import Any, Dict, Optional
import time

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from content_guard.api.dependencies import (
    get_audit_store,
    get_inference_engine,
    get_moderation_service,
)
from content_guard.core.config import settings
from content_guard.core.logging import get_logger
from content_guard.engines.moderation.audit import AuditStore
from content_guard.engines.moderation.inference import InferenceEngine
from content_guard.engines.moderation.schemas import AuditLogResponseDTO, AuditStatsDTO
from content_guard.engines.moderation.service import ModerationService

logger = get_logger(__name__)
router = APIRouter()


# =============================================================================
# Audit Endpoints
# =============================================================================

@router.get("/audit-logs", response_model=AuditLogResponseDTO)
async def list_audit_logs(
    limit: int = Query(100, ge=0, le=settings.AUDIT_LOG_CAPACITY),
    audit_store: AuditStore = Depends(get_audit_store)
):
    """
    Most recent audit records, newest first.

    Blocked verdicts caused by infrastructure failures carry a populated
    `error` field; genuine classifications do not.
    """
    records = audit_store.query(limit)
    return AuditLogResponseDTO(records=records, count=len(records))


class ClearResponse(BaseModel):
    success: bool
    message: str


@router.delete("/audit-logs", response_model=ClearResponse)
async def clear_audit_logs(audit_store: AuditStore = Depends(get_audit_store)):
    """Empty the audit log."""
    audit_store.clear()
    logger.info("audit_logs_cleared")
    return ClearResponse(success=True, message="Audit logs cleared")


@router.get("/stats", response_model=AuditStatsDTO)
async def get_stats(audit_store: AuditStore = Depends(get_audit_store)):
    """Totals and block rate over the records currently held."""
    return audit_store.stats()


# =============================================================================
# Warmup & Health Endpoints
# =============================================================================

class WarmupResponse(BaseModel):
    """Response from model warmup."""
    success: bool
    message: str
    warmup_time_ms: int = 0


@router.post("/warmup", response_model=WarmupResponse)
async def warmup_model(service: ModerationService = Depends(get_moderation_service)):
    """
    Load the NSFW model ahead of traffic.

    Initialization failures are reported as 503 by the exception handler.
    """
    start_time = time.time()
    await service.warmup()
    elapsed_ms = int((time.time() - start_time) * 1000)
    logger.info("nsfw_model_warmup_complete", warmup_time_ms=elapsed_ms)
    return WarmupResponse(success=True, message="NSFW model ready", warmup_time_ms=elapsed_ms)


class EngineHealthResponse(BaseModel):
    status: str
    model_ready: bool
    details: Dict[str, Any]


@router.get("/health", response_model=EngineHealthResponse)
async def engine_health(engine: InferenceEngine = Depends(get_inference_engine)):
    """Inference engine state; `warming_up` until the model has been loaded."""
    return EngineHealthResponse(
        status="healthy" if engine.is_ready else "warming_up",
        model_ready=engine.is_ready,
        details=engine.status(),
    )


class ThresholdsResponse(BaseModel):
    nsfw_threshold: float
    uncertain_threshold: float
    max_image_size_mb: int
    max_image_dimension: int
    audit_log_capacity: int
    model_url: Optional[str] = None


@router.get("/thresholds", response_model=ThresholdsResponse)
async def get_thresholds(service: ModerationService = Depends(get_moderation_service)):
    """Active decision thresholds and input limits."""
    return ThresholdsResponse(
        nsfw_threshold=service.policy.high,
        uncertain_threshold=service.policy.mid,
        max_image_size_mb=service.max_size_bytes // (1024 * 1024),
        max_image_dimension=service.max_dimension,
        audit_log_capacity=service.audit_store.capacity,
        model_url=getattr(service.engine, "model_url", None),
    )
