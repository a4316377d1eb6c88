"""
Process-wide moderation entrypoints

The upload layer calls ``detect``; administrative consumers call
``query_audit_log``, ``clear_audit_log`` and ``get_stats``. All of them share
one lazily built ModerationService backed by the singleton inference engine
and a single audit store.
"""

import threading
from typing import List, Optional

from content_guard.core.config import settings
from content_guard.engines.moderation.audit import AuditStore
from content_guard.engines.moderation.inference import InferenceEngine
from content_guard.engines.moderation.schemas import AuditRecord, AuditStatsDTO, DetectionResult
from content_guard.engines.moderation.service import ModerationService

_service: Optional[ModerationService] = None
_service_lock = threading.Lock()


def get_default_service() -> ModerationService:
    """Returns the singleton moderation service, building it on first use."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = ModerationService.from_settings(
                    settings,
                    engine=InferenceEngine.get_instance(settings),
                    audit_store=AuditStore(capacity=settings.AUDIT_LOG_CAPACITY),
                )
    return _service


def reset_default_service():
    """Drop the singleton service and engine (for testing)."""
    global _service
    with _service_lock:
        _service = None
    InferenceEngine.reset_instance()


async def detect(
    image_bytes: bytes,
    file_name: str,
    user_id: Optional[str] = None,
    file_size: Optional[int] = None,
) -> DetectionResult:
    return await get_default_service().detect(image_bytes, file_name, user_id=user_id, file_size=file_size)


def query_audit_log(limit: int = 100) -> List[AuditRecord]:
    return get_default_service().audit_store.query(limit)


def clear_audit_log() -> None:
    get_default_service().audit_store.clear()


def get_stats() -> AuditStatsDTO:
    return get_default_service().audit_store.stats()


async def warmup() -> None:
    """Load the model ahead of traffic. Raises ModelInitializationError."""
    await get_default_service().warmup()
