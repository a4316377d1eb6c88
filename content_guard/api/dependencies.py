"""
FastAPI Dependencies for the Moderation Service

Provides dependency injection for:
- Moderation service (process-wide singleton)
- Audit store (owned by the service)
- Inference engine (singleton, lazily initialized)
"""

from fastapi import Depends

from content_guard.engines.moderation.audit import AuditStore
from content_guard.engines.moderation.entrypoints import get_default_service
from content_guard.engines.moderation.inference import InferenceEngine
from content_guard.engines.moderation.service import ModerationService


def get_moderation_service() -> ModerationService:
    """Returns singleton moderation service."""
    return get_default_service()


def get_audit_store(service: ModerationService = Depends(get_moderation_service)) -> AuditStore:
    return service.audit_store


def get_inference_engine(service: ModerationService = Depends(get_moderation_service)) -> InferenceEngine:
    return service.engine
