"""
NSFW Moderation Engine

Validator -> Preprocessor -> Inference Engine -> Decision Policy, with every
verdict recorded to the bounded audit store.
"""

from content_guard.engines.moderation.entrypoints import (
    clear_audit_log,
    detect,
    get_stats,
    query_audit_log,
    warmup,
)
from content_guard.engines.moderation.schemas import Category, DetectionResult, AuditRecord, AuditStatsDTO

__all__ = [
    "detect",
    "query_audit_log",
    "clear_audit_log",
    "get_stats",
    "warmup",
    "Category",
    "DetectionResult",
    "AuditRecord",
    "AuditStatsDTO",
]
