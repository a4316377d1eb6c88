"""
Audit Store

Bounded, append-only, in-memory ring of detection verdicts. Oldest records
are evicted first once capacity is reached. Statistics are recomputed from
the current contents on every call.
"""

import logging
import math
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Deque, List, Optional, Tuple

from content_guard.core.metrics import record_audit_entry
from content_guard.engines.moderation.schemas import (
    AuditRecord,
    AuditStatsDTO,
    Dimensions,
    ImageMetadata,
)

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_CAPACITY = 10000


class AuditStore:
    def __init__(self, capacity: int = DEFAULT_AUDIT_CAPACITY):
        if capacity <= 0:
            raise ValueError(f"Audit capacity must be positive (got {capacity})")
        self.capacity = capacity
        self._records: Deque[AuditRecord] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def record(
        self,
        file_name: str,
        is_nsfw: bool,
        confidence: float,
        user_id: Optional[str] = None,
        file_size: Optional[int] = None,
        metadata: Optional[ImageMetadata] = None,
        error: Optional[str] = None,
    ) -> Optional[AuditRecord]:
        """Append a timestamped record.

        Never raises. Fields that fail validation are replaced by a minimal
        record (clamped confidence, no size, no dimensions) so the verdict
        is still audited. Only a failure of the minimal record drops the entry.
        """
        timestamp = datetime.now(timezone.utc)
        try:
            dimensions = None
            if metadata is not None and metadata.has_dimensions:
                dimensions = Dimensions(width=metadata.width, height=metadata.height)

            entry = AuditRecord(
                timestamp=timestamp,
                user_id=user_id,
                file_name=file_name,
                is_nsfw=is_nsfw,
                confidence=confidence,
                file_size=file_size or 0,
                dimensions=dimensions,
                error=error,
            )
        except Exception as e:
            logger.error(f"[NSFW] Invalid audit fields for {file_name!r}, writing minimal record: {e}")
            entry = None

        try:
            if entry is None:
                entry = _minimal_record(timestamp, file_name, is_nsfw, confidence, user_id, error)
            self.append(entry)
        except Exception as e:
            logger.error(f"[NSFW] Failed to write audit record for {file_name!r}: {e}")
            return None

        logger.info(
            "[NSFW-AUDIT] %s",
            {
                "timestamp": entry.timestamp.isoformat(),
                "userId": entry.user_id or "unknown",
                "fileName": entry.file_name,
                "isNSFW": entry.is_nsfw,
                "confidence": round(entry.confidence, 2),
                "error": entry.error,
            },
        )
        record_audit_entry(entry.is_nsfw)
        return entry

    def append(self, entry: AuditRecord) -> None:
        # deque(maxlen) drops the oldest entry on overflow within the same append
        with self._lock:
            self._records.append(entry)

    def query(self, limit: int = 100) -> List[AuditRecord]:
        """Most recent ``limit`` records, newest first."""
        if limit < 0:
            raise ValueError(f"limit must be >= 0 (got {limit})")
        if limit == 0:
            return []
        with self._lock:
            snapshot = list(self._records)
        return snapshot[::-1][:limit]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
        logger.info("[NSFW] Audit logs cleared")

    def stats(self) -> AuditStatsDTO:
        total, blocked = self._counts()
        allowed = total - blocked
        return AuditStatsDTO(
            total_checks=total,
            blocked_count=blocked,
            allowed_count=allowed,
            block_rate_percent=(blocked / total) * 100 if total > 0 else 0.0,
        )

    def _counts(self) -> Tuple[int, int]:
        with self._lock:
            total = len(self._records)
            blocked = sum(1 for entry in self._records if entry.is_nsfw)
        return total, blocked


def _clamp_confidence(confidence) -> float:
    try:
        value = float(confidence)
    except (TypeError, ValueError):
        return 1.0
    if math.isnan(value):
        return 1.0
    return min(max(value, 0.0), 1.0)


def _minimal_record(timestamp, file_name, is_nsfw, confidence, user_id, error) -> AuditRecord:
    return AuditRecord(
        timestamp=timestamp,
        user_id=user_id if isinstance(user_id, str) else None,
        file_name=str(file_name),
        is_nsfw=bool(is_nsfw),
        confidence=_clamp_confidence(confidence),
        file_size=0,
        dimensions=None,
        error=error if isinstance(error, str) else None,
    )
