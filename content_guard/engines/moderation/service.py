"""
Moderation Service - Fail-Closed NSFW Detection

Pipeline: Validator -> Preprocessor -> Inference Engine -> Decision Policy

Every stage yields a StageResult; the first failure short-circuits and is
folded into the blocking verdict. Every call, successful or not, produces
exactly one DetectionResult and exactly one audit record.
"""

import asyncio
import logging
import time
import uuid
from typing import Optional, Tuple

from content_guard.core.exceptions import InferenceError, ModelInitializationError
from content_guard.core.logging import LogContext
from content_guard.core.metrics import record_detection
from content_guard.engines.moderation.audit import AuditStore
from content_guard.engines.moderation.inference import InferenceEngine
from content_guard.engines.moderation.policy import DecisionPolicy
from content_guard.engines.moderation.preprocessing import preprocess_image
from content_guard.engines.moderation.schemas import (
    DetectionResult,
    FailureKind,
    ImageMetadata,
    StageResult,
)
from content_guard.engines.moderation.validator import validate_image

logger = logging.getLogger(__name__)


class ModerationService:
    """Classifies uploads as safe, uncertain or nsfw before they are accepted."""

    def __init__(
        self,
        engine: InferenceEngine,
        audit_store: AuditStore,
        policy: DecisionPolicy,
        max_size_bytes: int = 50 * 1024 * 1024,
        max_dimension: int = 4096,
    ):
        self.engine = engine
        self.audit_store = audit_store
        self.policy = policy
        self.max_size_bytes = max_size_bytes
        self.max_dimension = max_dimension

    @classmethod
    def from_settings(cls, settings, engine: InferenceEngine, audit_store: AuditStore) -> "ModerationService":
        return cls(
            engine=engine,
            audit_store=audit_store,
            policy=DecisionPolicy(
                high=settings.NSFW_CONFIDENCE_THRESHOLD,
                mid=settings.NSFW_UNCERTAIN_THRESHOLD,
            ),
            max_size_bytes=settings.max_image_size_bytes,
            max_dimension=settings.MAX_IMAGE_DIMENSION,
        )

    async def detect(
        self,
        image_bytes: bytes,
        file_name: str,
        user_id: Optional[str] = None,
        file_size: Optional[int] = None,
    ) -> DetectionResult:
        """Classify one upload. Never raises; any failure yields a blocking verdict."""
        start_time = time.time()

        with LogContext(request_id=str(uuid.uuid4()), stage="nsfw_detection"):
            metadata: Optional[ImageMetadata] = None
            try:
                outcome, metadata = await self._run_pipeline(image_bytes, file_size)
            except Exception as e:
                logger.exception(f"[NSFW] Unexpected detection error for {file_name!r}")
                outcome = StageResult.fail(FailureKind.UNEXPECTED, f"Unexpected detection error: {e}")

            result = self.policy.resolve(outcome)

            self.audit_store.record(
                file_name=file_name,
                is_nsfw=result.is_nsfw,
                confidence=result.confidence,
                user_id=user_id,
                file_size=file_size,
                metadata=metadata,
                error=result.error,
            )

            duration = time.time() - start_time
            record_detection(result.category.value, failed=result.error is not None, latency_seconds=duration)

            if result.error is not None:
                logger.warning(
                    f"[NSFW] Detection failed, REJECTING FOR SAFETY: {file_name!r}: {result.error}"
                )
            else:
                logger.info(
                    f"[NSFW] Detection completed in {int(duration * 1000)}ms | "
                    f"file={file_name!r} is_nsfw={result.is_nsfw} "
                    f"confidence={round(result.confidence, 2)} category={result.category.value}"
                )

        return result

    async def _run_pipeline(
        self,
        image_bytes: bytes,
        file_size: Optional[int],
    ) -> Tuple[StageResult[float], Optional[ImageMetadata]]:
        validation = validate_image(
            image_bytes,
            file_size,
            max_size_bytes=self.max_size_bytes,
            max_dimension=self.max_dimension,
        )
        if not validation.ok:
            return StageResult(failure=validation.failure), validation.failure.metadata
        metadata = validation.value

        # Decoding and resampling are CPU-bound
        preprocessed = await asyncio.to_thread(preprocess_image, image_bytes, self.max_dimension)
        if not preprocessed.ok:
            return StageResult(failure=preprocessed.failure), metadata

        return await self._score(preprocessed.value), metadata

    async def _score(self, tensor) -> StageResult[float]:
        try:
            await self.engine.ensure_ready()
        except ModelInitializationError as e:
            return StageResult.fail(FailureKind.ENGINE_FAILED, f"Model initialization failed: {e.message}")

        try:
            confidence = await self.engine.classify(tensor)
        except InferenceError as e:
            return StageResult.fail(FailureKind.ENGINE_FAILED, f"Inference failed: {e.message}")

        return StageResult.success(confidence)

    async def warmup(self) -> None:
        """Initialize the engine ahead of traffic. Raises ModelInitializationError."""
        await self.engine.ensure_ready()
