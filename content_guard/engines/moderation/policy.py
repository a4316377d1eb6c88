"""
Decision Policy

Maps a model confidence to a verdict with two fixed thresholds:

    confidence >  high            -> nsfw       (blocked)
    mid < confidence <= high      -> uncertain  (allowed)
    confidence <= mid             -> safe       (allowed)

Any upstream failure overrides the mapping with the fixed blocking verdict
(is_nsfw=True, confidence=1.0, category=nsfw) plus the failure message.
"""

import math

from content_guard.engines.moderation.schemas import (
    Category,
    DetectionResult,
    FailureKind,
    StageFailure,
    StageResult,
)

DEFAULT_HIGH_THRESHOLD = 0.7
DEFAULT_MID_THRESHOLD = 0.4

FAIL_CLOSED_CONFIDENCE = 1.0


class DecisionPolicy:
    def __init__(self, high: float = DEFAULT_HIGH_THRESHOLD, mid: float = DEFAULT_MID_THRESHOLD):
        if not 0.0 <= mid <= high <= 1.0:
            raise ValueError(f"Thresholds must satisfy 0 <= mid <= high <= 1 (got mid={mid}, high={high})")
        self.high = high
        self.mid = mid

    def classify(self, confidence: float) -> Category:
        if confidence > self.high:
            return Category.NSFW
        if confidence > self.mid:
            return Category.UNCERTAIN
        return Category.SAFE

    def is_nsfw(self, confidence: float) -> bool:
        return confidence > self.high

    def decide(self, confidence: float) -> DetectionResult:
        """Verdict for a successfully computed confidence."""
        try:
            value = float(confidence)
        except (TypeError, ValueError):
            value = math.nan
        if math.isnan(value) or not 0.0 <= value <= 1.0:
            return self.fail_closed(
                StageFailure(FailureKind.ENGINE_FAILED, f"Model returned an invalid confidence: {confidence!r}")
            )
        return DetectionResult(
            is_nsfw=self.is_nsfw(value),
            confidence=value,
            category=self.classify(value),
        )

    def fail_closed(self, failure: StageFailure) -> DetectionResult:
        return DetectionResult(
            is_nsfw=True,
            confidence=FAIL_CLOSED_CONFIDENCE,
            category=Category.NSFW,
            error=failure.message,
        )

    def resolve(self, outcome: StageResult[float]) -> DetectionResult:
        """Fold a pipeline outcome into a verdict; failures always block."""
        if not outcome.ok:
            return self.fail_closed(outcome.failure)
        return self.decide(outcome.value)
