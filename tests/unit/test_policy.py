"""
Decision Policy Unit Tests
"""

import math
import unittest

from content_guard.engines.moderation.policy import DecisionPolicy
from content_guard.engines.moderation.schemas import (
    Category,
    DetectionResult,
    FailureKind,
    StageFailure,
    StageResult,
)


class TestThresholds(unittest.TestCase):

    def setUp(self):
        self.policy = DecisionPolicy(high=0.7, mid=0.4)

    def test_categories(self):
        cases = [
            (0.0, Category.SAFE),
            (0.15, Category.SAFE),
            (0.4, Category.SAFE),          # strict > for uncertain
            (0.4000001, Category.UNCERTAIN),
            (0.55, Category.UNCERTAIN),
            (0.7, Category.UNCERTAIN),     # strict > for nsfw
            (0.7000001, Category.NSFW),
            (0.85, Category.NSFW),
            (1.0, Category.NSFW),
        ]
        for confidence, expected in cases:
            with self.subTest(confidence=confidence):
                self.assertEqual(self.policy.classify(confidence), expected)

    def test_is_nsfw_tracks_category(self):
        for confidence in (0.1, 0.4, 0.5, 0.7, 0.71, 0.99):
            with self.subTest(confidence=confidence):
                result = self.policy.decide(confidence)
                self.assertEqual(result.is_nsfw, result.category == Category.NSFW)
                self.assertIsNone(result.error)
                self.assertEqual(result.confidence, confidence)

    def test_inconsistent_thresholds_rejected(self):
        with self.assertRaises(ValueError):
            DecisionPolicy(high=0.3, mid=0.6)
        with self.assertRaises(ValueError):
            DecisionPolicy(high=1.5, mid=0.4)


class TestFailClosed(unittest.TestCase):

    def setUp(self):
        self.policy = DecisionPolicy()

    def test_every_failure_kind_blocks(self):
        for kind in FailureKind:
            with self.subTest(kind=kind):
                result = self.policy.resolve(StageResult.fail(kind, f"{kind.value} happened"))
                self.assertTrue(result.is_nsfw)
                self.assertEqual(result.confidence, 1.0)
                self.assertEqual(result.category, Category.NSFW)
                self.assertEqual(result.error, f"{kind.value} happened")

    def test_invalid_confidence_blocks(self):
        for bad in (math.nan, -0.1, 1.2, None, "high"):
            with self.subTest(confidence=bad):
                result = self.policy.decide(bad)
                self.assertTrue(result.is_nsfw)
                self.assertEqual(result.confidence, 1.0)
                self.assertIsNotNone(result.error)

    def test_success_passes_through(self):
        result = self.policy.resolve(StageResult.success(0.15))
        self.assertFalse(result.is_nsfw)
        self.assertEqual(result.category, Category.SAFE)

    def test_result_cannot_allow_with_error(self):
        with self.assertRaises(ValueError):
            DetectionResult(is_nsfw=False, confidence=0.1, category=Category.SAFE, error="boom")

    def test_fail_closed_ignores_failure_kind(self):
        failure = StageFailure(FailureKind.UNEXPECTED, "anything")
        self.assertEqual(
            self.policy.fail_closed(failure),
            DetectionResult(is_nsfw=True, confidence=1.0, category=Category.NSFW, error="anything"),
        )


if __name__ == "__main__":
    unittest.main()
