"""
Audit Store Unit Tests
"""

import unittest
from concurrent.futures import ThreadPoolExecutor

from content_guard.engines.moderation.audit import AuditStore
from content_guard.engines.moderation.schemas import AuditStatsDTO, ImageMetadata


def _fill(store: AuditStore, count: int, blocked_every: int = 0):
    for i in range(count):
        is_nsfw = bool(blocked_every) and i % blocked_every == 0
        store.record(file_name=f"upload-{i}.jpg", is_nsfw=is_nsfw, confidence=0.9 if is_nsfw else 0.1)


class TestRecordAndQuery(unittest.TestCase):

    def test_most_recent_first(self):
        store = AuditStore()
        _fill(store, 5)
        names = [r.file_name for r in store.query(3)]
        self.assertEqual(names, ["upload-4.jpg", "upload-3.jpg", "upload-2.jpg"])

    def test_default_limit_and_zero(self):
        store = AuditStore()
        _fill(store, 150)
        self.assertEqual(len(store.query()), 100)
        self.assertEqual(store.query(0), [])
        with self.assertRaises(ValueError):
            store.query(-1)

    def test_query_does_not_mutate(self):
        store = AuditStore()
        _fill(store, 3)
        store.query(2)
        self.assertEqual(len(store), 3)

    def test_record_fields(self):
        store = AuditStore()
        entry = store.record(
            file_name="cat.png",
            is_nsfw=True,
            confidence=1.0,
            user_id="user-42",
            file_size=None,
            metadata=ImageMetadata(format="png", width=640, height=480),
            error="Invalid image format: bmp",
        )
        self.assertEqual(entry.user_id, "user-42")
        self.assertEqual(entry.file_size, 0)
        self.assertEqual((entry.dimensions.width, entry.dimensions.height), (640, 480))
        self.assertEqual(entry.error, "Invalid image format: bmp")
        self.assertIsNotNone(entry.timestamp.tzinfo)

    def test_metadata_without_dimensions_is_omitted(self):
        store = AuditStore()
        entry = store.record(
            file_name="x.bin", is_nsfw=True, confidence=1.0,
            metadata=ImageMetadata(format=None, width=None, height=None),
        )
        self.assertIsNone(entry.dimensions)

    def test_invalid_fields_still_audited(self):
        store = AuditStore()
        entry = store.record(file_name="bad.jpg", is_nsfw=True, confidence=7.5, file_size=-5, error="boom")
        self.assertEqual(len(store), 1)
        self.assertEqual(entry.confidence, 1.0)
        self.assertEqual(entry.file_size, 0)
        self.assertTrue(entry.is_nsfw)
        self.assertEqual(entry.error, "boom")

    def test_nan_confidence_is_recorded_as_blocking_score(self):
        store = AuditStore()
        entry = store.record(file_name="nan.jpg", is_nsfw=True, confidence=float("nan"))
        self.assertEqual(entry.confidence, 1.0)
        self.assertEqual(store.query(1), [entry])


class TestCapacity(unittest.TestCase):

    def test_default_bound_evicts_oldest(self):
        store = AuditStore()
        _fill(store, 10005)
        records = store.query(10000)
        self.assertEqual(len(records), 10000)
        self.assertEqual(records[0].file_name, "upload-10004.jpg")
        self.assertEqual(records[-1].file_name, "upload-5.jpg")
        names = {r.file_name for r in records}
        for evicted in range(5):
            self.assertNotIn(f"upload-{evicted}.jpg", names)

    def test_small_capacity(self):
        store = AuditStore(capacity=3)
        _fill(store, 4)
        self.assertEqual([r.file_name for r in store.query(10)], ["upload-3.jpg", "upload-2.jpg", "upload-1.jpg"])

    def test_invalid_capacity(self):
        with self.assertRaises(ValueError):
            AuditStore(capacity=0)

    def test_concurrent_appends(self):
        store = AuditStore(capacity=500)
        with ThreadPoolExecutor(max_workers=8) as pool:
            for worker in range(8):
                pool.submit(_fill, store, 100)
        self.assertEqual(len(store), 500)
        self.assertEqual(store.stats().total_checks, 500)


class TestStats(unittest.TestCase):

    def test_block_rate(self):
        store = AuditStore()
        for is_nsfw in (True, True, True, False):
            store.record(file_name="f.jpg", is_nsfw=is_nsfw, confidence=1.0 if is_nsfw else 0.2)
        stats = store.stats()
        self.assertEqual(stats.total_checks, 4)
        self.assertEqual(stats.blocked_count, 3)
        self.assertEqual(stats.allowed_count, 1)
        self.assertEqual(stats.block_rate_percent, 75.0)

    def test_clear_resets_stats(self):
        store = AuditStore()
        _fill(store, 10, blocked_every=2)
        store.clear()
        self.assertEqual(store.stats(), AuditStatsDTO(total_checks=0, blocked_count=0, allowed_count=0, block_rate_percent=0.0))
        self.assertEqual(store.query(100), [])

    def test_stats_follow_eviction(self):
        store = AuditStore(capacity=2)
        store.record(file_name="a", is_nsfw=True, confidence=1.0)
        store.record(file_name="b", is_nsfw=False, confidence=0.0)
        store.record(file_name="c", is_nsfw=False, confidence=0.0)
        self.assertEqual(store.stats().blocked_count, 0)
        self.assertEqual(store.stats().block_rate_percent, 0.0)


if __name__ == "__main__":
    unittest.main()
