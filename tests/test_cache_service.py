"""
Tests for the cache service.
"""
import asyncio
import unittest
import sys
import os
import logging

# Add parent directory to path to allow imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.cache_service import CacheService, InMemoryCacheStore, jaccard_similarity

# Disable logging during tests
logging.disable(logging.CRITICAL)

class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

class YieldingStore(InMemoryCacheStore):
    """In-memory store that hands control back to the loop before every call."""

    async def get(self, key):
        await asyncio.sleep(0)
        return await super().get(key)

    async def set(self, key, value, ttl=None):
        await asyncio.sleep(0)
        await super().set(key, value, ttl)

    async def incr_hits(self, key):
        await asyncio.sleep(0)
        return await super().incr_hits(key)

class TestCacheKeys(unittest.TestCase):
    """Tests for cache key generation."""

    def setUp(self):
        self.cache = CacheService(store=InMemoryCacheStore(), version="v1")

    def test_key_ignores_parameter_order(self):
        first = self.cache.generate_key("/api/pathway", {"message": "nursing", "profile_education": "high_school"})
        second = self.cache.generate_key("/api/pathway", {"profile_education": "high_school", "message": "nursing"})

        self.assertEqual(first, second)

    def test_key_changes_with_one_value(self):
        first = self.cache.generate_key("/api/pathway", {"message": "nursing"})
        second = self.cache.generate_key("/api/pathway", {"message": "engineering"})

        self.assertNotEqual(first, second)

    def test_scalars_are_normalized(self):
        first = self.cache.generate_key("/api/pathway", {"message": "  Nursing "})
        second = self.cache.generate_key("/api/pathway", {"message": "nursing"})

        self.assertEqual(first, second)

    def test_none_values_are_dropped(self):
        first = self.cache.generate_key("/api/pathway", {"message": "nursing", "extra": None})
        second = self.cache.generate_key("/api/pathway", {"message": "nursing"})

        self.assertEqual(first, second)

    def test_profile_scopes_the_key(self):
        global_key = self.cache.generate_key("/api/pathway", {"message": "nursing"})
        profile_key = self.cache.generate_key("/api/pathway", {"message": "nursing"}, "likes biology")

        self.assertTrue(global_key.startswith("cache:v1:global:"))
        self.assertTrue(profile_key.startswith("cache:v1:profile:"))
        self.assertNotEqual(global_key, profile_key)

class TestCacheService(unittest.IsolatedAsyncioTestCase):
    """Tests for cache reads, writes and invalidation."""

    def setUp(self):
        self.clock = FakeClock()
        self.store = InMemoryCacheStore(clock=self.clock)
        self.cache = CacheService(store=self.store, clock=self.clock, default_ttl=100)

    async def test_set_then_get(self):
        await self.cache.set("cache:v1:global:a", {"value": 1})

        self.assertEqual(await self.cache.get("cache:v1:global:a"), {"value": 1})

    async def test_entry_expires(self):
        await self.cache.set("cache:v1:global:a", {"value": 1}, ttl=10)
        self.clock.advance(11)

        self.assertIsNone(await self.cache.get("cache:v1:global:a"))

    async def test_hit_keeps_remaining_ttl(self):
        await self.cache.set("cache:v1:global:a", {"value": 1}, ttl=10)
        self.clock.advance(4)

        await self.cache.get("cache:v1:global:a")

        self.assertAlmostEqual(await self.store.ttl("cache:v1:global:a"), 6)

    async def test_hit_count_increments(self):
        await self.cache.set("cache:v1:global:a", {"value": 1})
        await self.cache.get("cache:v1:global:a")
        await self.cache.get("cache:v1:global:a")

        raw = await self.store.get("cache:v1:global:a")
        self.assertIn('"hits": 2', raw)

    async def test_hit_just_before_expiry_does_not_extend_ttl(self):
        await self.cache.set("cache:v1:global:a", {"value": 1}, ttl=10)
        self.clock.advance(9.99)

        self.assertEqual(await self.cache.get("cache:v1:global:a"), {"value": 1})
        self.assertAlmostEqual(await self.store.ttl("cache:v1:global:a"), 0.01)

        self.clock.advance(0.02)
        self.assertEqual(await self.store.ttl("cache:v1:global:a"), -2)
        self.assertIsNone(await self.cache.get("cache:v1:global:a"))

    async def test_hit_on_expired_key_does_not_recreate_it(self):
        await self.cache.set("cache:v1:global:a", {"value": 1}, ttl=10)
        self.clock.advance(10)

        self.assertIsNone(await self.store.incr_hits("cache:v1:global:a"))
        self.assertIsNone(await self.store.get("cache:v1:global:a"))

    async def test_concurrent_hit_keeps_newer_payload(self):
        store = YieldingStore(clock=self.clock)
        cache = CacheService(store=store, clock=self.clock, default_ttl=100)
        await cache.set("cache:v1:global:a", {"v": "old"})

        await asyncio.gather(
            cache.get("cache:v1:global:a"),
            cache.set("cache:v1:global:a", {"v": "new"}),
            cache.get("cache:v1:global:a"),
        )

        self.assertEqual(await cache.get("cache:v1:global:a"), {"v": "new"})

    async def test_payload_lists_survive_hits(self):
        payload = {"tools_used": [], "errors": [], "aggregated_data": {"careers": []}}
        await self.cache.set("cache:v1:global:a", payload)

        await self.cache.get("cache:v1:global:a")

        self.assertEqual(await self.cache.get("cache:v1:global:a"), payload)

    async def test_invalidate_by_tags(self):
        await self.cache.set("cache:v1:global:a", 1, tags=["pathway"])
        await self.cache.set("cache:v1:global:b", 2, tags=["warmup"])

        deleted = await self.cache.invalidate_by_tags(["pathway"])

        self.assertEqual(deleted, 1)
        self.assertIsNone(await self.cache.get("cache:v1:global:a"))
        self.assertEqual(await self.cache.get("cache:v1:global:b"), 2)

    async def test_invalidate_by_tags_skips_expired_entries(self):
        await self.cache.set("cache:v1:global:a", 1, ttl=10, tags=["pathway"])
        await self.cache.set("cache:v1:global:b", 2, ttl=50, tags=["pathway"])
        self.clock.advance(20)

        deleted = await self.cache.invalidate_by_tags(["pathway"])

        self.assertEqual(deleted, 1)
        self.assertEqual(await self.store.smembers("cache_tag:pathway"), set())

    async def test_writes_prune_expired_tag_members(self):
        await self.cache.set("cache:v1:global:a", 1, ttl=10, tags=["pathway"])
        self.clock.advance(20)

        await self.cache.set("cache:v1:global:b", 2, tags=["pathway"])

        self.assertEqual(await self.store.smembers("cache_tag:pathway"), {"cache:v1:global:b"})

    async def test_invalidate_by_pattern(self):
        await self.cache.set("cache:v1:global:/api/pathway:x", 1)
        await self.cache.set("cache:v1:global:jsonl:getAllHSPrograms:y", 2)

        deleted = await self.cache.invalidate_by_pattern("jsonl:")

        self.assertEqual(deleted, 1)
        self.assertEqual(await self.cache.get("cache:v1:global:/api/pathway:x"), 1)

    async def test_invalidate_all(self):
        await self.cache.set("cache:v1:global:a", 1, tags=["pathway"])
        await self.cache.record_query("nursing programs", "/api/pathway", "cache:v1:global:a")

        deleted = await self.cache.invalidate_all()

        self.assertEqual(deleted, 1)
        stats = await self.cache.get_stats()
        self.assertEqual(stats["total_cache_entries"], 0)
        self.assertEqual(stats["popular_queries"], [])

    async def test_find_similar_returns_close_query(self):
        await self.cache.set("cache:v1:global:a", {"response_text": "nursing"})
        await self.cache.record_query("nursing programs in hawaii", "/api/pathway", "cache:v1:global:a")

        found = await self.cache.find_similar("Nursing programs in Hawaii", threshold=0.8)

        self.assertEqual(found, {"response_text": "nursing"})

    async def test_find_similar_ignores_distant_query(self):
        await self.cache.set("cache:v1:global:a", {"response_text": "nursing"})
        await self.cache.record_query("nursing programs in hawaii", "/api/pathway", "cache:v1:global:a")

        self.assertIsNone(await self.cache.find_similar("engineering careers", threshold=0.8))

    async def test_stats_count_popular_queries(self):
        await self.cache.set("cache:v1:global:a", 1)
        await self.cache.record_query("nursing", "/api/pathway", "cache:v1:global:a")
        await self.cache.record_query("Nursing", "/api/pathway", "cache:v1:global:a")

        stats = await self.cache.get_stats()

        self.assertEqual(stats["popular_queries"][0], {"query": "nursing", "count": 2})
        self.assertEqual(stats["popular_endpoints"][0]["endpoint"], "/api/pathway")

class TestJaccardSimilarity(unittest.TestCase):

    def test_identical_token_sets(self):
        self.assertEqual(jaccard_similarity("computer science", "Science computer"), 1.0)

    def test_partial_overlap(self):
        self.assertAlmostEqual(jaccard_similarity("computer science", "computer engineering"), 1 / 3)

    def test_empty_strings(self):
        self.assertEqual(jaccard_similarity("", ""), 0.0)

if __name__ == "__main__":
    unittest.main()
