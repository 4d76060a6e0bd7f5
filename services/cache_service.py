"""
Cache layer for pathway results.

Entries live in a pluggable key-value store. Keys are derived
deterministically from an endpoint name plus a normalized parameter map,
optionally scoped by a profile fingerprint. Besides plain get/set with TTL
the service keeps a tag index for bulk invalidation, popularity counters
for queries and endpoints, and a recent-query index used for approximate
near-duplicate lookups.
"""
import asyncio
import fnmatch
import hashlib
import json
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

import redis.asyncio as aioredis

from config import CACHE_CONFIG, REDIS_CONFIG

logger = logging.getLogger(__name__)

RECENT_QUERIES_KEY = "recent_cache_queries"
POPULAR_QUERIES_KEY = "popular_queries"
POPULAR_ENDPOINTS_KEY = "popular_endpoints"
TAG_PREFIX = "cache_tag:"
QUERY_POINTER_PREFIX = "cache_query:"

# Keep the recent-query index bounded
RECENT_QUERIES_MAX = 500


class InMemoryCacheStore:
    """
    Process-local store with the subset of Redis commands the cache needs.

    Every operation runs under one asyncio lock, so each key update is atomic
    with respect to concurrent requests in the same event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = asyncio.Lock()
        self._values: Dict[str, Tuple[str, Optional[float]]] = {}
        self._sets: Dict[str, set] = {}
        self._sorted_sets: Dict[str, Dict[str, float]] = {}

    def _expired(self, key: str) -> bool:
        item = self._values.get(key)
        if item is None:
            return True
        expires_at = item[1]
        if expires_at is not None and expires_at <= self._clock():
            del self._values[key]
            return True
        return False

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            if self._expired(key):
                return None
            return self._values[key][0]

    async def set(self, key: str, value: str, ttl: Optional[float] = None):
        async with self._lock:
            self._values[key] = (value, self._clock() + ttl if ttl else None)

    async def incr_hits(self, key: str) -> Optional[str]:
        """
        Bump the ``hits`` field of a JSON entry in place.

        The expiry is left untouched; a missing or expired key is never
        re-created.

        Returns:
            The updated entry, or None when the key is gone
        """
        async with self._lock:
            if self._expired(key):
                return None
            raw, expires_at = self._values[key]
            entry = json.loads(raw)
            entry["hits"] = entry.get("hits", 0) + 1
            updated = json.dumps(entry)
            self._values[key] = (updated, expires_at)
            return updated

    async def ttl(self, key: str) -> float:
        """Remaining seconds, -1 without expiry, -2 when missing."""
        async with self._lock:
            if self._expired(key):
                return -2
            expires_at = self._values[key][1]
            if expires_at is None:
                return -1
            return expires_at - self._clock()

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            removed = 0
            for key in keys:
                if key in self._values and not self._expired(key):
                    del self._values[key]
                    removed += 1
                for container in (self._sets, self._sorted_sets):
                    if key in container:
                        del container[key]
                        removed += 1
            return removed

    async def keys(self, pattern: str = "*") -> List[str]:
        async with self._lock:
            live = [key for key in list(self._values) if not self._expired(key)]
            names = live + list(self._sets) + list(self._sorted_sets)
            return [key for key in names if fnmatch.fnmatchcase(key, pattern)]

    async def sadd(self, name: str, *members: str):
        async with self._lock:
            self._sets.setdefault(name, set()).update(members)

    async def smembers(self, name: str) -> set:
        async with self._lock:
            return set(self._sets.get(name, set()))

    async def prune_set(self, name: str) -> int:
        """Drop set members that no longer name a live key."""
        async with self._lock:
            members = self._sets.get(name)
            if not members:
                return 0
            dead = {member for member in members if self._expired(member)}
            members -= dead
            if not members:
                del self._sets[name]
            return len(dead)

    async def zadd(self, name: str, mapping: Dict[str, float]):
        async with self._lock:
            self._sorted_sets.setdefault(name, {}).update(mapping)

    async def zincrby(self, name: str, amount: float, member: str) -> float:
        async with self._lock:
            scores = self._sorted_sets.setdefault(name, {})
            scores[member] = scores.get(member, 0) + amount
            return scores[member]

    async def zrevrange(self, name: str, start: int, end: int, withscores: bool = False):
        async with self._lock:
            scores = self._sorted_sets.get(name, {})
            ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
            stop = None if end == -1 else end + 1
            window = ranked[start:stop]
            if withscores:
                return [(member, score) for member, score in window]
            return [member for member, _ in window]

    async def zremrangebyrank(self, name: str, start: int, end: int):
        """Remove members by ascending rank, as Redis does."""
        async with self._lock:
            scores = self._sorted_sets.get(name, {})
            ranked = sorted(scores.items(), key=lambda item: item[1])
            stop = None if end == -1 else end + 1
            for member, _ in ranked[start:stop]:
                del scores[member]


# Entries are {"hits": n, "body": "<json>"}; the body stays an opaque string to cjson
INCR_HITS_SCRIPT = """
local raw = redis.call('GET', KEYS[1])
if not raw then
    return nil
end
local entry = cjson.decode(raw)
entry.hits = (entry.hits or 0) + 1
local updated = cjson.encode(entry)
redis.call('SET', KEYS[1], updated, 'XX', 'KEEPTTL')
return updated
"""

PRUNE_SET_SCRIPT = """
local removed = 0
for _, member in ipairs(redis.call('SMEMBERS', KEYS[1])) do
    if redis.call('EXISTS', member) == 0 then
        redis.call('SREM', KEYS[1], member)
        removed = removed + 1
    end
end
return removed
"""


class RedisCacheStore:
    """Store backed by a Redis server (6.0 or later) through redis-py's asyncio client."""

    def __init__(self, client: Optional[aioredis.Redis] = None):
        self.client = client or aioredis.Redis(
            host=REDIS_CONFIG["host"],
            port=REDIS_CONFIG["port"],
            password=REDIS_CONFIG["password"] or None,
            db=REDIS_CONFIG["db"],
            decode_responses=True
        )

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(self, key: str, value: str, ttl: Optional[float] = None):
        if ttl:
            await self.client.set(key, value, ex=int(ttl))
        else:
            await self.client.set(key, value)

    async def incr_hits(self, key: str) -> Optional[str]:
        return await self.client.eval(INCR_HITS_SCRIPT, 1, key)

    async def ttl(self, key: str) -> float:
        return await self.client.ttl(key)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self.client.delete(*keys)

    async def keys(self, pattern: str = "*") -> List[str]:
        return [key async for key in self.client.scan_iter(match=pattern)]

    async def sadd(self, name: str, *members: str):
        if members:
            await self.client.sadd(name, *members)

    async def smembers(self, name: str) -> set:
        return await self.client.smembers(name)

    async def prune_set(self, name: str) -> int:
        return await self.client.eval(PRUNE_SET_SCRIPT, 1, name)

    async def zadd(self, name: str, mapping: Dict[str, float]):
        await self.client.zadd(name, mapping)

    async def zincrby(self, name: str, amount: float, member: str) -> float:
        return await self.client.zincrby(name, amount, member)

    async def zrevrange(self, name: str, start: int, end: int, withscores: bool = False):
        return await self.client.zrevrange(name, start, end, withscores=withscores)

    async def zremrangebyrank(self, name: str, start: int, end: int):
        await self.client.zremrangebyrank(name, start, end)


def build_cache_store(backend: Optional[str] = None):
    """
    Create the store named by the cache configuration.

    Args:
        backend: "memory" or "redis"; defaults to CACHE_CONFIG["backend"]

    Returns:
        A store instance
    """
    backend = (backend or CACHE_CONFIG["backend"]).lower()
    if backend == "redis":
        logger.info(f"Using Redis cache store at {REDIS_CONFIG['host']}:{REDIS_CONFIG['port']}")
        return RedisCacheStore()
    logger.info("Using in-memory cache store")
    return InMemoryCacheStore()


def jaccard_similarity(first: str, second: str) -> float:
    """Token-set Jaccard similarity of two strings, case-insensitive."""
    first_tokens = set(first.lower().split())
    second_tokens = set(second.lower().split())
    union = first_tokens | second_tokens
    if not union:
        return 0.0
    return len(first_tokens & second_tokens) / len(union)


def _normalize_value(value: Any) -> str:
    if isinstance(value, (set, frozenset)):
        value = sorted(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return str(value).lower().strip()


class CacheService:
    """TTL cache with tag invalidation, popularity tracking and similarity lookup."""

    def __init__(self,
                 store=None,
                 clock: Callable[[], float] = time.time,
                 version: Optional[str] = None,
                 default_ttl: Optional[int] = None,
                 similarity_threshold: Optional[float] = None,
                 recent_window: Optional[int] = None):
        self.store = store if store is not None else InMemoryCacheStore(clock=clock)
        self.clock = clock
        self.version = version or CACHE_CONFIG["version"]
        self.default_ttl = default_ttl or CACHE_CONFIG["default_ttl"]
        self.similarity_threshold = (
            similarity_threshold if similarity_threshold is not None
            else CACHE_CONFIG["similarity_threshold"]
        )
        self.recent_window = recent_window or CACHE_CONFIG["recent_window"]

    def generate_key(self,
                     endpoint: str,
                     params: Dict[str, Any],
                     profile: Optional[Union[str, Dict[str, Any]]] = None) -> str:
        """
        Build a deterministic cache key.

        Parameters are sorted by name; None values are dropped; scalars are
        lower-cased and trimmed; dicts and lists are JSON encoded with
        sorted keys. A profile adds an md5 fingerprint scope.

        Args:
            endpoint: Logical operation name
            params: Request parameters
            profile: Optional profile string or dict

        Returns:
            The cache key
        """
        normalized = {
            name: _normalize_value(params[name])
            for name in sorted(params)
            if params[name] is not None
        }
        base_key = f"{endpoint}:{json.dumps(normalized, sort_keys=True, separators=(',', ':'))}"

        if profile:
            if not isinstance(profile, str):
                profile = json.dumps(profile, sort_keys=True, default=str)
            profile_hash = hashlib.md5(profile.encode("utf-8")).hexdigest()[:8]
            return f"cache:{self.version}:profile:{profile_hash}:{base_key}"

        return f"cache:{self.version}:global:{base_key}"

    async def get(self, key: str) -> Optional[Any]:
        """
        Read an entry's payload and count the hit.

        The store bumps the hit count in one step and never touches the
        entry's expiry.

        Args:
            key: Cache key

        Returns:
            The cached payload, or None on a miss or store failure
        """
        try:
            raw = await self.store.incr_hits(key)
            if raw is None:
                logger.debug(f"Cache miss: {key}")
                return None

            entry = json.loads(raw)
            logger.debug(f"Cache hit: {key} (hits={entry['hits']})")
            return json.loads(entry["body"]).get("data")
        except Exception as e:
            logger.error(f"Cache read failed for {key}: {str(e)}")
            return None

    async def set(self,
                  key: str,
                  data: Any,
                  ttl: Optional[int] = None,
                  tags: Optional[Iterable[str]] = None,
                  metadata: Optional[Dict[str, Any]] = None,
                  version: Optional[str] = None) -> bool:
        """
        Store a payload and index it under its tags.

        Args:
            key: Cache key
            data: JSON-serializable payload
            ttl: Seconds to live, defaults to the configured TTL
            tags: Tags for bulk invalidation
            metadata: Free-form metadata kept with the entry
            version: Entry version, defaults to the cache version

        Returns:
            True when the entry was written
        """
        tags = list(tags or [])
        body = {
            "data": data,
            "created_at": self.clock(),
            "tags": tags,
            "version": version or self.version,
            "metadata": metadata or {},
        }
        entry = {"hits": 0, "body": json.dumps(body, default=str)}
        try:
            await self.store.set(key, json.dumps(entry), ttl=ttl or self.default_ttl)
            for tag in tags:
                tag_key = f"{TAG_PREFIX}{tag}"
                await self.store.prune_set(tag_key)
                await self.store.sadd(tag_key, key)
            logger.debug(f"Cached {key} (ttl={ttl or self.default_ttl}, tags={tags})")
            return True
        except Exception as e:
            logger.error(f"Cache write failed for {key}: {str(e)}")
            return False

    async def invalidate_by_tags(self, tags: Iterable[str]) -> int:
        """
        Delete every live key indexed under any of the tags, then the tag sets.

        Members whose entries already expired are pruned first and are not
        counted.

        Returns:
            Number of entries deleted
        """
        deleted = 0
        for tag in tags:
            tag_key = f"{TAG_PREFIX}{tag}"
            try:
                await self.store.prune_set(tag_key)
                keys = await self.store.smembers(tag_key)
                removed = await self.store.delete(*keys) if keys else 0
                deleted += removed
                await self.store.delete(tag_key)
                logger.info(f"Invalidated {removed} keys for tag '{tag}'")
            except Exception as e:
                logger.error(f"Cache invalidation failed for tag '{tag}': {str(e)}")
        return deleted

    async def invalidate_by_pattern(self, pattern: str) -> int:
        """
        Delete entries whose key matches a glob pattern.

        A pattern that does not start with ``cache:`` is matched anywhere
        inside the entry keys.

        Returns:
            Number of entries deleted
        """
        if not pattern.startswith("cache:"):
            pattern = f"cache:*{pattern}*"
        try:
            keys = await self.store.keys(pattern)
            deleted = await self.store.delete(*keys) if keys else 0
            logger.info(f"Invalidated {deleted} keys matching '{pattern}'")
            return deleted
        except Exception as e:
            logger.error(f"Cache invalidation failed for pattern '{pattern}': {str(e)}")
            return 0

    async def invalidate_all(self) -> int:
        """
        Delete every entry together with the tag, query and popularity indexes.

        Returns:
            Number of entries deleted
        """
        try:
            entry_keys = await self.store.keys("cache:*")
            index_keys = (
                await self.store.keys(f"{TAG_PREFIX}*")
                + await self.store.keys(f"{QUERY_POINTER_PREFIX}*")
            )
            bookkeeping = [RECENT_QUERIES_KEY, POPULAR_QUERIES_KEY, POPULAR_ENDPOINTS_KEY]
            deleted = await self.store.delete(*entry_keys) if entry_keys else 0
            await self.store.delete(*(index_keys + bookkeeping))
            logger.info(f"Invalidated all cache entries ({deleted} deleted)")
            return deleted
        except Exception as e:
            logger.error(f"Full cache invalidation failed: {str(e)}")
            return 0

    def _query_pointer_key(self, query: str) -> str:
        return f"{QUERY_POINTER_PREFIX}{self.version}:{query.lower().strip()}"

    async def record_query(self, query: str, endpoint: str, cache_key: Optional[str] = None):
        """
        Track a query for popularity stats and similarity lookups.

        Args:
            query: The raw query text
            endpoint: Endpoint that served it
            cache_key: Key holding the query's cached payload, if any
        """
        normalized = query.lower().strip()
        if not normalized:
            return
        try:
            await self.store.zincrby(POPULAR_QUERIES_KEY, 1, normalized)
            await self.store.zincrby(POPULAR_ENDPOINTS_KEY, 1, endpoint)
            if cache_key:
                await self.store.zadd(RECENT_QUERIES_KEY, {normalized: self.clock()})
                await self.store.set(self._query_pointer_key(normalized), cache_key, ttl=self.default_ttl)
                await self.store.zremrangebyrank(RECENT_QUERIES_KEY, 0, -(RECENT_QUERIES_MAX + 1))
        except Exception as e:
            logger.error(f"Failed to record query '{normalized}': {str(e)}")

    async def find_similar(self, query: str, threshold: Optional[float] = None) -> Optional[Any]:
        """
        Best-effort near-duplicate lookup.

        Scans the most recent recorded queries and returns the cached payload
        of the first one whose token-set Jaccard similarity reaches the
        threshold.

        Args:
            query: Incoming query text
            threshold: Minimum similarity, defaults to the configured value

        Returns:
            A cached payload or None
        """
        threshold = self.similarity_threshold if threshold is None else threshold
        try:
            recent = await self.store.zrevrange(RECENT_QUERIES_KEY, 0, self.recent_window - 1)
            for cached_query in recent:
                similarity = jaccard_similarity(query, cached_query)
                if similarity < threshold:
                    continue
                pointer = await self.store.get(self._query_pointer_key(cached_query))
                if not pointer:
                    continue
                cached = await self.get(pointer)
                if cached is not None:
                    logger.info(f"Found similar cached query: '{cached_query}' (similarity: {similarity:.2f})")
                    return cached
            return None
        except Exception as e:
            logger.error(f"Similarity lookup failed: {str(e)}")
            return None

    async def get_stats(self) -> Dict[str, Any]:
        """
        Summarize cache contents and popularity.

        Returns:
            Totals, top endpoints, top queries and the cache version
        """
        try:
            entry_keys = await self.store.keys("cache:*")
            endpoints = await self.store.zrevrange(POPULAR_ENDPOINTS_KEY, 0, 9, withscores=True)
            queries = await self.store.zrevrange(POPULAR_QUERIES_KEY, 0, 9, withscores=True)
            return {
                "total_cache_entries": len(entry_keys),
                "popular_endpoints": [{"endpoint": name, "count": int(score)} for name, score in endpoints],
                "popular_queries": [{"query": name, "count": int(score)} for name, score in queries],
                "cache_version": self.version,
                "timestamp": self.clock(),
            }
        except Exception as e:
            logger.error(f"Failed to read cache stats: {str(e)}")
            return {
                "total_cache_entries": 0,
                "popular_endpoints": [],
                "popular_queries": [],
                "cache_version": self.version,
                "error": str(e),
            }
