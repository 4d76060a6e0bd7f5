"""
Cache warmup for common pathway queries and full program listings.
"""
import logging
from typing import Any, Dict, List, Optional

from config import CACHE_CONFIG
from data.repository import PathwayRepository
from services.cache_service import CacheService

logger = logging.getLogger(__name__)

POPULAR_QUERIES = [
    "computer science",
    "nursing",
    "business",
    "engineering",
    "healthcare",
    "technology",
    "education",
    "hospitality",
    "agriculture",
    "marine biology",
    "culinary",
    "automotive",
    "construction",
]

WARMUP_KINDS = ("popular", "programs", "all")
WARMUP_TAG = "warmup"

class WarmupService:
    """Pre-populates the cache in an explicit batch."""

    def __init__(self,
                 cache: CacheService,
                 repository: PathwayRepository,
                 queries: Optional[List[str]] = None,
                 ttl: Optional[int] = None):
        self.cache = cache
        self.repository = repository
        self.queries = queries or list(POPULAR_QUERIES)
        self.ttl = ttl or CACHE_CONFIG["warmup_ttl"]

    async def _warm_query(self, query: str) -> Dict[str, Any]:
        key = self.cache.generate_key("/api/pathway", {"query": query})
        if await self.cache.get(key) is not None:
            return {"query": query, "status": "already_cached"}

        traced = await self.repository.tracer.trace_from_keywords([query])
        if not (traced.school_programs or traced.college_programs or traced.careers):
            return {"query": query, "status": "no_results"}

        counts = {
            "hs_programs": len(traced.school_programs),
            "college_programs": len(traced.college_programs),
            "careers": len(traced.careers),
        }
        await self.cache.set(
            key,
            traced.model_dump(),
            ttl=self.ttl,
            tags=[WARMUP_TAG, "pathway", "search"],
            metadata={"query": query, **counts}
        )
        return {"query": query, "status": "cached", **counts}

    async def _warm_listing(self, label: str, endpoint: str, tag: str, loader) -> Dict[str, Any]:
        key = self.cache.generate_key(endpoint, {})
        if await self.cache.get(key) is not None:
            return {"type": label, "status": "already_cached"}

        programs = await loader()
        await self.cache.set(
            key,
            [program.model_dump(by_alias=True) for program in programs],
            ttl=self.ttl,
            tags=[WARMUP_TAG, tag]
        )
        return {"type": label, "status": "cached", "count": len(programs)}

    async def warm(self, kind: str = "popular") -> Dict[str, Any]:
        """
        Warm the cache.

        Args:
            kind: "popular" for the common queries, "programs" for the full
                program listings, "all" for both

        Returns:
            {"warmed_count": int, "results": per-item status dicts}

        Raises:
            ValueError: If kind is unknown
        """
        if kind not in WARMUP_KINDS:
            raise ValueError(f"Unknown warmup kind: {kind}")

        logger.info(f"Starting cache warmup: {kind}")
        results = []

        if kind in ("popular", "all"):
            for query in self.queries:
                try:
                    results.append(await self._warm_query(query))
                except Exception as e:
                    logger.error(f"Error warming up query '{query}': {str(e)}")
                    results.append({"query": query, "status": "error", "error": str(e)})

        if kind in ("programs", "all"):
            listings = [
                ("All HS Programs", "jsonl:getAllHSPrograms", "hs_programs", self.repository.school.get_all_programs),
                ("All College Programs", "jsonl:getAllCollegePrograms", "college_programs",
                 self.repository.college.get_all_programs),
            ]
            for label, endpoint, tag, loader in listings:
                try:
                    results.append(await self._warm_listing(label, endpoint, tag, loader))
                except Exception as e:
                    logger.error(f"Error warming up {label}: {str(e)}")
                    results.append({"type": label, "status": "error", "error": str(e)})

        warmed_count = sum(1 for result in results if result["status"] == "cached")
        logger.info(f"Cache warmup completed: {warmed_count} entries cached")
        return {"warmed_count": warmed_count, "results": results}
