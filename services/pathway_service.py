"""
Pathway orchestration service: the single entry point for answering a message.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config import CACHE_CONFIG, FEATURES, ORCHESTRATOR_CONFIG
from data.repository import PathwayRepository
from models.parameters import UserProfile
from models.state import create_initial_state
from pipeline.graph import RECURSION_LIMIT, build_pathway_graph
from services.aggregation_service import ProgramAggregator
from services.cache_service import CacheService, build_cache_store
from services.career_mapping_service import CareerMappingService
from services.classification_service import QueryClassifier
from services.formatting_service import ResponseFormatter
from services.planning_service import PlanningAssistant
from services.reflection_service import ReflectionService
from services.verification_service import ResultVerifier
from utils.monitoring import PathwaySystemMonitor

logger = logging.getLogger(__name__)

PATHWAY_ENDPOINT = "/api/pathway"
PATHWAY_CACHE_TAGS = ["pathway", "search"]
RECENT_CONTEXT_TURNS = 2
RECENT_CONTEXT_CHARS = 100

SAFE_RESPONSE = ("Sorry, I ran into a problem while looking that up. "
                 "Please try again, or ask about a specific program or career.")

@dataclass
class PipelineServices:
    """Collaborators shared by every pipeline node."""
    repository: PathwayRepository
    classifier: Any
    planner: Any
    verifier: Any
    reflection: Any
    formatter: Any
    aggregator: Any
    career_mapper: Any = field(default_factory=CareerMappingService)
    monitor: Optional[PathwaySystemMonitor] = None
    max_attempts: int = ORCHESTRATOR_CONFIG["max_attempts"]
    keyword_limit: int = ORCHESTRATOR_CONFIG["keyword_limit"]
    history_window: int = ORCHESTRATOR_CONFIG["history_window"]

def recent_context(history: List[Dict[str, str]]) -> str:
    """First 100 characters of each of the last two turns, joined for the cache key."""
    return " | ".join(
        (message.get("content") or "")[:RECENT_CONTEXT_CHARS]
        for message in history[-RECENT_CONTEXT_TURNS:]
    )

class PathwayOrchestrator:
    """Runs the pathway pipeline for one message at a time, with caching."""

    def __init__(self,
                 cache: Optional[CacheService] = None,
                 repository: Optional[PathwayRepository] = None,
                 classifier=None,
                 planner=None,
                 verifier=None,
                 reflection=None,
                 formatter=None,
                 career_mapper=None,
                 monitor: Optional[PathwaySystemMonitor] = None,
                 timeout: Optional[float] = None,
                 max_attempts: Optional[int] = None,
                 career_limit: Optional[int] = None,
                 campuses_with_data: Optional[List[str]] = ORCHESTRATOR_CONFIG["campuses_with_course_data"],
                 use_cache: Optional[bool] = None):
        """
        Initialize the orchestrator. Every collaborator can be injected.

        Args:
            cache: CacheService, defaults to one over the configured store
            repository: PathwayRepository, defaults to the configured JSONL directory
            classifier: Classification service
            planner: Planning-assist service
            verifier: Verification service
            reflection: Reflection service
            formatter: Formatting service
            career_mapper: Career goal to CIP code mapper
            monitor: System monitor
            timeout: Whole-pipeline timeout in seconds
            max_attempts: Maximum retrieval attempts
            career_limit: Maximum consolidated careers
            campuses_with_data: Campus allow-list, None disables filtering
            use_cache: Read and write the pathway cache
        """
        logger.info("Initializing pathway orchestrator")
        self.cache = cache or CacheService(store=build_cache_store())
        self.repository = repository or PathwayRepository()
        self.monitor = monitor or PathwaySystemMonitor()
        self.timeout = timeout or ORCHESTRATOR_CONFIG["pipeline_timeout"]
        self.use_cache = FEATURES["use_cache"] if use_cache is None else use_cache

        self.services = PipelineServices(
            repository=self.repository,
            classifier=classifier or QueryClassifier(),
            planner=planner or PlanningAssistant(),
            verifier=verifier or ResultVerifier(),
            reflection=reflection or ReflectionService(),
            formatter=formatter or ResponseFormatter(),
            aggregator=ProgramAggregator(
                school_tool=self.repository.school,
                campuses_with_data=campuses_with_data,
                career_limit=career_limit or ORCHESTRATOR_CONFIG["career_limit"],
            ),
            career_mapper=career_mapper or CareerMappingService(),
            monitor=self.monitor,
            max_attempts=max_attempts or ORCHESTRATOR_CONFIG["max_attempts"],
        )
        self.graph = build_pathway_graph(self.services)

    def cache_key(self,
                  query: str,
                  profile: UserProfile,
                  history: List[Dict[str, str]],
                  profile_summary: Optional[str] = None) -> str:
        """Pathway cache key built from the message, recent context and profile."""
        return self.cache.generate_key(
            PATHWAY_ENDPOINT,
            {
                "message": query,
                "recent_context": recent_context(history),
                "profile_interests": ",".join(profile.interests),
                "profile_education": profile.education_level or "",
            },
            profile_summary
        )

    async def orchestrate(self,
                          query: str,
                          profile: Optional[Dict[str, Any]] = None,
                          history: Optional[List[Dict[str, str]]] = None,
                          profile_summary: Optional[str] = None) -> Dict[str, Any]:
        """
        Answer one message.

        Never raises: pipeline failures and timeouts produce a safe response
        with the error recorded.

        Args:
            query: The user message
            profile: Raw user profile (snake_case, camelCase or ``extracted`` wrapped)
            history: Recent conversation turns
            profile_summary: Free-text profile summary that scopes the cache entry

        Returns:
            Dict with response_text, aggregated_data, tools_used, quality_score,
            attempts, errors and cached
        """
        start_time = time.time()
        history = list(history or [])
        user_profile = UserProfile.from_raw(profile)
        key = self.cache_key(query, user_profile, history, profile_summary)
        # Only answers that depend on the message alone may be shared by similarity
        context_free = not history and not profile and not profile_summary

        if self.use_cache:
            cached = await self.cache.get(key)
            if cached is None and context_free:
                cached = await self.cache.find_similar(query)
            if cached is not None:
                logger.info(f"Cache hit for query: '{query}'")
                return {**cached, "cached": True}

        initial_state = create_initial_state(query, user_profile.model_dump(), history)

        try:
            final_state = await asyncio.wait_for(
                self.graph.ainvoke(initial_state, config={"recursion_limit": RECURSION_LIMIT}),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Pipeline timed out after {self.timeout}s for query: '{query}'")
            return self._safe_result(f"Pipeline timed out after {self.timeout}s")
        except Exception as e:
            logger.error(f"Pipeline failed for query '{query}': {str(e)}")
            return self._safe_result(f"Pipeline failed: {str(e)}")

        result = {
            "response_text": final_state.get("response") or SAFE_RESPONSE,
            "aggregated_data": final_state.get("aggregated_data"),
            "tools_used": final_state.get("tools_used", []),
            "quality_score": final_state.get("quality_score", 0),
            "attempts": final_state.get("attempt", 1),
            "query_kind": final_state.get("query_kind", ""),
            "errors": final_state.get("errors", []),
            "cached": False,
        }

        logger.info(f"Processed '{query}' in {time.time() - start_time:.2f}s: "
                    f"quality {result['quality_score']}/10, attempts {result['attempts']}")

        if self.use_cache and not final_state.get("input_validation_error"):
            await self.cache.set(
                key,
                result,
                ttl=CACHE_CONFIG["default_ttl"],
                tags=PATHWAY_CACHE_TAGS,
                metadata={"query": query, "profile_based": bool(profile)}
            )
            await self.cache.record_query(query, PATHWAY_ENDPOINT, key if context_free else None)

        return result

    def _safe_result(self, error: str) -> Dict[str, Any]:
        return {
            "response_text": SAFE_RESPONSE,
            "aggregated_data": None,
            "tools_used": [],
            "quality_score": 0,
            "attempts": 0,
            "query_kind": "",
            "errors": [error],
            "cached": False,
        }
