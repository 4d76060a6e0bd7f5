"""
End-to-end tests for the LangGraph pathway pipeline and orchestrator.
"""
import asyncio
import unittest
import sys
import os
import logging

from langchain_core.language_models import FakeListChatModel

# Add parent directory to path to allow imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data.repository import PathwayRepository
from models.parameters import ReflectionResult
from models.state import create_initial_state
from services.cache_service import CacheService, InMemoryCacheStore
from services.classification_service import QueryClassifier
from services.formatting_service import ResponseFormatter
from services.pathway_service import SAFE_RESPONSE, PathwayOrchestrator, recent_context
from services.planning_service import PlanningAssistant
from services.reflection_service import ReflectionService
from services.verification_service import ResultVerifier

# Disable logging during tests
logging.disable(logging.CRITICAL)

SEARCH_CLASSIFICATION = '{"needsTools": true, "queryType": "search", "reasoning": "asks for programs"}'
TRACE_PLAN = ('{"tools": [{"name": "trace_pathway", "args": ["computer", "science"]}, '
              '{"name": "get_careers", "args": ["all"]}]}')

class AcceptingReflection(ReflectionService):
    """Reflection that accepts every attempt."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    async def reflect(self, query, data, profile=None, history=None, attempt=1, keywords=None):
        self.calls += 1
        return ReflectionResult(quality_score=8, good_enough=True, reasoning="test")

class RejectingReflection(ReflectionService):
    """Reflection that never accepts."""

    def __init__(self):
        super().__init__(min_quality_score=11)
        self.calls = 0

    async def reflect(self, *args, **kwargs):
        self.calls += 1
        return await super().reflect(*args, **kwargs)

class SlowClassifier:
    async def classify(self, query, history=None):
        await asyncio.sleep(5)

def build_orchestrator(reflection=None, classifier=None, use_cache=False, timeout=None, **kwargs):
    return PathwayOrchestrator(
        cache=CacheService(store=InMemoryCacheStore()),
        repository=PathwayRepository(),
        classifier=classifier or QueryClassifier(llm=FakeListChatModel(responses=[SEARCH_CLASSIFICATION])),
        planner=PlanningAssistant(llm=FakeListChatModel(responses=[TRACE_PLAN])),
        verifier=ResultVerifier(enabled=False),
        reflection=reflection or AcceptingReflection(),
        formatter=ResponseFormatter(llm=FakeListChatModel(responses=["Here are the computer science pathways."])),
        use_cache=use_cache,
        timeout=timeout,
        **kwargs
    )

class TestPathwayPipeline(unittest.IsolatedAsyncioTestCase):
    """End-to-end pipeline scenarios over the sample data."""

    async def test_computer_science_query(self):
        orchestrator = build_orchestrator()
        state = create_initial_state("show me computer science programs")

        final_state = await orchestrator.graph.ainvoke(state)

        self.assertEqual(final_state["keywords"], ["computer", "science"])
        self.assertIn("trace_pathway", final_state["tools_used"])
        self.assertIn("get_careers", final_state["tools_used"])
        self.assertEqual(final_state["attempt"], 1)
        families = [p["family_name"] for p in final_state["aggregated_data"]["college_programs"]]
        self.assertTrue(any("Computer" in family for family in families))
        self.assertEqual(final_state["response"], "Here are the computer science pathways.")

    async def test_affirmative_follow_up_stays_on_topic(self):
        orchestrator = build_orchestrator()
        state = create_initial_state(
            "yes",
            {"interests": ["engineering"]},
            [
                {"role": "user", "content": "I like helping people"},
                {"role": "assistant", "content": "Are you interested in nursing programs?"},
            ]
        )

        final_state = await orchestrator.graph.ainvoke(state)

        self.assertIn("nursing", final_state["keywords"])
        self.assertNotIn("engineering", final_state["keywords"])
        self.assertEqual(final_state["query_kind"], "followup")

    async def test_retry_loop_stops_after_three_attempts(self):
        reflection = RejectingReflection()
        orchestrator = build_orchestrator(reflection=reflection)

        result = await orchestrator.orchestrate("show me computer science programs")

        self.assertEqual(result["attempts"], 3)
        self.assertEqual(reflection.calls, 3)
        self.assertEqual(result["response_text"], "Here are the computer science pathways.")

    async def test_configured_attempt_bound(self):
        reflection = RejectingReflection()
        orchestrator = build_orchestrator(reflection=reflection, max_attempts=2)

        result = await orchestrator.orchestrate("show me computer science programs")

        self.assertEqual(result["attempts"], 2)
        self.assertEqual(reflection.calls, 2)

    async def test_larger_attempt_bound_still_stops_at_three(self):
        reflection = RejectingReflection()
        orchestrator = build_orchestrator(reflection=reflection, max_attempts=5)

        result = await orchestrator.orchestrate("show me computer science programs")

        self.assertEqual(result["attempts"], 3)
        self.assertEqual(reflection.calls, 3)

    async def test_greeting_skips_retrieval(self):
        orchestrator = build_orchestrator()

        result = await orchestrator.orchestrate("hello")

        self.assertEqual(result["query_kind"], "greeting")
        self.assertEqual(result["tools_used"], [])
        self.assertTrue(result["response_text"])

    async def test_empty_message_is_rejected(self):
        orchestrator = build_orchestrator(use_cache=True)

        result = await orchestrator.orchestrate("   ")

        self.assertIn("empty", result["response_text"])
        self.assertEqual(result["tools_used"], [])
        stats = await orchestrator.cache.get_stats()
        self.assertEqual(stats["total_cache_entries"], 0)

    async def test_timeout_returns_safe_response(self):
        orchestrator = build_orchestrator(classifier=SlowClassifier(), timeout=0.05)

        result = await orchestrator.orchestrate("show me computer science programs")

        self.assertEqual(result["response_text"], SAFE_RESPONSE)
        self.assertIn("timed out", result["errors"][0])
        self.assertFalse(result["cached"])

    async def test_monitor_records_runs(self):
        orchestrator = build_orchestrator()

        await orchestrator.orchestrate("show me computer science programs")
        await orchestrator.orchestrate("hello")

        health = orchestrator.monitor.get_system_health()
        self.assertEqual(health["queries_processed"], 2)
        self.assertEqual(health["query_kind_distribution"], {"search": 1, "greeting": 1})

class TestOrchestratorCaching(unittest.IsolatedAsyncioTestCase):
    """Tests for pathway result caching."""

    async def test_second_request_is_served_from_cache(self):
        reflection = AcceptingReflection()
        orchestrator = build_orchestrator(reflection=reflection, use_cache=True)

        first = await orchestrator.orchestrate("show me computer science programs")
        second = await orchestrator.orchestrate("show me computer science programs")

        self.assertFalse(first["cached"])
        self.assertTrue(second["cached"])
        self.assertEqual(second["response_text"], first["response_text"])
        self.assertEqual(reflection.calls, 1)

    async def test_similar_query_reuses_cached_result(self):
        reflection = AcceptingReflection()
        orchestrator = build_orchestrator(reflection=reflection, use_cache=True)

        await orchestrator.orchestrate("show me computer science programs")
        similar = await orchestrator.orchestrate("please show me computer science programs")

        self.assertTrue(similar["cached"])
        self.assertEqual(reflection.calls, 1)

    async def test_profile_changes_the_cache_entry(self):
        reflection = AcceptingReflection()
        orchestrator = build_orchestrator(reflection=reflection, use_cache=True)

        await orchestrator.orchestrate("show me computer science programs")
        profiled = await orchestrator.orchestrate(
            "show me computer science programs", profile={"interests": ["robotics"]}
        )

        self.assertFalse(profiled["cached"])
        self.assertEqual(reflection.calls, 2)

    async def test_personalized_answer_is_not_shared_with_anonymous_user(self):
        orchestrator = build_orchestrator(use_cache=True)

        await orchestrator.orchestrate(
            "yes",
            profile={"interests": ["nursing"]},
            history=[{"role": "assistant", "content": "Are you interested in nursing programs?"}],
        )
        anonymous = await orchestrator.orchestrate("yes")

        self.assertFalse(anonymous["cached"])

    async def test_similar_query_skips_profiled_entries(self):
        reflection = AcceptingReflection()
        orchestrator = build_orchestrator(reflection=reflection, use_cache=True)

        await orchestrator.orchestrate("show me computer science programs", profile={"interests": ["robotics"]})
        similar = await orchestrator.orchestrate("please show me computer science programs")

        self.assertFalse(similar["cached"])
        self.assertEqual(reflection.calls, 2)

    def test_recent_context_window(self):
        history = [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "x" * 150},
            {"role": "user", "content": "third"},
        ]

        self.assertEqual(recent_context(history), "x" * 100 + " | third")

if __name__ == "__main__":
    unittest.main()
