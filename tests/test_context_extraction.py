"""
Tests for keyword extraction and the context extraction component.
"""
import unittest
import sys
import os
import logging

# Add parent directory to path to allow imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.parameters import SearchStrategy, UserProfile
from models.state import create_initial_state
from pipeline.context_extraction import apply_strategy, broaden_keywords, extract_context, extract_search_context
from services.career_mapping_service import CareerMappingService
from services.pathway_service import PipelineServices
from utils.keywords import extract_keywords, is_affirmative, is_pure_affirmative, is_topic_pivot

# Disable logging during tests
logging.disable(logging.CRITICAL)

NURSING_HISTORY = [
    {"role": "user", "content": "I'm interested in nursing"},
    {"role": "assistant", "content": "Are you interested in nursing programs?"},
]

class TestKeywords(unittest.TestCase):
    """Tests for keyword helpers."""

    def test_extract_keywords_drops_stop_words(self):
        self.assertEqual(extract_keywords("show me computer science programs"), ["computer", "science"])

    def test_extract_keywords_drops_short_and_numeric_tokens(self):
        self.assertEqual(extract_keywords("AI in 2024 for nursing"), ["nursing"])

    def test_topic_pivot(self):
        self.assertTrue(is_topic_pivot("What about engineering instead?"))
        self.assertTrue(is_topic_pivot("actually, culinary"))
        self.assertFalse(is_topic_pivot("nowhere to go"))
        self.assertFalse(is_topic_pivot("show me nursing"))

    def test_affirmative(self):
        self.assertTrue(is_affirmative("Yes please!"))
        self.assertFalse(is_affirmative("yesterday I saw nursing"))

    def test_pure_affirmative(self):
        self.assertTrue(is_pure_affirmative("Sounds good."))
        self.assertFalse(is_pure_affirmative("yes, show me nursing"))

class TestExtractSearchContext(unittest.TestCase):
    """Tests for keyword and code selection."""

    def setUp(self):
        self.career_mapper = CareerMappingService()

    def test_plain_query(self):
        keywords, codes, mode = extract_search_context(
            "show me computer science programs", [], UserProfile(), self.career_mapper
        )

        self.assertEqual(keywords, ["computer", "science"])
        self.assertEqual(codes, [])
        self.assertEqual(mode, "normal")

    def test_topic_pivot_ignores_history_and_profile(self):
        profile = UserProfile(interests=["nursing"], career_goals=["nurse"])

        keywords, codes, mode = extract_search_context(
            "what about engineering instead", NURSING_HISTORY, profile, self.career_mapper
        )

        self.assertEqual(mode, "pivot")
        self.assertEqual(keywords, ["engineering"])
        self.assertNotIn("nursing", keywords)
        self.assertEqual(codes, [])

    def test_affirmative_uses_last_assistant_turn(self):
        profile = UserProfile(interests=["engineering"])

        keywords, _, mode = extract_search_context("yes", NURSING_HISTORY, profile, self.career_mapper)

        self.assertEqual(mode, "affirmative")
        self.assertIn("nursing", keywords)
        self.assertNotIn("engineering", keywords)

    def test_affirmative_backfills_related_interests(self):
        history = [{"role": "assistant", "content": "Want to see culinary options?"}]
        profile = UserProfile(interests=["culinary arts", "music"])

        keywords, _, _ = extract_search_context("sure", history, profile, self.career_mapper)

        self.assertEqual(keywords, ["culinary", "culinary arts"])

    def test_affirmative_without_history_is_normal(self):
        keywords, _, mode = extract_search_context("yes nursing", [], UserProfile(), self.career_mapper)

        self.assertEqual(mode, "normal")
        self.assertEqual(keywords, ["nursing"])

    def test_career_goals_add_codes_and_keywords(self):
        profile = UserProfile(career_goals=["Registered Nurse"])

        keywords, codes, _ = extract_search_context("what should I study", [], profile, self.career_mapper)

        self.assertEqual(codes, ["51.3801", "51.3901"])
        self.assertIn("nursing", keywords)

class TestApplyStrategy(unittest.TestCase):

    def test_no_strategy_caps_keywords(self):
        keywords = ["one", "two", "three", "four", "five", "six"]

        self.assertEqual(apply_strategy(keywords, None, limit=5), keywords[:5])

    def test_additional_keywords_are_merged(self):
        strategy = SearchStrategy(additional_keywords=["technology", "computer"])

        self.assertEqual(apply_strategy(["computer"], strategy), ["computer", "technology"])

    def test_broaden_keeps_shortest(self):
        self.assertEqual(broaden_keywords(["engineering", "tech", "mechanical", "civil"]), ["tech", "mechanical", "civil"])

class TestExtractContextNode(unittest.IsolatedAsyncioTestCase):

    async def test_node_returns_new_state(self):
        services = PipelineServices(
            repository=None, classifier=None, planner=None, verifier=None,
            reflection=None, formatter=None, aggregator=None
        )
        state = create_initial_state("show me computer science programs")

        result = await extract_context(state, services)

        self.assertEqual(result["keywords"], ["computer", "science"])
        self.assertEqual(result["metadata"]["extraction_mode"], "normal")
        self.assertEqual(state["keywords"], [])

if __name__ == "__main__":
    unittest.main()
