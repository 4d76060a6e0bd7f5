"""
Tests for the tool execution component.
"""
import unittest
import sys
import os
import logging
from unittest.mock import AsyncMock

# Add parent directory to path to allow imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data.repository import PathwayRepository
from models.parameters import (
    ExpandCipCall,
    GetCareersCall,
    GetCipCategoryCall,
    GetCollegeByCipCall,
    GetHsCoursesCall,
    SearchHsProgramsCall,
    TracePathwayCall,
)
from models.pathway import CollectedData
from models.state import create_initial_state
from pipeline.telemetry import add_telemetry
from pipeline.tool_execution import execute_tool_call, execute_tools
from services.pathway_service import PipelineServices

# Disable logging during tests
logging.disable(logging.CRITICAL)

class TestExecuteToolCall(unittest.IsolatedAsyncioTestCase):
    """Tests for single tool calls against the sample data."""

    def setUp(self):
        self.repository = PathwayRepository()
        self.collected = CollectedData()

    async def test_get_college_by_cip_expands_families(self):
        count = await execute_tool_call(GetCollegeByCipCall(args=["51"]), self.repository, self.collected)

        self.assertEqual(count, 3)
        self.assertEqual(self.collected.college_cip_codes, ["51.0801", "51.3801", "51.3901"])
        self.assertIn("Hawaii CC", self.collected.campuses)

    async def test_get_careers_all_uses_collected_codes(self):
        await execute_tool_call(GetCollegeByCipCall(args=["51.3801"]), self.repository, self.collected)

        count = await execute_tool_call(GetCareersCall(args=["all"]), self.repository, self.collected)

        self.assertEqual(count, 1)
        self.assertEqual(self.collected.careers[0].soc_codes, ["29-1141", "29-1171"])

    async def test_search_hs_programs(self):
        count = await execute_tool_call(SearchHsProgramsCall(args=["culinary"]), self.repository, self.collected)

        self.assertEqual(count, 1)
        self.assertEqual(self.collected.school_programs[0].name, "Culinary Arts")
        self.assertIn("Kaimuki High", self.collected.institutions)

    async def test_expand_cip_records_taxonomy(self):
        await execute_tool_call(ExpandCipCall(args=["14"]), self.repository, self.collected)

        self.assertEqual(self.collected.taxonomy_mappings[0].category_name, "Engineering")

    async def test_trace_pathway_merges(self):
        count = await execute_tool_call(TracePathwayCall(args=["nursing"]), self.repository, self.collected)

        self.assertGreater(count, 0)
        self.assertEqual(self.collected.college_cip_codes, ["51.3801", "51.3901"])

    async def test_get_hs_courses_keeps_courses(self):
        count = await execute_tool_call(GetHsCoursesCall(args="culinary arts"), self.repository, self.collected)

        self.assertEqual(count, 8)
        detail = self.collected.course_details["Culinary Arts"]
        self.assertEqual(detail.courses_by_grade["9TH_GRADE_COURSES"], ["Foods and Nutrition"])
        self.assertEqual(detail.courses_by_level["LEVEL_1_POS_COURSES"], ["Culinary Core"])

    async def test_get_hs_courses_unknown_program(self):
        count = await execute_tool_call(GetHsCoursesCall(args="Underwater Basket Weaving"), self.repository, self.collected)

        self.assertEqual(count, 0)
        self.assertEqual(self.collected.course_details, {})

    async def test_get_cip_category_records_names_only(self):
        count = await execute_tool_call(GetCipCategoryCall(args=["14", "51", "99"]), self.repository, self.collected)

        self.assertEqual(count, 2)
        self.assertEqual(
            [(m.cip_2digit, m.category_name) for m in self.collected.taxonomy_mappings],
            [("14", "Engineering"), ("51", "Health Professions and Related Programs")]
        )
        self.assertTrue(all(m.cip_codes == [] for m in self.collected.taxonomy_mappings))

class TestExecuteToolsNode(unittest.IsolatedAsyncioTestCase):
    """Tests for the execution node."""

    def setUp(self):
        self.repository = PathwayRepository()
        self.services = PipelineServices(
            repository=self.repository, classifier=None, planner=None, verifier=None,
            reflection=None, formatter=None, aggregator=None
        )

    def _state(self, calls, profile=None):
        return {
            **create_initial_state("nursing", profile),
            "tool_calls": [call.model_dump() for call in calls],
        }

    async def test_failing_call_is_recorded_and_others_run(self):
        self.repository.school.search_programs = AsyncMock(side_effect=RuntimeError("disk on fire"))
        state = self._state([SearchHsProgramsCall(args=["nursing"]), GetCollegeByCipCall(args=["51.3801"])])

        result = await execute_tools(state, self.services)

        self.assertEqual(len(result["errors"]), 1)
        self.assertIn("search_hs_programs", result["errors"][0])
        self.assertIn("nursing", result["errors"][0])
        self.assertEqual([r["status"] for r in result["tool_results"]], ["error", "ok"])
        self.assertEqual(len(result["collected_data"]["college_programs"]), 1)
        self.assertEqual(result["tools_used"], ["search_hs_programs", "get_college_by_cip"])

    async def test_school_tier_dropped_for_college_profile(self):
        state = self._state([TracePathwayCall(args=["nursing"])], {"education_level": "college"})

        result = await execute_tools(state, self.services)

        self.assertEqual(result["collected_data"]["school_programs"], [])
        self.assertEqual(result["collected_data"]["institutions"], [])
        self.assertTrue(result["collected_data"]["college_programs"])

    async def test_each_attempt_starts_fresh(self):
        state = {
            **self._state([GetCollegeByCipCall(args=["52.0201"])]),
            "collected_data": {"college_programs": [{"cip_code": "51.3801", "program_names": ["Nursing"]}]},
        }

        result = await execute_tools(state, self.services)

        self.assertEqual(
            [p["cip_code"] for p in result["collected_data"]["college_programs"]],
            ["52.0201"]
        )

    async def test_tool_call_count_includes_repeats_and_earlier_attempts(self):
        state = self._state([
            GetCollegeByCipCall(args=["51.3801"]),
            GetCollegeByCipCall(args=["52.0201"]),
            GetCareersCall(args=["all"]),
        ])
        state["metadata"] = {**state.get("metadata", {}), "tool_call_count": 2}

        result = await execute_tools(state, self.services)

        self.assertEqual(result["metadata"]["tool_call_count"], 5)
        self.assertEqual(result["tools_used"], ["get_college_by_cip", "get_careers"])

    async def test_telemetry_reports_executed_calls(self):
        state = self._state([GetCollegeByCipCall(args=["51.3801"]), GetCollegeByCipCall(args=["52.0201"])])

        result = await add_telemetry(await execute_tools(state, self.services))

        self.assertEqual(result["metadata"]["tool_call_count"], 2)

if __name__ == "__main__":
    unittest.main()
