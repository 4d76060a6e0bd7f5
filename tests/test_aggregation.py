"""
Tests for program name normalization and aggregation.
"""
import unittest
import sys
import os
import logging
from unittest.mock import AsyncMock, MagicMock

# Add parent directory to path to allow imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.pathway import CareerResult, CollectedData, CollegeProgramResult, CourseDetail, SchoolProgramResult
from services.aggregation_service import (
    ProgramAggregator,
    find_representative_name,
    format_college_programs_for_display,
    normalize_program_name,
)

# Disable logging during tests
logging.disable(logging.CRITICAL)

def _college(cip_code, names, campuses):
    return CollegeProgramResult(cip_code=cip_code, program_names=names, campuses=campuses)

class TestNormalizeProgramName(unittest.TestCase):

    def test_strips_parenthetical(self):
        self.assertEqual(normalize_program_name("Computer Science (Bachelor of Science)"), "Computer Science")

    def test_glued_ampersand(self):
        self.assertEqual(
            normalize_program_name("Information&Computer Sciences (Associate in Science)"),
            "Information and Computer Sciences"
        )

    def test_collapses_whitespace(self):
        self.assertEqual(normalize_program_name("Culinary   Arts  & Pastry"), "Culinary Arts and Pastry")

    def test_falls_back_to_full_name(self):
        self.assertEqual(normalize_program_name("(Certificate)"), "(Certificate)")

class TestFindRepresentativeName(unittest.TestCase):
    """Tests for representative name priority."""

    def test_clean_bachelor_beats_specialization(self):
        self.assertEqual(
            find_representative_name(["Biology (Bachelor of Science - Marine)", "Biology (Bachelor of Science)"]),
            "Biology (Bachelor of Science)"
        )

    def test_clean_bachelor_first_in_list(self):
        self.assertEqual(
            find_representative_name(["Biology (Bachelor of Science)", "Biology (Bachelor of Science - Marine)"]),
            "Biology (Bachelor of Science)"
        )

    def test_specialized_bachelor_beats_associate(self):
        self.assertEqual(
            find_representative_name(["Music (Associate in Arts)", "Music (Bachelor of Arts - Composition)"]),
            "Music (Bachelor of Arts - Composition)"
        )

    def test_most_frequent_base_wins_without_bachelor(self):
        variants = ["X (Certificate)", "X and Y (Associate in Science)", "X and Y (Associate in Science)"]

        self.assertEqual(normalize_program_name(find_representative_name(variants)), "X and Y")

    def test_frequency_fallback_prefers_non_certificate(self):
        variants = ["Welding (Certificate of Competence)", "Welding (Diploma)", "Pipefitting (Diploma)"]

        self.assertEqual(find_representative_name(variants), "Welding (Diploma)")

    def test_frequency_tie_prefers_longer_base(self):
        variants = ["Art (Diploma)", "Art History (Diploma)"]

        self.assertEqual(find_representative_name(variants), "Art History (Diploma)")

    def test_single_and_empty(self):
        self.assertEqual(find_representative_name(["Only (Diploma)"]), "Only (Diploma)")
        self.assertEqual(find_representative_name([]), "")

class TestCollegeAggregation(unittest.TestCase):

    def setUp(self):
        self.aggregator = ProgramAggregator(campuses_with_data=["UH Manoa", "UH Hilo", "Leeward CC"])

    def test_one_program_per_code(self):
        rows = [
            _college("26.0101", ["Biology (Bachelor of Arts)"], ["UH Hilo"]),
            _college("26.0101", ["Biology (Bachelor of Science)", "Biology (Bachelor of Arts)"], ["UH Manoa"]),
            _college("11.0701", ["Computer Science (Bachelor of Science)"], ["UH Manoa"]),
        ]

        programs = self.aggregator.aggregate_college_programs(rows)

        self.assertEqual([p.cip_code for p in programs], ["26.0101", "11.0701"])
        biology = programs[0]
        self.assertEqual(biology.campuses, ["UH Hilo", "UH Manoa"])
        self.assertEqual(biology.variant_count, 2)
        self.assertEqual(biology.family_name, "Biology")
        self.assertEqual(biology.representative_name, "Biology (Bachelor of Arts)")

    def test_sorted_by_family_name(self):
        rows = [
            _college("52.0301", ["Accounting (Associate in Science)"], ["Leeward CC"]),
            _college("11.0701", ["Computer Science (Bachelor of Science)"], ["UH Manoa"]),
            _college("13.1202", ["Elementary Education (Bachelor of Education)"], ["UH Hilo"]),
        ]

        programs = self.aggregator.aggregate_college_programs(rows)

        self.assertEqual([p.family_name for p in programs], ["Accounting", "Computer Science", "Elementary Education"])

    def test_campus_allow_list(self):
        rows = [
            _college("01.0000", ["Agriculture (Associate in Science)"], ["Windward CC", "UH Hilo"]),
            _college("11.0201", ["Computer Programming (Associate in Applied Science)"], ["Windward CC"]),
        ]

        programs = self.aggregator.aggregate_college_programs(rows)

        self.assertEqual([p.cip_code for p in programs], ["01.0000"])
        self.assertEqual(programs[0].campuses, ["UH Hilo"])

    def test_no_allow_list_keeps_every_campus(self):
        rows = [_college("11.0201", ["Computer Programming (Associate in Applied Science)"], ["Windward CC"])]

        programs = ProgramAggregator(campuses_with_data=None).aggregate_college_programs(rows)

        self.assertEqual(programs[0].campuses, ["Windward CC"])

    def test_display_variants(self):
        rows = [_college("11.0701", [
            "Computer Science (Associate in Science)",
            "Computer Science (Bachelor of Science - Data Science)",
            "Computer Science (Bachelor of Arts)",
            "Computer Science (Bachelor of Science)",
        ], ["UH Manoa"])]

        display = format_college_programs_for_display(self.aggregator.aggregate_college_programs(rows))

        self.assertEqual(display[0]["variants"], [
            "Computer Science (Bachelor of Science)",
            "Computer Science (Bachelor of Arts)",
            "Computer Science (Associate in Science)",
            "Computer Science (Bachelor of Science - Data Science)",
        ])

class TestCareerConsolidation(unittest.TestCase):

    def setUp(self):
        self.aggregator = ProgramAggregator(career_limit=10)

    def test_only_matching_codes_kept(self):
        careers = [
            CareerResult(cip_code="51.3801", soc_codes=["29-1141"]),
            CareerResult(cip_code="11.0701", soc_codes=["15-1252"]),
        ]

        consolidated = self.aggregator.consolidate_careers(careers, ["51.3801"])

        self.assertEqual([c.code for c in consolidated], ["29-1141"])

    def test_fallback_when_nothing_matches(self):
        careers = [CareerResult(cip_code=f"99.{i:04d}", soc_codes=[f"11-{i:04d}", "11-0000"]) for i in range(15)]

        consolidated = self.aggregator.consolidate_careers(careers, ["51.3801"])

        self.assertTrue(consolidated)
        self.assertEqual(len(consolidated), 10)
        self.assertEqual(len({c.code for c in consolidated}), 10)

    def test_no_careers(self):
        self.assertEqual(self.aggregator.consolidate_careers([], ["51.3801"]), [])

class TestAggregate(unittest.IsolatedAsyncioTestCase):

    def _data(self):
        return CollectedData(
            school_programs=[
                SchoolProgramResult(name="Nursing Services", schools=["Farrington High"]),
                SchoolProgramResult(name="Nursing Services", schools=["Kaimuki High", "Farrington High"]),
            ],
            college_programs=[
                _college("51.3801", ["Nursing (Bachelor of Science)", "Nursing (Associate in Science)"], ["UH Manoa"]),
                _college("51.3801", ["Registered Nursing (Associate in Science)"], ["UH Hilo"]),
            ],
            careers=[CareerResult(cip_code="51.3801", soc_codes=["29-1141", "29-1171"])],
        )

    async def test_aggregation_is_idempotent(self):
        aggregator = ProgramAggregator(campuses_with_data=None)
        data = self._data()

        first = await aggregator.aggregate(data)
        second = await aggregator.aggregate(data)

        self.assertEqual(first, second)

    async def test_school_programs_merged_with_details(self):
        school_tool = MagicMock()
        school_tool.get_courses_by_grade = AsyncMock(return_value={"9TH_GRADE_COURSES": ["Biology"]})
        school_tool.get_courses_by_level = AsyncMock(side_effect=RuntimeError("missing"))
        aggregator = ProgramAggregator(school_tool=school_tool, campuses_with_data=None)

        aggregated = await aggregator.aggregate(self._data())

        self.assertEqual(len(aggregated.school_programs), 1)
        self.assertEqual(aggregated.school_programs[0].schools, ["Farrington High", "Kaimuki High"])
        self.assertIsNone(aggregated.school_programs[0].details)
        self.assertEqual(aggregated.college_programs[0].representative_name, "Nursing (Bachelor of Science)")
        self.assertEqual(aggregated.college_programs[0].campus_count, 2)
        self.assertEqual([c.code for c in aggregated.careers], ["29-1141", "29-1171"])

    async def test_known_course_details_are_not_fetched_again(self):
        school_tool = MagicMock()
        school_tool.get_courses_by_grade = AsyncMock(return_value={})
        school_tool.get_courses_by_level = AsyncMock(return_value={})
        aggregator = ProgramAggregator(school_tool=school_tool, campuses_with_data=None)
        data = self._data()
        data.course_details["Nursing Services"] = CourseDetail(
            courses_by_grade={"10TH_GRADE_COURSES": ["Health Science I"]}
        )

        aggregated = await aggregator.aggregate(data)

        details = aggregated.school_programs[0].details
        self.assertEqual(details.courses_by_grade, {"10TH_GRADE_COURSES": ["Health Science I"]})
        school_tool.get_courses_by_grade.assert_not_awaited()
        school_tool.get_courses_by_level.assert_not_awaited()

if __name__ == "__main__":
    unittest.main()
