"""
Aggregation of verified pathway data into canonical programs and careers.

College rows are grouped by CIP code with one representative name per code,
school rows are grouped by program name, and careers are consolidated
against the aggregated college codes.
"""
import asyncio
import logging
import re
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

from models.pathway import (
    AggregatedCareer,
    AggregatedCollegeProgram,
    AggregatedData,
    AggregatedSchoolProgram,
    CareerResult,
    CollectedData,
    CollegeProgramResult,
    CourseDetail,
    SchoolProgramResult,
)

logger = logging.getLogger(__name__)

DEFAULT_CAREER_LIMIT = 10

_GLUED_AMPERSAND = re.compile(r"(\w)&(\w)")
_PARENTHETICAL = re.compile(r"\s*\([^)]*\)")
_AMPERSAND = re.compile(r"\s*&\s*")
_WHITESPACE = re.compile(r"\s+")

_CLEAN_BACHELOR = re.compile(r"\(Bachelor of (Science|Arts)\)$", re.IGNORECASE)
_BACHELOR_WITH_SPECIALIZATION = re.compile(r"Bachelor of (Science|Arts)\s*-", re.IGNORECASE)
_ASSOCIATE = re.compile(r"Associate (in|of) (Science|Arts|Applied Science)(?!\s*-)", re.IGNORECASE)
_CERTIFICATE = re.compile(r"Certificate", re.IGNORECASE)

# Display order of name variants, first match wins
DISPLAY_PRIORITY = [
    re.compile(r"\(Bachelor of Science\)$", re.IGNORECASE),
    re.compile(r"\(Bachelor of Arts\)$", re.IGNORECASE),
    re.compile(r"\(Associate in Science\)$", re.IGNORECASE),
    re.compile(r"Bachelor of Science - ", re.IGNORECASE),
    re.compile(r"Bachelor of Arts - ", re.IGNORECASE),
    re.compile(r"Associate", re.IGNORECASE),
    re.compile(r"Certificate of Achievement", re.IGNORECASE),
    re.compile(r"Master", re.IGNORECASE),
    re.compile(r"Doctor", re.IGNORECASE),
]

def normalize_program_name(name: str) -> str:
    """
    Reduce a program name to its base name.

    "Information&Computer Sciences (Associate in Science)" becomes
    "Information and Computer Sciences".

    Args:
        name: Full program name

    Returns:
        The base name, or the full name when nothing is left
    """
    cleaned = _GLUED_AMPERSAND.sub(r"\1 & \2", name)
    base = _PARENTHETICAL.sub("", cleaned).strip()
    with_and = _AMPERSAND.sub(" and ", base)
    normalized = _WHITESPACE.sub(" ", with_and).strip()
    return normalized or name

def find_representative_name(variants: Sequence[str]) -> str:
    """
    Choose the display name for a set of name variants of one CIP code.

    Priority: clean bachelor's name, bachelor's with specialization, associate
    without specialization, then the most frequent base name (ties go to the
    longer base) and among its variants non-certificates, then the shortest.

    Args:
        variants: Name variants in first-seen order

    Returns:
        The representative name, "" when there are no variants
    """
    if not variants:
        return ""
    if len(variants) == 1:
        return variants[0]

    for pattern in (_CLEAN_BACHELOR, _BACHELOR_WITH_SPECIALIZATION, _ASSOCIATE):
        match = next((name for name in variants if pattern.search(name)), None)
        if match:
            return match

    base_names = [normalize_program_name(name) for name in variants]
    counts = Counter(base_names)
    most_common = base_names[0]
    max_count = 0
    for base, count in counts.items():
        if count > max_count or (count == max_count and len(base) > len(most_common)):
            most_common, max_count = base, count

    matching = [name for name, base in zip(variants, base_names) if base == most_common]
    preferred = [name for name in matching if not _CERTIFICATE.search(name)] or matching
    return min(preferred, key=len)

def _display_rank(name: str) -> int:
    for index, pattern in enumerate(DISPLAY_PRIORITY):
        if pattern.search(name):
            return index
    return len(DISPLAY_PRIORITY)

def format_college_programs_for_display(programs: Sequence[AggregatedCollegeProgram]) -> List[Dict[str, Any]]:
    """
    Shape aggregated college programs for display.

    Variants are ordered by degree type (clean BS, clean BA, clean AS,
    specialized bachelor's, associate, certificates, graduate) and only
    included when a program has more than one.
    """
    formatted = []
    for program in programs:
        variants = sorted(program.name_variants, key=_display_rank)
        formatted.append({
            "name": program.family_name,
            "cip_code": program.cip_code,
            "campuses": program.campuses,
            "campus_count": program.campus_count,
            "variants": variants if program.variant_count > 1 else None,
            "variant_count": program.variant_count,
        })
    return formatted

class ProgramAggregator:
    """Consolidates the verified data of the accepted attempt."""

    def __init__(self,
                 school_tool=None,
                 campuses_with_data: Optional[List[str]] = None,
                 career_limit: int = DEFAULT_CAREER_LIMIT):
        """
        Initialize the aggregator.

        Args:
            school_tool: SchoolDataTool used for course details, None skips details
            campuses_with_data: Allow-list of campuses, None disables filtering
            career_limit: Maximum number of consolidated careers
        """
        self.school_tool = school_tool
        self.campuses_with_data = set(campuses_with_data) if campuses_with_data is not None else None
        self.career_limit = career_limit

    def aggregate_college_programs(self, programs: Sequence[CollegeProgramResult]) -> List[AggregatedCollegeProgram]:
        """
        Group college rows by CIP code.

        Args:
            programs: Verified college rows

        Returns:
            One program per code, sorted by family name
        """
        groups: Dict[str, Dict[str, Any]] = {}

        for program in programs:
            group = groups.get(program.cip_code)
            if group is None:
                representative = find_representative_name(program.program_names)
                groups[program.cip_code] = {
                    "representative": representative,
                    "family": normalize_program_name(representative) if representative else program.cip_code,
                    "variants": set(program.program_names),
                    "campuses": set(program.campuses),
                }
                logger.debug(f"New CIP {program.cip_code}: '{representative}'")
            else:
                group["variants"].update(program.program_names)
                group["campuses"].update(program.campuses)

        results = []
        for cip_code, group in groups.items():
            campuses = group["campuses"]
            if self.campuses_with_data is not None:
                campuses = campuses & self.campuses_with_data
                if not campuses:
                    logger.debug(f"Dropping CIP {cip_code}: no campus with course data")
                    continue
            results.append(AggregatedCollegeProgram(
                cip_code=cip_code,
                family_name=group["family"],
                representative_name=group["representative"],
                name_variants=sorted(group["variants"]),
                campuses=sorted(campuses),
                campus_count=len(campuses),
                variant_count=len(group["variants"]),
            ))

        results.sort(key=lambda p: p.family_name.lower())
        logger.info(f"Aggregated {len(programs)} college rows into {len(results)} programs")
        return results

    async def _fetch_details(self, name: str) -> Optional[CourseDetail]:
        if self.school_tool is None:
            return None
        try:
            by_grade, by_level = await asyncio.gather(
                self.school_tool.get_courses_by_grade(name),
                self.school_tool.get_courses_by_level(name),
            )
        except Exception as e:
            logger.warning(f"Error fetching course details for {name}: {str(e)}")
            return None
        return CourseDetail(courses_by_grade=by_grade or {}, courses_by_level=by_level or {})

    async def aggregate_school_programs(self,
                                        programs: Sequence[SchoolProgramResult],
                                        known_details: Optional[Dict[str, CourseDetail]] = None) -> List[AggregatedSchoolProgram]:
        """
        Group school rows by exact name and attach course details.

        Args:
            programs: Verified school rows
            known_details: Course details already fetched during the attempt

        Returns:
            One program per name, sorted by name
        """
        known_details = known_details or {}
        merged: Dict[str, List[str]] = {}
        for program in programs:
            schools = merged.setdefault(program.name, [])
            schools.extend(school for school in program.schools if school not in schools)

        names = list(merged)
        fetched = await asyncio.gather(*[
            self._fetch_details(name) for name in names if name not in known_details
        ])
        missing = iter(fetched)
        details = [known_details[name] if name in known_details else next(missing) for name in names]

        results = [
            AggregatedSchoolProgram(
                name=name,
                schools=merged[name],
                school_count=len(merged[name]),
                details=detail,
            )
            for name, detail in zip(names, details)
        ]
        results.sort(key=lambda p: p.name.lower())
        return results

    def consolidate_careers(self,
                            careers: Sequence[CareerResult],
                            college_codes: Sequence[str]) -> List[AggregatedCareer]:
        """
        Keep the occupations linked to the aggregated college programs.

        Falls back to the first raw occupations when nothing matches.

        Args:
            careers: Verified career mappings
            college_codes: CIP codes of the aggregated college programs

        Returns:
            At most career_limit careers in first-seen order
        """
        codes = set(college_codes)
        soc_codes: List[str] = []
        for career in careers:
            if career.cip_code in codes:
                soc_codes.extend(code for code in career.soc_codes if code not in soc_codes)

        if not soc_codes and careers:
            logger.info("No CIP-matched careers, using raw careers as fallback")
            for career in careers[:self.career_limit]:
                soc_codes.extend(code for code in career.soc_codes if code not in soc_codes)

        return [AggregatedCareer(code=code, title=code) for code in soc_codes[:self.career_limit]]

    async def aggregate(self, data: CollectedData) -> AggregatedData:
        """
        Aggregate one attempt's verified data.

        Args:
            data: Verified CollectedData

        Returns:
            AggregatedData
        """
        school_programs = await self.aggregate_school_programs(data.school_programs, data.course_details)
        college_programs = self.aggregate_college_programs(data.college_programs)
        careers = self.consolidate_careers(data.careers, [p.cip_code for p in college_programs])

        schools: List[str] = []
        for program in school_programs:
            schools.extend(school for school in program.schools if school not in schools)
        campuses: List[str] = []
        for program in college_programs:
            campuses.extend(campus for campus in program.campuses if campus not in campuses)

        return AggregatedData(
            school_programs=school_programs,
            college_programs=college_programs,
            careers=careers,
            schools=schools,
            campuses=campuses,
        )
