"""
Read-only pathway data access over the JSONL datasets.
"""
import asyncio
import json
import logging
import os
import re
from typing import Any, Dict, List, Optional, Tuple

from config import DATA_CONFIG
from models.pathway import (
    GRADE_COURSE_KEYS,
    LEVEL_COURSE_KEYS,
    CampusMapping,
    CareerMapping,
    CareerResult,
    CipMapping,
    CollectedData,
    CollegeProgram,
    CollegeProgramResult,
    SchoolMapping,
    SchoolProgram,
    SchoolProgramResult,
    TaxonomyMapping,
)

logger = logging.getLogger(__name__)

SCHOOL_PROGRAMS_FILE = "highschool_pos_to_cip2digit_mapping.jsonl"
SCHOOL_MAPPING_FILE = "pos_to_highschool_mapping.jsonl"
COURSES_BY_GRADE_FILE = "pos_to_courses_by_grade.jsonl"
COURSES_BY_LEVEL_FILE = "pos_to_courses_by_level.jsonl"
COLLEGE_PROGRAMS_FILE = "cip_to_program_mapping.jsonl"
CAMPUS_MAPPING_FILE = "cip_to_campus_mapping.jsonl"
CIP_MAPPING_FILE = "cip2digit_to_cip_mapping.jsonl"
CAREER_MAPPING_FILE = "cip_to_soc_mapping.jsonl"

# Result caps for a keyword trace
TRACE_SCHOOL_LIMIT = 10
TRACE_COLLEGE_LIMIT = 30
TRACE_CAREER_LIMIT = 30

# Name-match scores
PHRASE_MATCH_SCORE = 50
PHRASE_FILTER_SCORE = 40

_WORD_SPLIT = re.compile(r"[\s\-_(),&]+")


class JsonlReader:
    """Loads JSONL files once and keeps their rows and parsed models in memory."""

    def __init__(self, data_dir: Optional[str] = None):
        """
        Initialize the reader.

        Args:
            data_dir: Directory holding the JSONL files
        """
        self.data_dir = data_dir or DATA_CONFIG["jsonl_dir"]
        self._cache: Dict[str, List[Dict[str, Any]]] = {}
        self._models: Dict[Tuple[str, type], List[Any]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    @classmethod
    def from_rows(cls, rows_by_file: Dict[str, List[Dict[str, Any]]]) -> "JsonlReader":
        """Build a reader preloaded with rows instead of files."""
        reader = cls(data_dir=os.devnull)
        reader._cache = {filename: list(rows) for filename, rows in rows_by_file.items()}
        return reader

    def read_file(self, filename: str) -> List[Dict[str, Any]]:
        """
        Read all rows of one JSONL file.

        Blocking; async callers go through rows() or load(). Missing files
        yield no rows and unparseable lines are skipped.

        Args:
            filename: File name inside the data directory

        Returns:
            List of row dicts
        """
        if filename in self._cache:
            return self._cache[filename]

        path = os.path.join(self.data_dir, filename)
        if not os.path.exists(path):
            logger.warning(f"Data file not found: {path}")
            return []

        rows = []
        with open(path, "r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    rows.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.debug(f"Skipping malformed line {line_number} in {filename}")

        logger.info(f"Loaded {len(rows)} rows from {filename}")
        self._cache[filename] = rows
        return rows

    async def rows(self, filename: str) -> List[Dict[str, Any]]:
        """Rows of one file; the first read runs in a worker thread."""
        if filename in self._cache:
            return self._cache[filename]
        async with self._locks.setdefault(filename, asyncio.Lock()):
            if filename in self._cache:
                return self._cache[filename]
            return await asyncio.to_thread(self.read_file, filename)

    async def load(self, filename: str, model) -> List[Any]:
        """
        Rows of one file validated as ``model``.

        Each file is parsed once per model; later calls return the same list.

        Args:
            filename: File name inside the data directory
            model: Pydantic row model

        Returns:
            Parsed rows, invalid ones skipped
        """
        key = (filename, model)
        if key not in self._models:
            parsed = _parse_rows(await self.rows(filename), model)
            if filename not in self._cache:
                return parsed
            self._models[key] = parsed
        return self._models[key]

    def get_cache_stats(self) -> Dict[str, int]:
        return {
            "files": len(self._cache),
            "total_items": sum(len(rows) for rows in self._cache.values()),
            "parsed_models": len(self._models),
        }


def _parse_rows(rows: List[Dict[str, Any]], model):
    parsed = []
    for row in rows:
        try:
            parsed.append(model.model_validate(row))
        except ValueError as e:
            logger.debug(f"Skipping invalid {model.__name__} row: {str(e)}")
    return parsed


def score_program_names(names: List[str], keywords: List[str]) -> int:
    """
    Score how well program names match a keyword list.

    The joined keyword phrase scores 50 per name containing it; each keyword
    then scores 10 for an exact name, 3 when contained, 2 for a whole word
    and 1 for a word prefix.

    Args:
        names: Name variants of one program
        keywords: Search keywords

    Returns:
        The total match score
    """
    keywords = [keyword.lower() for keyword in keywords if keyword]
    if not keywords:
        return 0

    phrase = " ".join(keywords)
    score = 0
    for name in names:
        name_lower = name.lower()
        if phrase in name_lower:
            score += PHRASE_MATCH_SCORE

        words = [word for word in _WORD_SPLIT.split(name_lower) if word]
        for keyword in keywords:
            if name_lower == keyword:
                score += 10
            elif keyword in name_lower:
                score += 3
            elif keyword in words:
                score += 2
            elif any(word.startswith(keyword) for word in words):
                score += 1
    return score


def rank_by_score(items: List[Tuple[Any, int]]) -> List[Tuple[Any, int]]:
    """Sort scored items by descending score, keeping file order for ties."""
    return sorted(items, key=lambda item: item[1], reverse=True)


class SchoolDataTool:
    """High school programs, the schools offering them and their courses."""

    def __init__(self, reader: JsonlReader):
        self.reader = reader
        self._schools: Optional[Dict[str, List[str]]] = None

    async def get_all_programs(self) -> List[SchoolProgram]:
        return await self.reader.load(SCHOOL_PROGRAMS_FILE, SchoolProgram)

    async def get_programs_by_cip_2digit(self, cip_2digits: List[str]) -> List[SchoolProgram]:
        wanted = set(cip_2digits)
        programs = await self.get_all_programs()
        return [program for program in programs if wanted.intersection(program.cip_2digit)]

    async def get_program_by_name(self, name: str) -> Optional[SchoolProgram]:
        name_lower = name.lower().strip()
        for program in await self.get_all_programs():
            if program.program_of_study.lower() == name_lower:
                return program
        return None

    async def get_schools_for_program(self, name: str) -> List[str]:
        if self._schools is None:
            index: Dict[str, List[str]] = {}
            for mapping in await self.reader.load(SCHOOL_MAPPING_FILE, SchoolMapping):
                index.setdefault(mapping.program_of_study, mapping.high_school)
            self._schools = index
        return list(self._schools.get(name, []))

    async def _course_columns(self, filename: str, name: str, columns: List[str]) -> Dict[str, List[str]]:
        for row in await self.reader.rows(filename):
            if row.get("PROGRAM_OF_STUDY") == name:
                return {
                    column: [str(course) for course in row[column]]
                    for column in columns
                    if row.get(column)
                }
        return {}

    async def get_courses_by_grade(self, name: str) -> Dict[str, List[str]]:
        return await self._course_columns(COURSES_BY_GRADE_FILE, name, GRADE_COURSE_KEYS)

    async def get_courses_by_level(self, name: str) -> Dict[str, List[str]]:
        return await self._course_columns(COURSES_BY_LEVEL_FILE, name, LEVEL_COURSE_KEYS)

    async def search_programs(self, keywords: List[str]) -> List[Tuple[SchoolProgram, int]]:
        """
        Search programs of study by name.

        Returns:
            (program, score) pairs with a positive score, best first
        """
        scored = [
            (program, score_program_names([program.program_of_study], keywords))
            for program in await self.get_all_programs()
        ]
        return rank_by_score([item for item in scored if item[1] > 0])


class CollegeDataTool:
    """College programs keyed by CIP code and the campuses offering them."""

    def __init__(self, reader: JsonlReader):
        self.reader = reader
        self._campuses: Optional[Dict[str, List[str]]] = None

    async def get_all_programs(self) -> List[CollegeProgram]:
        return await self.reader.load(COLLEGE_PROGRAMS_FILE, CollegeProgram)

    async def get_programs_by_cip(self, cip_codes: List[str]) -> List[CollegeProgram]:
        wanted = set(cip_codes)
        return [program for program in await self.get_all_programs() if program.cip_code in wanted]

    async def get_campuses_by_cip(self, cip_code: str) -> List[str]:
        if self._campuses is None:
            index: Dict[str, List[str]] = {}
            for mapping in await self.reader.load(CAMPUS_MAPPING_FILE, CampusMapping):
                index.setdefault(mapping.cip_code, mapping.campus)
            self._campuses = index
        return list(self._campuses.get(cip_code, []))

    async def search_programs(self, keywords: List[str]) -> List[Tuple[CollegeProgram, int]]:
        """
        Search college programs across all name variants.

        Returns:
            (program, score) pairs with a positive score, best first
        """
        scored = [
            (program, score_program_names(program.names, keywords))
            for program in await self.get_all_programs()
        ]
        return rank_by_score([item for item in scored if item[1] > 0])


class CipMappingTool:
    """2-digit CIP families and their full codes."""

    def __init__(self, reader: JsonlReader):
        self.reader = reader

    async def get_mappings(self, cip_2digits: List[str]) -> List[CipMapping]:
        wanted = set(cip_2digits)
        mappings = await self.reader.load(CIP_MAPPING_FILE, CipMapping)
        return [mapping for mapping in mappings if mapping.cip_2digit in wanted]

    async def expand_cip_2digits(self, cip_2digits: List[str]) -> List[str]:
        codes = []
        for mapping in await self.get_mappings(cip_2digits):
            for code in mapping.cip_code:
                if code not in codes:
                    codes.append(code)
        return codes

    async def get_categories(self, cip_2digits: List[str]) -> Dict[str, str]:
        """Category name of each known 2-digit family, in file order."""
        categories: Dict[str, str] = {}
        for mapping in await self.get_mappings(cip_2digits):
            if mapping.category_name:
                categories.setdefault(mapping.cip_2digit, mapping.category_name)
        return categories


class CareerDataTool:
    """SOC occupation codes linked to CIP codes."""

    def __init__(self, reader: JsonlReader):
        self.reader = reader

    async def get_careers_by_cip(self, cip_codes: List[str]) -> List[CareerMapping]:
        wanted = set(cip_codes)
        mappings = await self.reader.load(CAREER_MAPPING_FILE, CareerMapping)
        return [mapping for mapping in mappings if mapping.cip_code in wanted]


class PathwayTracer:
    """Follows links between tiers: school programs, college programs and careers."""

    def __init__(self,
                 school: SchoolDataTool,
                 college: CollegeDataTool,
                 cip: CipMappingTool,
                 career: CareerDataTool):
        self.school = school
        self.college = college
        self.cip = cip
        self.career = career

    async def school_results(self, programs: List[SchoolProgram]) -> List[SchoolProgramResult]:
        schools = await asyncio.gather(*[
            self.school.get_schools_for_program(program.program_of_study) for program in programs
        ])
        return [
            SchoolProgramResult(name=program.program_of_study, cip_2digit=program.cip_2digit, schools=found)
            for program, found in zip(programs, schools)
        ]

    async def college_results(self, programs: List[CollegeProgram]) -> List[CollegeProgramResult]:
        campuses = await asyncio.gather(*[
            self.college.get_campuses_by_cip(program.cip_code) for program in programs
        ])
        return [
            CollegeProgramResult(cip_code=program.cip_code, program_names=program.names, campuses=found)
            for program, found in zip(programs, campuses)
        ]

    async def trace_from_keywords(self, keywords: List[str]) -> CollectedData:
        """
        Trace a full pathway from search keywords.

        College programs are matched by name first. When any program contains
        the whole keyword phrase only strong matches are kept. Their CIP
        families pull in related high school programs, which are merged with
        high school programs matched by name.

        Args:
            keywords: Search keywords

        Returns:
            CollectedData with school, college and career buckets
        """
        logger.info(f"Tracing pathway for keywords: {keywords}")

        college_matches = await self.college.search_programs(keywords)
        if any(score >= PHRASE_MATCH_SCORE for _, score in college_matches):
            college_matches = [(program, score) for program, score in college_matches if score >= PHRASE_FILTER_SCORE]
            logger.debug(f"Phrase match found, kept {len(college_matches)} college programs")
        college_programs = [program for program, _ in college_matches]

        cip_codes = []
        cip_2digits = []
        for program in college_programs:
            if program.cip_code not in cip_codes:
                cip_codes.append(program.cip_code)
            if program.cip_code[:2] not in cip_2digits:
                cip_2digits.append(program.cip_code[:2])

        by_name = [program for program, _ in await self.school.search_programs(keywords)]
        by_cip = await self.school.get_programs_by_cip_2digit(cip_2digits)
        merged: Dict[str, SchoolProgram] = {}
        for program in by_name + by_cip:
            merged.setdefault(program.program_of_study, program)
        school_programs = list(merged.values())[:TRACE_SCHOOL_LIMIT]

        for program in school_programs:
            for code in program.cip_2digit:
                if code not in cip_2digits:
                    cip_2digits.append(code)

        school_results, college_results, careers = await asyncio.gather(
            self.school_results(school_programs),
            self.college_results(college_programs[:TRACE_COLLEGE_LIMIT]),
            self.career.get_careers_by_cip(cip_codes),
        )

        collected = CollectedData()
        for result in school_results:
            collected.add_school_program(result)
        for result in college_results:
            collected.add_college_program(result)
        collected.careers = [
            CareerResult(cip_code=mapping.cip_code, soc_codes=mapping.soc_code)
            for mapping in careers[:TRACE_CAREER_LIMIT]
        ]
        collected.taxonomy_mappings = [
            TaxonomyMapping(cip_2digit=code, cip_codes=[c for c in cip_codes if c.startswith(code)])
            for code in cip_2digits
        ]

        logger.info(f"Trace found {len(collected.school_programs)} HS, "
                    f"{len(collected.college_programs)} college, {len(collected.careers)} career mappings")
        return collected

    async def trace_from_hs(self, program_name: str) -> CollectedData:
        """
        Trace the pathway that starts at one high school program.

        Args:
            program_name: Exact high school program of study

        Returns:
            CollectedData, empty when the program is unknown
        """
        logger.info(f"Tracing pathway from high school program: {program_name}")
        collected = CollectedData()

        program = await self.school.get_program_by_name(program_name)
        if program is None:
            logger.info(f"High school program not found: {program_name}")
            return collected

        schools, mappings = await asyncio.gather(
            self.school.get_schools_for_program(program.program_of_study),
            self.cip.get_mappings(program.cip_2digit),
        )
        full_codes = []
        for mapping in mappings:
            full_codes.extend(code for code in mapping.cip_code if code not in full_codes)

        college_programs = await self.college.get_programs_by_cip(full_codes)
        college_results, careers = await asyncio.gather(
            self.college_results(college_programs),
            self.career.get_careers_by_cip(full_codes),
        )

        collected.add_school_program(SchoolProgramResult(
            name=program.program_of_study, cip_2digit=program.cip_2digit, schools=schools
        ))
        for result in college_results:
            collected.add_college_program(result)
        collected.careers = [CareerResult(cip_code=m.cip_code, soc_codes=m.soc_code) for m in careers]
        collected.taxonomy_mappings = [
            TaxonomyMapping(cip_2digit=m.cip_2digit, cip_codes=m.cip_code, category_name=m.category_name)
            for m in mappings
        ]
        return collected


class PathwayRepository:
    """Bundle of every data access tool over one JSONL directory."""

    def __init__(self, data_dir: Optional[str] = None, reader: Optional[JsonlReader] = None):
        """
        Initialize the repository.

        Args:
            data_dir: Directory holding the JSONL files
            reader: Pre-built reader, mostly for tests
        """
        self.reader = reader or JsonlReader(data_dir)
        self.school = SchoolDataTool(self.reader)
        self.college = CollegeDataTool(self.reader)
        self.cip = CipMappingTool(self.reader)
        self.career = CareerDataTool(self.reader)
        self.tracer = PathwayTracer(self.school, self.college, self.cip, self.career)
        logger.info(f"Pathway repository using data directory: {self.reader.data_dir}")
