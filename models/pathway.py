"""
Data models for repository rows, collected buckets and aggregated output.
"""
from typing import Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

GRADE_COURSE_KEYS = [
    "9TH_GRADE_COURSES",
    "10TH_GRADE_COURSES",
    "11TH_GRADE_COURSES",
    "12TH_GRADE_COURSES",
]

LEVEL_COURSE_KEYS = [
    "LEVEL_1_POS_COURSES",
    "LEVEL_2_POS_COURSES",
    "LEVEL_3_POS_COURSES",
    "LEVEL_4_POS_COURSES",
    "RECOMMENDED_COURSES",
]


def _listify(v):
    if v is None:
        return []
    if isinstance(v, str):
        return [v]
    return [str(item) for item in v if item]


# Repository rows, field names follow the JSONL files

class _Row(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SchoolProgram(_Row):
    """High school program of study."""
    program_of_study: str = Field(alias="PROGRAM_OF_STUDY")
    cip_2digit: List[str] = Field(default_factory=list, alias="CIP_2DIGIT")

    @field_validator("cip_2digit", mode="before")
    @classmethod
    def coerce_list(cls, v):
        return _listify(v)


class SchoolMapping(_Row):
    """High schools offering a program of study."""
    program_of_study: str = Field(alias="PROGRAM_OF_STUDY")
    high_school: List[str] = Field(default_factory=list, alias="HIGH_SCHOOL")

    @field_validator("high_school", mode="before")
    @classmethod
    def coerce_list(cls, v):
        return _listify(v)


class CollegeProgram(_Row):
    """College program row, one CIP code with one or more names."""
    cip_code: str = Field(alias="CIP_CODE")
    program_name: Union[str, List[str]] = Field(alias="PROGRAM_NAME")

    @property
    def names(self) -> List[str]:
        return _listify(self.program_name)


class CampusMapping(_Row):
    """Campuses offering a CIP code."""
    cip_code: str = Field(alias="CIP_CODE")
    campus: List[str] = Field(default_factory=list, alias="CAMPUS")

    @field_validator("campus", mode="before")
    @classmethod
    def coerce_list(cls, v):
        return _listify(v)


class CipMapping(_Row):
    """2-digit CIP family with its full codes and category name."""
    cip_2digit: str = Field(alias="CIP_2DIGIT")
    cip_code: List[str] = Field(default_factory=list, alias="CIP_CODE")
    category_name: Optional[str] = Field(default=None, alias="CATEGORY_NAME")

    @field_validator("cip_code", mode="before")
    @classmethod
    def coerce_list(cls, v):
        return _listify(v)


class CareerMapping(_Row):
    """SOC occupation codes linked to a CIP code."""
    cip_code: str = Field(alias="CIP_CODE")
    soc_code: List[str] = Field(default_factory=list, alias="SOC_CODE")

    @field_validator("soc_code", mode="before")
    @classmethod
    def coerce_list(cls, v):
        return _listify(v)


# Collected buckets for one attempt

class SchoolProgramResult(BaseModel):
    name: str
    cip_2digit: List[str] = Field(default_factory=list)
    schools: List[str] = Field(default_factory=list)


class CollegeProgramResult(BaseModel):
    cip_code: str
    program_names: List[str] = Field(default_factory=list)
    campuses: List[str] = Field(default_factory=list)


class CareerResult(BaseModel):
    cip_code: str
    soc_codes: List[str] = Field(default_factory=list)


class TaxonomyMapping(BaseModel):
    cip_2digit: str
    cip_codes: List[str] = Field(default_factory=list)
    category_name: Optional[str] = None


class CourseDetail(BaseModel):
    courses_by_grade: Dict[str, List[str]] = Field(default_factory=dict)
    courses_by_level: Dict[str, List[str]] = Field(default_factory=dict)

    @property
    def course_count(self) -> int:
        columns = list(self.courses_by_grade.values()) + list(self.courses_by_level.values())
        return sum(len(courses) for courses in columns)


class CollectedData(BaseModel):
    """
    Raw retrieval output of one attempt.

    Built fresh for every attempt and only appended to while that attempt's
    tool calls run.
    """
    school_programs: List[SchoolProgramResult] = Field(default_factory=list)
    college_programs: List[CollegeProgramResult] = Field(default_factory=list)
    careers: List[CareerResult] = Field(default_factory=list)
    institutions: List[str] = Field(default_factory=list)
    campuses: List[str] = Field(default_factory=list)
    taxonomy_mappings: List[TaxonomyMapping] = Field(default_factory=list)
    # Course sequences fetched by name, reused when aggregating
    course_details: Dict[str, CourseDetail] = Field(default_factory=dict)

    def add_institutions(self, names: List[str]):
        for name in names:
            if name not in self.institutions:
                self.institutions.append(name)

    def add_campuses(self, names: List[str]):
        for name in names:
            if name not in self.campuses:
                self.campuses.append(name)

    def add_school_program(self, program: SchoolProgramResult):
        self.school_programs.append(program)
        self.add_institutions(program.schools)

    def add_college_program(self, program: CollegeProgramResult):
        self.college_programs.append(program)
        self.add_campuses(program.campuses)

    def merge(self, other: "CollectedData"):
        """Append every bucket of another CollectedData."""
        for program in other.school_programs:
            self.add_school_program(program)
        for program in other.college_programs:
            self.add_college_program(program)
        self.careers.extend(other.careers)
        self.add_institutions(other.institutions)
        self.add_campuses(other.campuses)
        self.taxonomy_mappings.extend(other.taxonomy_mappings)
        for name, detail in other.course_details.items():
            self.course_details.setdefault(name, detail)

    def drop_school_tier(self):
        self.school_programs = []
        self.institutions = []
        self.course_details = {}

    @property
    def college_cip_codes(self) -> List[str]:
        codes = []
        for program in self.college_programs:
            if program.cip_code not in codes:
                codes.append(program.cip_code)
        return codes


# Aggregated output

class AggregatedSchoolProgram(BaseModel):
    name: str
    schools: List[str] = Field(default_factory=list)
    school_count: int = 0
    details: Optional[CourseDetail] = None


class AggregatedCollegeProgram(BaseModel):
    cip_code: str
    family_name: str
    representative_name: str
    name_variants: List[str] = Field(default_factory=list)
    campuses: List[str] = Field(default_factory=list)
    campus_count: int = 0
    variant_count: int = 0


class AggregatedCareer(BaseModel):
    code: str
    title: str


class AggregatedData(BaseModel):
    school_programs: List[AggregatedSchoolProgram] = Field(default_factory=list)
    college_programs: List[AggregatedCollegeProgram] = Field(default_factory=list)
    careers: List[AggregatedCareer] = Field(default_factory=list)
    schools: List[str] = Field(default_factory=list)
    campuses: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.school_programs or self.college_programs or self.careers)
