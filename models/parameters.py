"""
Parameter models for profiles, retry strategies and planned tool calls.
"""
from typing import Any, Dict, List, Literal, Optional, Union
from typing_extensions import Annotated
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

# Classifier labels; search and followup usually need pathway data
QueryKind = Literal["search", "followup", "clarification", "greeting", "reasoning"]

# Education levels that keep school-tier operations in the plan
SCHOOL_TIER_EDUCATION_LEVELS = {"high_school", "middle_school"}


def _dedupe(values: List[str]) -> List[str]:
    """Deduplicate while keeping first-seen order."""
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _as_string_list(value: Any) -> List[str]:
    """Coerce None, a string or an iterable of values into a clean string list."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


class UserProfile(BaseModel):
    """User profile snapshot taken at the start of a request."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    education_level: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("education_level", "educationLevel")
    )
    interests: List[str] = Field(default_factory=list)
    career_goals: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("career_goals", "careerGoals")
    )
    location: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def unwrap_extracted(cls, data):
        """Accept profiles nested under an ``extracted`` key."""
        if isinstance(data, dict) and isinstance(data.get("extracted"), dict):
            return {**data["extracted"], **{k: v for k, v in data.items() if k != "extracted"}}
        return data

    @field_validator("interests", "career_goals", mode="before")
    @classmethod
    def coerce_lists(cls, v):
        return _as_string_list(v)

    @field_validator("education_level", mode="before")
    @classmethod
    def normalize_education_level(cls, v):
        """Normalize "High School" style values to ``high_school``."""
        if v is None:
            return None
        normalized = "_".join(str(v).strip().lower().replace("-", " ").split())
        return normalized or None

    @classmethod
    def from_raw(cls, raw: Optional[Dict[str, Any]]) -> "UserProfile":
        """Build a profile from whatever the caller sent, tolerating None."""
        if isinstance(raw, UserProfile):
            return raw
        return cls.model_validate(raw or {})

    @property
    def restricts_school_tier(self) -> bool:
        """True when the education level excludes school-tier programs."""
        return bool(self.education_level) and self.education_level not in SCHOOL_TIER_EDUCATION_LEVELS


class SearchStrategy(BaseModel):
    """Retry strategy emitted by reflection. Never present on the first attempt."""
    expand_keywords: bool = False
    use_code_based_search: bool = False
    broaden_scope: bool = False
    include_related_fields: bool = False
    additional_keywords: List[str] = Field(default_factory=list)

    @field_validator("additional_keywords", mode="before")
    @classmethod
    def dedupe_keywords(cls, v):
        return _dedupe(_as_string_list(v))


class ClassificationResult(BaseModel):
    """Outcome of query classification."""
    model_config = ConfigDict(populate_by_name=True)

    needs_retrieval: bool = Field(validation_alias=AliasChoices("needs_retrieval", "needsTools", "needs_tools"))
    query_kind: QueryKind = Field(
        default="search", validation_alias=AliasChoices("query_kind", "queryType", "query_type")
    )
    reasoning: str = ""


class ReflectionResult(BaseModel):
    """Quality verdict for one attempt."""
    quality_score: float = Field(ge=0, le=10)
    good_enough: bool
    issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    reasoning: str = ""


class RerunContext(BaseModel):
    """Strategy and enhanced planning query for the next attempt."""
    enhanced_query: str
    strategy: SearchStrategy


# Tool calls: one variant per catalog operation

class _ListArgsCall(BaseModel):
    model_config = ConfigDict(extra="forbid")

    args: List[str]

    @field_validator("args", mode="before")
    @classmethod
    def require_values(cls, v):
        values = _dedupe(_as_string_list(v))
        if not values:
            raise ValueError("at least one argument is required")
        return values


class _SingleArgCall(BaseModel):
    model_config = ConfigDict(extra="forbid")

    args: str

    @field_validator("args", mode="before")
    @classmethod
    def require_single_value(cls, v):
        values = _as_string_list(v)
        if len(values) != 1:
            raise ValueError("exactly one argument is required")
        return values[0]


class TracePathwayCall(_ListArgsCall):
    name: Literal["trace_pathway"] = "trace_pathway"


class TraceFromHsCall(_SingleArgCall):
    name: Literal["trace_from_hs"] = "trace_from_hs"


class SearchHsProgramsCall(_ListArgsCall):
    name: Literal["search_hs_programs"] = "search_hs_programs"


class GetHsProgramDetailsCall(_SingleArgCall):
    name: Literal["get_hs_program_details"] = "get_hs_program_details"


class GetHsProgramSchoolsCall(_SingleArgCall):
    name: Literal["get_hs_program_schools"] = "get_hs_program_schools"


class GetHsCoursesCall(_SingleArgCall):
    name: Literal["get_hs_courses"] = "get_hs_courses"


class SearchCollegeProgramsCall(_ListArgsCall):
    name: Literal["search_college_programs"] = "search_college_programs"


class GetCollegeByCipCall(_ListArgsCall):
    name: Literal["get_college_by_cip"] = "get_college_by_cip"


class GetCollegeCampusesCall(_SingleArgCall):
    name: Literal["get_college_campuses"] = "get_college_campuses"


class ExpandCipCall(_ListArgsCall):
    name: Literal["expand_cip"] = "expand_cip"


class GetCipCategoryCall(_ListArgsCall):
    name: Literal["get_cip_category"] = "get_cip_category"


class GetCareersCall(_ListArgsCall):
    name: Literal["get_careers"] = "get_careers"


ToolCall = Annotated[
    Union[
        TracePathwayCall,
        TraceFromHsCall,
        SearchHsProgramsCall,
        GetHsProgramDetailsCall,
        GetHsProgramSchoolsCall,
        GetHsCoursesCall,
        SearchCollegeProgramsCall,
        GetCollegeByCipCall,
        GetCollegeCampusesCall,
        ExpandCipCall,
        GetCipCategoryCall,
        GetCareersCall,
    ],
    Field(discriminator="name"),
]

TOOL_CALL_ADAPTER = TypeAdapter(ToolCall)

# Operation catalog shown to the planning model
TOOL_CATALOG = {
    "trace_pathway": "trace_pathway(keywords: string[]) - Comprehensive pathway search (high school -> college -> career)",
    "trace_from_hs": "trace_from_hs(program_name: string) - Trace the pathway starting from one high school program",
    "search_hs_programs": "search_hs_programs(keywords: string[]) - Search high school programs of study",
    "get_hs_program_details": "get_hs_program_details(program_name: string) - Details of one high school program",
    "get_hs_program_schools": "get_hs_program_schools(program_name: string) - High schools offering a program",
    "get_hs_courses": "get_hs_courses(program_name: string) - Course sequence of a high school program",
    "search_college_programs": "search_college_programs(keywords: string[]) - Search college programs",
    "get_college_by_cip": "get_college_by_cip(cip_codes: string[]) - College programs by CIP code (most accurate for careers)",
    "get_college_campuses": "get_college_campuses(cip_code: string) - Campuses offering a CIP code",
    "expand_cip": "expand_cip(cip_2digits: string[]) - Expand 2-digit CIP families into full CIP codes",
    "get_cip_category": "get_cip_category(cip_2digits: string[]) - Category names of 2-digit CIP families",
    "get_careers": "get_careers(cip_codes: string[] | [\"all\"]) - Careers (SOC codes) linked to CIP codes",
}

SCHOOL_TIER_OPERATIONS = {
    "trace_from_hs",
    "search_hs_programs",
    "get_hs_program_details",
    "get_hs_program_schools",
    "get_hs_courses",
}


def parse_tool_call(raw: Dict[str, Any]) -> ToolCall:
    """
    Parse one planner entry into a typed tool call.

    Args:
        raw: A dict with ``name`` and ``args`` (``arguments`` is accepted too)

    Returns:
        The typed ToolCall variant

    Raises:
        ValueError: If the entry is not a dict
        pydantic.ValidationError: If the name is unknown or the args are malformed
    """
    if not isinstance(raw, dict):
        raise ValueError(f"tool call must be an object, got {type(raw).__name__}")
    args = raw.get("args", raw.get("arguments"))
    return TOOL_CALL_ADAPTER.validate_python({"name": raw.get("name"), "args": args})
