"""
Tool planning component for the pathway pipeline.

The planning model proposes operations; this module parses them into typed
tool calls and enforces the plan rules.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from models.parameters import (
    SCHOOL_TIER_OPERATIONS,
    ExpandCipCall,
    GetCareersCall,
    GetCollegeByCipCall,
    SearchStrategy,
    ToolCall,
    TracePathwayCall,
    UserProfile,
    parse_tool_call,
)
from models.state import PathwayState
from utils.llm import extract_json

logger = logging.getLogger(__name__)

def parse_tool_plan(raw: str) -> Tuple[List[ToolCall], List[str]]:
    """
    Parse the planning model output into typed tool calls.

    Accepts ``{"tools": [...]}`` or a bare list, optionally fenced in
    markdown. Invalid entries are dropped and reported.

    Args:
        raw: Raw model output

    Returns:
        (valid tool calls, errors for the dropped entries)

    Raises:
        ValueError: If no JSON plan can be found
    """
    parsed = extract_json(raw)
    if isinstance(parsed, dict):
        parsed = parsed.get("tools", parsed.get("tool_calls"))
    if not isinstance(parsed, list):
        raise ValueError(f"Unparseable tool plan: {str(raw)[:100]!r}")

    calls = []
    errors = []
    for entry in parsed:
        try:
            calls.append(parse_tool_call(entry))
        except (ValidationError, ValueError) as e:
            name = entry.get("name") if isinstance(entry, dict) else entry
            logger.warning(f"Dropping invalid tool call {name!r}: {str(e).splitlines()[0]}")
            errors.append(f"Invalid tool call {name!r} dropped")
    return calls, errors

def fixed_plan(keywords: List[str], codes: List[str], query: str = "") -> List[ToolCall]:
    """Plan used when the model proposes nothing usable. Traces the raw query when there are no keywords."""
    if codes:
        return [GetCollegeByCipCall(args=codes), GetCareersCall(args=codes)]
    return [TracePathwayCall(args=keywords or [query.strip() or "programs"]), GetCareersCall(args=["all"])]

def _code_prefixes(collected: Optional[Dict[str, Any]]) -> List[str]:
    prefixes: List[str] = []
    for program in (collected or {}).get("college_programs", []):
        prefix = program.get("cip_code", "")[:2]
        if prefix and prefix not in prefixes:
            prefixes.append(prefix)
    return prefixes

def finalize_plan(calls: List[ToolCall],
                  keywords: List[str],
                  codes: List[str],
                  profile: UserProfile,
                  strategy: Optional[SearchStrategy] = None,
                  previous_data: Optional[Dict[str, Any]] = None,
                  query: str = "") -> List[ToolCall]:
    """
    Apply the plan rules to the validated calls.

    Args:
        calls: Validated tool calls
        keywords: Keywords of the attempt
        codes: Taxonomy codes from career goals
        profile: User profile
        strategy: Retry strategy, if any
        previous_data: Collected data of the previous attempt
        query: Original query, traced when there are no keywords

    Returns:
        The final ordered plan
    """
    if profile.restricts_school_tier:
        removed = [call.name for call in calls if call.name in SCHOOL_TIER_OPERATIONS]
        if removed:
            logger.info(f"Removing school-tier operations for {profile.education_level}: {removed}")
        calls = [call for call in calls if call.name not in SCHOOL_TIER_OPERATIONS]

    if not calls:
        logger.info("No valid tool calls proposed, using fixed plan")
        return fixed_plan(keywords, codes, query)

    names = {call.name for call in calls}

    if codes and "get_college_by_cip" not in names:
        logger.info("Career codes present, adding get_college_by_cip first")
        calls = [GetCollegeByCipCall(args=codes)] + calls

    if strategy is not None and strategy.use_code_based_search and not codes:
        prefixes = _code_prefixes(previous_data)
        if prefixes and "expand_cip" not in names:
            logger.info(f"Code-based search on CIP families {prefixes}")
            calls = calls + [ExpandCipCall(args=prefixes), GetCollegeByCipCall(args=prefixes)]

    if "get_careers" not in names and "trace_pathway" not in names:
        calls = calls + [GetCareersCall(args=["all"])]

    return calls

async def plan_tools(state: PathwayState, services) -> PathwayState:
    """
    Plans the retrieval operations for the current attempt.

    Args:
        state: The current pathway state
        services: Pipeline service bundle

    Returns:
        Updated state with typed tool calls
    """
    keywords = state.get("keywords", [])
    codes = state.get("taxonomy_codes", [])
    attempt = state.get("attempt", 1)
    profile = UserProfile.from_raw(state.get("user_profile"))
    strategy_data = state.get("search_strategy")
    strategy = SearchStrategy.model_validate(strategy_data) if strategy_data else None
    errors = list(state.get("errors", []))

    logger.info(f"Planning tools for attempt {attempt} with keywords {keywords}")

    try:
        inputs = services.planner.build_inputs(
            state.get("planning_query") or state["query"], keywords, codes, profile, strategy, attempt
        )
        calls, plan_errors = parse_tool_plan(await services.planner.propose(inputs))
        errors.extend(plan_errors)
        used_fallback = False
    except Exception as e:
        logger.warning(f"Tool planning failed, using fixed plan: {str(e)}")
        errors.append(f"Tool planning failed: {str(e)}")
        calls = []
        used_fallback = True

    calls = finalize_plan(
        calls, keywords, codes, profile, strategy, state.get("collected_data"), state["query"]
    )
    logger.info(f"Planned tools: {[call.name for call in calls]}")

    return {
        **state,
        "tool_calls": [call.model_dump() for call in calls],
        "errors": errors,
        "metadata": {
            **(state.get("metadata", {})),
            "planning_fallback": used_fallback,
            "planned_tool_count": len(calls),
        }
    }
