"""
Tool execution component for the pathway pipeline.
"""
import asyncio
import logging
from typing import Any, Dict, List

from models.parameters import TOOL_CALL_ADAPTER, ToolCall, UserProfile
from models.pathway import (
    CareerResult,
    CollectedData,
    CourseDetail,
    TaxonomyMapping,
)
from models.state import PathwayState

logger = logging.getLogger(__name__)

# Rows kept from a keyword search
SEARCH_RESULT_LIMIT = 10

async def execute_tool_call(call: ToolCall, repository, collected: CollectedData) -> int:
    """
    Run one tool call and add its rows to the collected data.

    Args:
        call: Typed tool call
        repository: PathwayRepository
        collected: CollectedData of the current attempt

    Returns:
        Number of rows the call produced
    """
    name = call.name
    args = call.args
    tracer = repository.tracer

    if name == "trace_pathway":
        traced = await tracer.trace_from_keywords(args)
        collected.merge(traced)
        return len(traced.school_programs) + len(traced.college_programs) + len(traced.careers)

    if name == "trace_from_hs":
        traced = await tracer.trace_from_hs(args)
        collected.merge(traced)
        return len(traced.school_programs) + len(traced.college_programs) + len(traced.careers)

    if name == "search_hs_programs":
        matches = await repository.school.search_programs(args)
        results = await tracer.school_results([program for program, _ in matches[:SEARCH_RESULT_LIMIT]])
        for result in results:
            collected.add_school_program(result)
        return len(results)

    if name in ("get_hs_program_details", "get_hs_program_schools"):
        program = await repository.school.get_program_by_name(args)
        if program is None:
            return 0
        for result in await tracer.school_results([program]):
            collected.add_school_program(result)
        return 1

    if name == "get_hs_courses":
        program = await repository.school.get_program_by_name(args)
        program_name = program.program_of_study if program is not None else args
        by_grade, by_level = await asyncio.gather(
            repository.school.get_courses_by_grade(program_name),
            repository.school.get_courses_by_level(program_name),
        )
        detail = CourseDetail(courses_by_grade=by_grade, courses_by_level=by_level)
        if detail.course_count:
            collected.course_details[program_name] = detail
        return detail.course_count

    if name == "search_college_programs":
        matches = await repository.college.search_programs(args)
        results = await tracer.college_results([program for program, _ in matches[:SEARCH_RESULT_LIMIT]])
        for result in results:
            collected.add_college_program(result)
        return len(results)

    if name == "get_college_by_cip":
        families = [code for code in args if len(code) == 2]
        codes = [code for code in args if len(code) != 2]
        if families:
            codes += [code for code in await repository.cip.expand_cip_2digits(families) if code not in codes]
        programs = await repository.college.get_programs_by_cip(codes)
        results = await tracer.college_results(programs)
        for result in results:
            collected.add_college_program(result)
        return len(results)

    if name == "get_college_campuses":
        campuses = await repository.college.get_campuses_by_cip(args)
        collected.add_campuses(campuses)
        return len(campuses)

    if name == "expand_cip":
        mappings = await repository.cip.get_mappings(args)
        collected.taxonomy_mappings.extend(
            TaxonomyMapping(cip_2digit=m.cip_2digit, cip_codes=m.cip_code, category_name=m.category_name)
            for m in mappings
        )
        return len(mappings)

    if name == "get_cip_category":
        categories = await repository.cip.get_categories(args)
        collected.taxonomy_mappings.extend(
            TaxonomyMapping(cip_2digit=code, category_name=category) for code, category in categories.items()
        )
        return len(categories)

    if name == "get_careers":
        codes = collected.college_cip_codes if args == ["all"] else args
        mappings = await repository.career.get_careers_by_cip(codes)
        collected.careers.extend(CareerResult(cip_code=m.cip_code, soc_codes=m.soc_code) for m in mappings)
        return len(mappings)

    raise ValueError(f"Unknown tool: {name}")

async def execute_tools(state: PathwayState, services) -> PathwayState:
    """
    Executes the planned tool calls into a fresh CollectedData.

    A failing call is recorded with its operation and arguments; the
    remaining calls still run.

    Args:
        state: The current pathway state
        services: Pipeline service bundle

    Returns:
        Updated state with collected data and tool results
    """
    attempt = state.get("attempt", 1)
    profile = UserProfile.from_raw(state.get("user_profile"))
    errors = list(state.get("errors", []))
    tools_used = list(state.get("tools_used", []))
    collected = CollectedData()
    tool_results: List[Dict[str, Any]] = []

    logger.info(f"Executing {len(state.get('tool_calls', []))} tool calls for attempt {attempt}")

    for raw_call in state.get("tool_calls", []):
        call = TOOL_CALL_ADAPTER.validate_python(raw_call)
        try:
            count = await execute_tool_call(call, services.repository, collected)
            tool_results.append({"tool": call.name, "args": call.args, "status": "ok", "count": count})
            logger.debug(f"{call.name}({call.args}) returned {count} rows")
        except Exception as e:
            logger.error(f"Error executing {call.name}({call.args}): {str(e)}")
            errors.append(f"Tool {call.name}({call.args}) failed: {str(e)}")
            tool_results.append({"tool": call.name, "args": call.args, "status": "error", "error": str(e)})
        if call.name not in tools_used:
            tools_used.append(call.name)

    if profile.restricts_school_tier and collected.school_programs:
        logger.info(f"Dropping {len(collected.school_programs)} school-tier rows for {profile.education_level}")
        collected.drop_school_tier()

    logger.info(f"Collected: {len(collected.school_programs)} HS, {len(collected.college_programs)} college, "
                f"{len(collected.careers)} career mappings")

    metadata = state.get("metadata", {})
    return {
        **state,
        "collected_data": collected.model_dump(),
        "tool_results": tool_results,
        "tools_used": tools_used,
        "errors": errors,
        "metadata": {
            **metadata,
            # Every executed call across attempts, repeats included
            "tool_call_count": metadata.get("tool_call_count", 0) + len(tool_results),
            "collected_counts": {
                "school_programs": len(collected.school_programs),
                "college_programs": len(collected.college_programs),
                "careers": len(collected.careers),
            },
        }
    }
