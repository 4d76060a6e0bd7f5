"""
Reflection and retry control for the pathway pipeline.
"""
import logging

from models.parameters import ReflectionResult, UserProfile
from models.pathway import CollectedData
from models.state import PathwayState

logger = logging.getLogger(__name__)

# Hard limit; a configured bound can only lower it
MAX_ATTEMPTS = 3

async def reflect(state: PathwayState, services) -> PathwayState:
    """
    Scores the verified data of the current attempt.

    A failing reflection service accepts the attempt with a score of 0.

    Args:
        state: The current pathway state
        services: Pipeline service bundle

    Returns:
        Updated state with quality score and verdict
    """
    attempt = state.get("attempt", 1)
    profile = UserProfile.from_raw(state.get("user_profile"))
    verified = CollectedData.model_validate(state.get("verified_data") or {})
    errors = list(state.get("errors", []))

    logger.info(f"Reflecting on attempt {attempt}")

    try:
        result = await services.reflection.reflect(
            state["query"],
            verified,
            profile,
            state.get("conversation_history", []),
            attempt,
            keywords=state.get("keywords", []),
        )
    except Exception as e:
        logger.error(f"Reflection failed, accepting current results: {str(e)}")
        errors.append(f"Reflection failed: {str(e)}")
        result = ReflectionResult(quality_score=0, good_enough=True, reasoning="Reflection unavailable")

    logger.info(f"Attempt {attempt} quality {result.quality_score}/10 (good_enough={result.good_enough})")

    return {
        **state,
        "quality_score": result.quality_score,
        "good_enough": result.good_enough,
        "reflection_issues": result.issues,
        "reflection_suggestions": result.suggestions,
        "errors": errors,
    }

def should_retry(state: PathwayState, max_attempts: int = MAX_ATTEMPTS) -> str:
    """
    Decide whether to run another attempt.

    Returns:
        "accept" when the attempt is good enough or the attempt budget is spent, else "retry"
    """
    if state.get("good_enough") or state.get("attempt", 1) >= min(max_attempts, MAX_ATTEMPTS):
        return "accept"
    return "retry"

async def enhance_strategy(state: PathwayState, services) -> PathwayState:
    """
    Builds the retry strategy and enhanced planning query for the next attempt.

    When no strategy can be produced the current attempt is accepted instead.

    Args:
        state: The current pathway state
        services: Pipeline service bundle

    Returns:
        Updated state for the next attempt
    """
    next_attempt = state.get("attempt", 1) + 1
    profile = UserProfile.from_raw(state.get("user_profile"))
    errors = list(state.get("errors", []))
    previous = ReflectionResult(
        quality_score=state.get("quality_score", 0),
        good_enough=False,
        issues=state.get("reflection_issues", []),
        suggestions=state.get("reflection_suggestions", []),
    )

    logger.info(f"Enhancing search strategy for attempt {next_attempt}")

    try:
        context = await services.reflection.generate_rerun_context(
            state["query"], previous, profile, next_attempt, keywords=state.get("keywords", [])
        )
    except Exception as e:
        logger.error(f"Strategy generation failed, accepting current results: {str(e)}")
        errors.append(f"Strategy generation failed: {str(e)}")
        return {**state, "good_enough": True, "errors": errors}

    return {
        **state,
        "attempt": next_attempt,
        "planning_query": context.enhanced_query,
        "search_strategy": context.strategy.model_dump(),
        "errors": errors,
        "metadata": {
            **(state.get("metadata", {})),
            "retries": state.get("metadata", {}).get("retries", 0) + 1,
        }
    }

def after_enhancement(state: PathwayState) -> str:
    """Route to the next attempt, or to aggregation when enhancement gave up."""
    return "aggregate" if state.get("good_enough") else "extract_context"
