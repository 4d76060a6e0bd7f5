"""
Result verification component for the pathway pipeline.
"""
import logging

from models.parameters import UserProfile
from models.pathway import CollectedData
from models.state import PathwayState
from utils.keywords import is_pure_affirmative

logger = logging.getLogger(__name__)

async def verify_results(state: PathwayState, services) -> PathwayState:
    """
    Filters the collected buckets down to relevant rows.

    The first keyword is the primary intent. A bare confirmation is scored
    without the profile so stored interests do not override the topic the
    conversation is on. Careers and taxonomy mappings pass through unscored.

    Args:
        state: The current pathway state
        services: Pipeline service bundle

    Returns:
        Updated state with verified data
    """
    query = state["query"]
    keywords = state.get("keywords", [])
    history = state.get("conversation_history", [])[-services.history_window:]
    profile = None if is_pure_affirmative(query) else UserProfile.from_raw(state.get("user_profile"))
    intent = keywords[0] if keywords else query
    collected = CollectedData.model_validate(state.get("collected_data") or {})
    errors = list(state.get("errors", []))

    logger.info(f"Verifying {len(collected.school_programs)} HS and {len(collected.college_programs)} "
                f"college programs (intent: '{intent}')")

    verified = collected.model_copy(deep=True)
    try:
        verified.school_programs, school_errors = await services.verifier.verify_school_programs(
            query, collected.school_programs, history, intent, profile
        )
        verified.college_programs, college_errors = await services.verifier.verify_college_programs(
            query, collected.college_programs, history, intent, profile
        )
        errors.extend(school_errors + college_errors)
    except Exception as e:
        logger.error(f"Verification failed, keeping unfiltered results: {str(e)}")
        errors.append(f"Verification failed: {str(e)}")
        verified = collected

    return {
        **state,
        "verified_data": verified.model_dump(),
        "errors": errors,
        "metadata": {
            **(state.get("metadata", {})),
            "verified_counts": {
                "school_programs": len(verified.school_programs),
                "college_programs": len(verified.college_programs),
            },
        }
    }
