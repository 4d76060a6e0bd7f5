"""
Response generation component for the pathway pipeline.
"""
import logging

from models.parameters import UserProfile
from models.pathway import AggregatedData
from models.state import PathwayState
from services.formatting_service import canned_reply, templated_summary

logger = logging.getLogger(__name__)

async def format_response(state: PathwayState, services) -> PathwayState:
    """
    Writes the reply from the aggregated data.

    Uses the original query, never the enhanced planning query.

    Args:
        state: The current pathway state
        services: Pipeline service bundle

    Returns:
        Updated state with the generated response
    """
    query = state["query"]
    aggregated = AggregatedData.model_validate(state.get("aggregated_data") or {})
    history = state.get("conversation_history", [])[-services.history_window:]
    profile = UserProfile.from_raw(state.get("user_profile"))
    errors = list(state.get("errors", []))

    logger.info(f"Building response for query: '{query}'")

    try:
        response = await services.formatter.format(query, aggregated, history, profile)
        used_fallback = False
    except Exception as e:
        logger.error(f"Error generating response: {str(e)}")
        errors.append(f"Response formatting failed: {str(e)}")
        response = templated_summary(query, aggregated)
        used_fallback = True

    logger.info(f"Response generated: {len(response.split())} words")

    return {
        **state,
        "response": response,
        "errors": errors,
        "metadata": {
            **(state.get("metadata", {})),
            "response_word_count": len(response.split()),
            "used_fallback_response": used_fallback
        }
    }

async def converse(state: PathwayState, services) -> PathwayState:
    """
    Replies to a message that needs no data lookup.

    Args:
        state: The current pathway state
        services: Pipeline service bundle

    Returns:
        Updated state with the conversational response
    """
    query = state["query"]
    history = state.get("conversation_history", [])[-services.history_window:]
    profile = UserProfile.from_raw(state.get("user_profile"))

    logger.info(f"Conversational reply for {state.get('query_kind') or 'unknown'} query")

    try:
        response = await services.formatter.converse(query, history, profile, state.get("query_kind") or "greeting")
        used_fallback = False
    except Exception as e:
        logger.warning(f"Conversational reply failed, using canned reply: {str(e)}")
        response = canned_reply(profile)
        used_fallback = True

    return {
        **state,
        "response": response,
        "metadata": {
            **(state.get("metadata", {})),
            "used_fallback_response": used_fallback
        }
    }
