"""
Query classification component for the pathway pipeline.
"""
import logging

from models.state import PathwayState
from services.classification_service import heuristic_classification

logger = logging.getLogger(__name__)

async def classify_query(state: PathwayState, services) -> PathwayState:
    """
    Decides whether the message needs pathway data.

    Falls back to the keyword heuristic when the classifier fails.

    Args:
        state: The current pathway state
        services: Pipeline service bundle

    Returns:
        Updated state with the classification
    """
    query = state["query"]
    history = state.get("conversation_history", [])[-services.history_window:]
    errors = list(state.get("errors", []))
    logger.info(f"Classifying query: {query}")

    try:
        result = await services.classifier.classify(query, history)
        used_fallback = False
    except Exception as e:
        logger.warning(f"Classification failed, using keyword heuristic: {str(e)}")
        errors.append(f"Classification failed: {str(e)}")
        result = heuristic_classification(query)
        used_fallback = True

    logger.info(f"Classified as {result.query_kind} (needs_retrieval={result.needs_retrieval})")

    return {
        **state,
        "needs_retrieval": result.needs_retrieval,
        "query_kind": result.query_kind,
        "classification_reasoning": result.reasoning,
        "errors": errors,
        "metadata": {
            **(state.get("metadata", {})),
            "classification_fallback": used_fallback
        }
    }

def route_by_retrieval(state: PathwayState) -> str:
    """Route retrieval queries to extraction and everything else to a conversational reply."""
    return "extract_context" if state.get("needs_retrieval") else "converse"
