"""
Message checks that run before classification.
"""
import re
import logging
from typing import Dict, Any, Optional

from config import ORCHESTRATOR_CONFIG
from models.state import PathwayState

logger = logging.getLogger(__name__)

# Requests the assistant will not help with
_DISALLOWED = re.compile(
    r"\b(hack into|exploit|steal|crack (a|the) password|cheat on (a|the|my) (exam|test)|fake (a )?(diploma|transcript))\b",
    re.IGNORECASE
)

REJECTION_REPLIES = {
    "EMPTY_QUERY": "Your message was empty. What would you like to explore: high school programs, college programs or careers?",
    "QUERY_TOO_LONG": "Your message is quite long. Could you ask about one field or program at a time?",
    "DISALLOWED_REQUEST": "I can't help with that. I can help you explore education and career pathways instead.",
}

def find_validation_error(query: str, max_length: Optional[int] = None) -> Optional[str]:
    """Return the rejection code for a message, or None when it may proceed."""
    max_length = max_length or ORCHESTRATOR_CONFIG["max_query_length"]
    text = query.strip()

    if not text:
        return "EMPTY_QUERY"
    if len(text) > max_length:
        return "QUERY_TOO_LONG"
    if _DISALLOWED.search(text):
        return "DISALLOWED_REQUEST"
    return None

async def validate_input(state: PathwayState, services=None) -> PathwayState:
    """
    Reject empty, oversized and disallowed messages.

    Args:
        state: The current pathway state
        services: Pipeline service bundle, unused

    Returns:
        Updated state with input_validation_error set or cleared
    """
    query = state.get("query") or ""
    error_code = find_validation_error(query)

    if error_code:
        logger.info(f"Rejected message ({error_code}, {len(query)} chars)")

    return {
        **state,
        "input_validation_error": error_code,
        "metadata": {
            **(state.get("metadata", {})),
            "query_length": len(query)
        }
    }

async def handle_validation_error(state: PathwayState, services=None) -> PathwayState:
    """Answer a rejected message without touching data or models."""
    error_code = state.get("input_validation_error")
    reply = REJECTION_REPLIES.get(error_code, "I couldn't process your message. Could you try rephrasing it?")

    return {
        **state,
        "response": reply,
        "needs_retrieval": False,
        "errors": state.get("errors", []) + [f"Input rejected: {error_code}"],
    }

def has_validation_error(state: PathwayState) -> bool:
    return state.get("input_validation_error") is not None
