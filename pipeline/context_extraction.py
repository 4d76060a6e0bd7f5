"""
Context extraction component for the pathway pipeline.

Builds the bounded keyword set for an attempt from the current message,
the conversation and the user profile.
"""
import logging
from typing import Dict, List, Optional, Tuple

from models.parameters import SearchStrategy, UserProfile
from models.state import PathwayState
from utils.keywords import extract_keywords, is_affirmative, is_topic_pivot

logger = logging.getLogger(__name__)

DEFAULT_KEYWORD_LIMIT = 5
BROADEN_KEEP = 3
MAX_PROFILE_BACKFILL = 2

def _dedupe(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))

def _last_assistant_turn(history: List[Dict[str, str]]) -> Optional[str]:
    for message in reversed(history):
        if message.get("role") == "assistant":
            return message.get("content", "")
    return None

def _map_career_goals(career_mapper, profile: UserProfile) -> Tuple[List[str], List[str]]:
    if career_mapper is None or not profile.career_goals:
        return [], []
    try:
        return career_mapper.map_career_goals(profile.career_goals)
    except Exception as e:
        logger.warning(f"Career goal lookup failed: {str(e)}")
        return [], []

def extract_search_context(query: str,
                           history: List[Dict[str, str]],
                           profile: UserProfile,
                           career_mapper=None) -> Tuple[List[str], List[str], str]:
    """
    Extract keywords and taxonomy codes for a message.

    A topic pivot uses only the message. An affirmative reply takes its
    keywords from the last assistant turn and backfills at most two profile
    interests related to them. Any other message uses its own keywords plus
    the keywords of mapped career goals.

    Args:
        query: Current user message
        history: Recent conversation turns
        profile: User profile
        career_mapper: CareerMappingService, None to skip career goals

    Returns:
        (keywords, taxonomy codes, extraction mode)
    """
    message_keywords = extract_keywords(query)

    if is_topic_pivot(query):
        logger.debug("Topic pivot detected, using message keywords only")
        return _dedupe(message_keywords), [], "pivot"

    codes, career_keywords = _map_career_goals(career_mapper, profile)

    if is_affirmative(query) and history:
        assistant_text = _last_assistant_turn(history)
        if assistant_text is not None:
            context_keywords = extract_keywords(assistant_text)
            keywords = context_keywords + message_keywords
            if len(keywords) < 3:
                related = [
                    interest for interest in profile.interests
                    if any(interest.lower() in k or k in interest.lower() for k in keywords)
                ]
                keywords += related[:MAX_PROFILE_BACKFILL]
            logger.debug(f"Affirmative reply, context keywords: {context_keywords}")
            return _dedupe(keywords), codes, "affirmative"

    return _dedupe(message_keywords + career_keywords), codes, "normal"

def broaden_keywords(keywords: List[str], keep: int = BROADEN_KEEP) -> List[str]:
    """Keep the shortest (most general) keywords, ties broken by original order."""
    ranked = sorted(enumerate(keywords), key=lambda item: (len(item[1]), item[0]))
    chosen = {index for index, _ in ranked[:keep]}
    return [keyword for index, keyword in enumerate(keywords) if index in chosen]

def apply_strategy(keywords: List[str],
                   strategy: Optional[SearchStrategy],
                   limit: int = DEFAULT_KEYWORD_LIMIT) -> List[str]:
    """
    Merge retry strategy keywords and cap the keyword set.

    Args:
        keywords: Extracted keywords
        strategy: Retry strategy, None on the first attempt
        limit: Maximum number of keywords

    Returns:
        Final keyword list
    """
    if strategy is not None:
        keywords = _dedupe(keywords + strategy.additional_keywords)
        if strategy.broaden_scope:
            keywords = broaden_keywords(keywords)
    return _dedupe(keywords)[:limit]

async def extract_context(state: PathwayState, services) -> PathwayState:
    """
    Extracts the keyword set and taxonomy codes for the current attempt.

    Args:
        state: The current pathway state
        services: Pipeline service bundle

    Returns:
        Updated state with keywords and taxonomy codes
    """
    query = state["query"]
    attempt = state.get("attempt", 1)
    history = state.get("conversation_history", [])[-services.history_window:]
    profile = UserProfile.from_raw(state.get("user_profile"))
    strategy_data = state.get("search_strategy")
    strategy = SearchStrategy.model_validate(strategy_data) if strategy_data else None

    logger.info(f"Extracting context for attempt {attempt}: '{query}'")

    keywords, codes, mode = extract_search_context(query, history, profile, services.career_mapper)
    keywords = apply_strategy(keywords, strategy, services.keyword_limit)

    logger.info(f"Keywords ({mode}): {keywords}; taxonomy codes: {codes}")

    return {
        **state,
        "keywords": keywords,
        "taxonomy_codes": codes,
        "metadata": {
            **(state.get("metadata", {})),
            "extraction_mode": mode,
            "keyword_count": len(keywords),
        }
    }
