"""
State definitions for the pathway query orchestration system.
"""
import time
from typing import Dict, List, Any, Optional, TypedDict

class PathwayState(TypedDict, total=False):
    """
    Represents the state of the pathway graph.
    Every node returns a new state dict; nothing is mutated in place.
    """
    # Core query information
    query: str  # Original user message, never rewritten
    planning_query: str  # Query used for planning (enhanced on retry)
    user_profile: Dict[str, Any]  # Normalized UserProfile snapshot
    conversation_history: List[Dict[str, str]]  # Recent {role, content} turns

    # Classification
    needs_retrieval: bool
    query_kind: str
    classification_reasoning: str

    # Context extraction
    keywords: List[str]
    taxonomy_codes: List[str]

    # Planning and execution
    tool_calls: List[Dict[str, Any]]  # Serialized ToolCall models
    tool_results: List[Dict[str, Any]]  # Per-call outcome summaries
    collected_data: Dict[str, Any]  # CollectedData for the current attempt
    verified_data: Dict[str, Any]
    aggregated_data: Optional[Dict[str, Any]]

    # Reflection and retry
    attempt: int  # 1..max_attempts
    search_strategy: Optional[Dict[str, Any]]  # Absent on the first attempt
    quality_score: float
    good_enough: bool
    reflection_issues: List[str]
    reflection_suggestions: List[str]

    # Output
    tools_used: List[str]
    response: Optional[str]

    # Error handling
    input_validation_error: Optional[str]
    errors: List[str]  # Accumulated non-fatal errors

    metadata: Dict[str, Any]


def create_initial_state(query: str,
                         user_profile: Optional[Dict[str, Any]] = None,
                         conversation_history: Optional[List[Dict[str, str]]] = None) -> PathwayState:
    """
    Build the state for a new incoming message.

    Args:
        query: The user message
        user_profile: Normalized profile dict
        conversation_history: Recent conversation turns

    Returns:
        A fresh PathwayState on its first attempt
    """
    return PathwayState(
        query=query,
        planning_query=query,
        user_profile=user_profile or {},
        conversation_history=list(conversation_history or []),
        needs_retrieval=False,
        query_kind="",
        classification_reasoning="",
        keywords=[],
        taxonomy_codes=[],
        tool_calls=[],
        tool_results=[],
        collected_data={},
        verified_data={},
        aggregated_data=None,
        attempt=1,
        search_strategy=None,
        quality_score=0.0,
        good_enough=False,
        reflection_issues=[],
        reflection_suggestions=[],
        tools_used=[],
        response=None,
        input_validation_error=None,
        errors=[],
        metadata={
            "query_timestamp": time.time(),
            "query_length": len(query or ""),
            "conversation_aware": bool(conversation_history),
        }
    )
