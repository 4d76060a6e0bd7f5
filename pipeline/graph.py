"""
Graph structure for the LangGraph pathway pipeline.
"""
import logging
from langgraph.graph import StateGraph, END

from models.state import PathwayState
from pipeline.input_validation import validate_input, handle_validation_error, has_validation_error
from pipeline.intent_classification import classify_query, route_by_retrieval
from pipeline.context_extraction import extract_context
from pipeline.tool_planning import plan_tools
from pipeline.tool_execution import execute_tools
from pipeline.result_verification import verify_results
from pipeline.reflection import reflect, should_retry, enhance_strategy, after_enhancement
from pipeline.aggregation import aggregate
from pipeline.response_generation import format_response, converse
from pipeline.telemetry import add_telemetry

logger = logging.getLogger(__name__)

# A full three-attempt run takes 22 steps
RECURSION_LIMIT = 50

def _bind(node, services):
    """Give a node access to the service bundle."""
    async def run(state: PathwayState) -> PathwayState:
        return await node(state, services)
    run.__name__ = node.__name__
    return run

def build_pathway_graph(services):
    """
    Create the LangGraph for the pathway pipeline.

    Args:
        services: PipelineServices bundle shared by every node

    Returns:
        The compiled graph
    """
    graph = StateGraph(PathwayState)

    # Add all nodes
    graph.add_node("validate_input", _bind(validate_input, services))
    graph.add_node("handle_validation_error", _bind(handle_validation_error, services))
    graph.add_node("classify_query", _bind(classify_query, services))
    graph.add_node("converse", _bind(converse, services))
    graph.add_node("extract_context", _bind(extract_context, services))
    graph.add_node("plan_tools", _bind(plan_tools, services))
    graph.add_node("execute_tools", _bind(execute_tools, services))
    graph.add_node("verify_results", _bind(verify_results, services))
    graph.add_node("reflect", _bind(reflect, services))
    graph.add_node("enhance_strategy", _bind(enhance_strategy, services))
    graph.add_node("aggregate", _bind(aggregate, services))
    graph.add_node("format_response", _bind(format_response, services))
    graph.add_node("add_telemetry", _bind(add_telemetry, services))

    # Input validation routing
    graph.add_conditional_edges(
        "validate_input",
        has_validation_error,
        {True: "handle_validation_error", False: "classify_query"}
    )

    # Retrieval vs conversational routing
    graph.add_conditional_edges(
        "classify_query",
        route_by_retrieval,
        {"extract_context": "extract_context", "converse": "converse"}
    )

    # One attempt
    graph.add_edge("extract_context", "plan_tools")
    graph.add_edge("plan_tools", "execute_tools")
    graph.add_edge("execute_tools", "verify_results")
    graph.add_edge("verify_results", "reflect")

    # Bounded retry loop
    graph.add_conditional_edges(
        "reflect",
        lambda state: should_retry(state, services.max_attempts),
        {"retry": "enhance_strategy", "accept": "aggregate"}
    )
    graph.add_conditional_edges(
        "enhance_strategy",
        after_enhancement,
        {"extract_context": "extract_context", "aggregate": "aggregate"}
    )

    graph.add_edge("aggregate", "format_response")

    # Connect all endpoints to telemetry
    graph.add_edge("handle_validation_error", "add_telemetry")
    graph.add_edge("converse", "add_telemetry")
    graph.add_edge("format_response", "add_telemetry")
    graph.add_edge("add_telemetry", END)

    graph.set_entry_point("validate_input")

    logger.info("Pathway pipeline graph built successfully")
    return graph.compile()
