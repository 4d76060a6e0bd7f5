"""
Final pipeline step: timing and run summary.
"""
import logging
import time
from typing import List

from models.state import PathwayState

logger = logging.getLogger(__name__)

# State field each stage leaves behind when it ran
_STAGE_MARKERS = [
    ("classification", "query_kind"),
    ("context_extraction", "keywords"),
    ("planning", "tool_calls"),
    ("execution", "collected_data"),
    ("verification", "verified_data"),
    ("aggregation", "aggregated_data"),
    ("response", "response"),
]

def stages_completed(state: PathwayState) -> List[str]:
    return [stage for stage, field in _STAGE_MARKERS if state.get(field)]

async def add_telemetry(state: PathwayState, services=None) -> PathwayState:
    """
    Stamp the run summary into metadata and report it to the monitor.

    Args:
        state: The current pathway state
        services: Pipeline service bundle, its monitor is optional

    Returns:
        State with timing, attempt and stage metadata
    """
    finished_at = time.time()
    metadata = {
        **(state.get("metadata", {})),
        "finished_at": finished_at,
        "attempts": state.get("attempt", 1),
        "error_count": len(state.get("errors", [])),
        "tool_call_count": state.get("metadata", {}).get("tool_call_count", 0),
        "stages_completed": stages_completed(state),
    }
    started_at = metadata.get("query_timestamp")
    if started_at is not None:
        metadata["total_execution_time"] = finished_at - started_at

    monitor = getattr(services, "monitor", None)
    if monitor is not None:
        monitor.record_query({**state, "metadata": metadata})

    logger.debug(f"Run summary: attempts={metadata['attempts']}, errors={metadata['error_count']}, "
                 f"stages={','.join(metadata['stages_completed'])}")

    return {**state, "metadata": metadata}
