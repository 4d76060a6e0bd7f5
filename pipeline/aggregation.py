"""
Aggregation component for the pathway pipeline.
"""
import logging

from models.pathway import AggregatedData, CollectedData
from models.state import PathwayState

logger = logging.getLogger(__name__)

async def aggregate(state: PathwayState, services) -> PathwayState:
    """
    Consolidates the accepted attempt's verified data.

    Args:
        state: The current pathway state
        services: Pipeline service bundle

    Returns:
        Updated state with aggregated data
    """
    verified = CollectedData.model_validate(state.get("verified_data") or {})
    errors = list(state.get("errors", []))

    try:
        aggregated = await services.aggregator.aggregate(verified)
    except Exception as e:
        logger.error(f"Aggregation failed: {str(e)}")
        errors.append(f"Aggregation failed: {str(e)}")
        aggregated = AggregatedData()

    logger.info(f"Aggregated: {len(aggregated.school_programs)} HS, {len(aggregated.college_programs)} college, "
                f"{len(aggregated.careers)} careers")

    return {
        **state,
        "aggregated_data": aggregated.model_dump(),
        "errors": errors,
    }
