"""
In-process metrics for pathway runs.
"""
import logging
import time
from collections import Counter
from typing import Dict, Any

logger = logging.getLogger(__name__)

def _running_mean(mean: float, count: int, value: float) -> float:
    return mean + (value - mean) / count

class PathwaySystemMonitor:
    """Aggregates per-run telemetry into health figures for the API."""

    def __init__(self):
        self.queries_processed = 0
        self.runs_with_errors = 0
        self.retrieval_runs = 0
        self.avg_response_time = 0.0
        self.avg_attempts = 0.0
        self.avg_quality_score = 0.0
        self.query_kinds = Counter()
        self.attempt_counts = Counter()
        self.tool_usage = Counter()
        self.hourly_query_count = Counter()

    def record_query(self, state: Dict[str, Any]):
        """
        Record one finished pipeline run.

        Args:
            state: Final pipeline state with telemetry metadata
        """
        self.queries_processed += 1
        execution_time = state.get("metadata", {}).get("total_execution_time", 0.0)
        self.avg_response_time = _running_mean(self.avg_response_time, self.queries_processed, execution_time)

        if state.get("errors"):
            self.runs_with_errors += 1

        kind = state.get("query_kind") or "unknown"
        self.query_kinds[kind] += 1
        self.hourly_query_count[time.strftime("%Y-%m-%d-%H")] += 1

        # Attempts and quality only mean something for retrieval runs
        if state.get("needs_retrieval"):
            attempts = state.get("attempt", 1)
            self.retrieval_runs += 1
            self.attempt_counts[attempts] += 1
            self.tool_usage.update(state.get("tools_used", []))
            self.avg_attempts = _running_mean(self.avg_attempts, self.retrieval_runs, attempts)
            self.avg_quality_score = _running_mean(
                self.avg_quality_score, self.retrieval_runs, state.get("quality_score", 0)
            )

        logger.debug(f"Recorded {kind} run in {execution_time:.2f}s")

    def get_system_health(self) -> Dict[str, Any]:
        """Current health figures, JSON-serializable."""
        return {
            "queries_processed": self.queries_processed,
            "retrieval_queries": self.retrieval_runs,
            "error_rate": self.runs_with_errors / max(1, self.queries_processed),
            "query_kind_distribution": dict(self.query_kinds),
            "attempt_distribution": {str(attempts): count for attempts, count in sorted(self.attempt_counts.items())},
            "tool_usage": dict(self.tool_usage),
            "avg_response_time": self.avg_response_time,
            "avg_attempts": self.avg_attempts,
            "avg_quality_score": self.avg_quality_score,
            "hourly_query_count": dict(self.hourly_query_count),
        }
