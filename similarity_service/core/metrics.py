"""
Detection run metrics and latency tracking.
"""
import time
import logging
import uuid
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
import json

logger = logging.getLogger(__name__)


@dataclass
class DetectionMetrics:
    """Metrics for a single detection run."""
    trace_id: str
    document_id: str

    # Timing breakdowns
    start_time: float = field(default_factory=time.time)
    phase_times_ms: Dict[str, float] = field(default_factory=dict)
    total_time_ms: Optional[float] = None

    # Run details
    exact_match_count: int = 0
    candidate_count: int = 0
    compared_count: int = 0
    batch_count: int = 0
    accepted_count: int = 0
    degraded_signal_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for logging."""
        return {
            "trace_id": self.trace_id,
            "document_id": self.document_id,
            "phase_times_ms": {k: round(v, 2) for k, v in self.phase_times_ms.items()},
            "total_time_ms": round(self.total_time_ms, 2) if self.total_time_ms is not None else None,
            "exact_match_count": self.exact_match_count,
            "candidate_count": self.candidate_count,
            "compared_count": self.compared_count,
            "batch_count": self.batch_count,
            "accepted_count": self.accepted_count,
            "degraded_signal_count": self.degraded_signal_count,
        }

    def emit(self, level: str = "INFO"):
        """Emit metrics as structured JSON log."""
        log_message = json.dumps(self.to_dict())
        if level == "INFO":
            logger.info(f"METRICS: {log_message}")
        elif level == "WARNING":
            logger.warning(f"METRICS: {log_message}")
        else:
            logger.error(f"METRICS: {log_message}")


class MetricsCollector:
    """Collects phase timings for one detection run."""

    def __init__(self, document_id: Any):
        self.metrics = DetectionMetrics(trace_id=str(uuid.uuid4()), document_id=str(document_id))
        self._phase_starts: Dict[str, float] = {}

    def start_phase(self, name: str):
        self._phase_starts[name] = time.time()

    def end_phase(self, name: str):
        started = self._phase_starts.pop(name, None)
        if started is not None:
            self.metrics.phase_times_ms[name] = (time.time() - started) * 1000

    def finish(self, accepted_count: int = 0) -> DetectionMetrics:
        """Finish metrics collection."""
        self.metrics.total_time_ms = (time.time() - self.metrics.start_time) * 1000
        self.metrics.accepted_count = accepted_count
        return self.metrics
