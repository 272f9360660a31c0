"""Unit tests for detection metrics."""
import json
import logging
import time

import pytest

from similarity_service.core.metrics import MetricsCollector


@pytest.mark.unit
class TestMetricsCollector:

    def test_initialization(self):
        collector = MetricsCollector("doc-1")

        assert collector.metrics.document_id == "doc-1"
        assert collector.metrics.trace_id
        assert collector.metrics.phase_times_ms == {}

    def test_phase_timing(self):
        collector = MetricsCollector("doc-1")

        collector.start_phase("compare")
        time.sleep(0.01)
        collector.end_phase("compare")

        assert collector.metrics.phase_times_ms["compare"] > 0

    def test_end_without_start_is_ignored(self):
        collector = MetricsCollector("doc-1")
        collector.end_phase("persist")
        assert "persist" not in collector.metrics.phase_times_ms

    def test_finish(self):
        collector = MetricsCollector("doc-1")
        collector.metrics.candidate_count = 40

        metrics = collector.finish(accepted_count=3)

        assert metrics.accepted_count == 3
        assert metrics.total_time_ms is not None
        assert metrics.to_dict()["candidate_count"] == 40

    def test_emit_logs_json(self, caplog):
        collector = MetricsCollector("doc-1")
        metrics = collector.finish(accepted_count=1)

        with caplog.at_level(logging.INFO, logger="similarity_service.core.metrics"):
            metrics.emit()

        line = next(r.message for r in caplog.records if r.message.startswith("METRICS: "))
        payload = json.loads(line[len("METRICS: "):])
        assert payload["document_id"] == "doc-1"
        assert payload["accepted_count"] == 1
