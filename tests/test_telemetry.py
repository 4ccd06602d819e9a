"""Tests for request metrics, telemetry and event logs."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from termctx.logger import EventLogger
from termctx.telemetry import MetricsRecorder, TelemetryLogger


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def finished_request(recorder, clock, outcome="ok", input_tokens=100):
    recorder.start("gpt-4.1", "agent")
    recorder.record_routing("moderate", 50, "gpt-4.1")
    clock.now += 0.01
    recorder.record_context_processing(5, 3, 400)
    clock.now += 0.02
    recorder.record_first_token()
    clock.now += 0.01
    recorder.record_first_token()
    recorder.record_token_usage(input_tokens, 20)
    clock.now += 0.06
    return recorder.finish(outcome)


class TestMetricsRecorder:

    def test_lifecycle(self):
        clock = FakeClock()
        recorder = MetricsRecorder(clock=clock)
        metrics = finished_request(recorder, clock)

        assert metrics.request_id.startswith("req_")
        assert metrics.tier == "moderate"
        assert metrics.context_processing_ms == 10.0
        assert round(metrics.first_token_ms) == 30
        assert round(metrics.total_duration_ms) == 100
        assert metrics.input_tokens == 100
        assert metrics.context_items_used == 3
        assert metrics.outcome == "ok"
        assert recorder.current is None

    def test_records_ignored_without_request(self):
        recorder = MetricsRecorder()
        recorder.record_tool_call()
        recorder.record_token_usage(1, 1)
        assert recorder.finish() is None
        assert recorder.averages() is None

    def test_tools_accumulate(self):
        recorder = MetricsRecorder()
        recorder.start("m", "agent")
        recorder.record_tool_call()
        recorder.record_tool_call()
        recorder.record_tool_execution(120)
        recorder.record_tool_execution(30)
        metrics = recorder.finish("ok")
        assert metrics.tool_call_count == 2
        assert metrics.tool_execution_ms == 150

    def test_history_bounded(self):
        clock = FakeClock()
        recorder = MetricsRecorder(max_history=3, clock=clock)
        for tokens in (10, 20, 30, 40):
            finished_request(recorder, clock, input_tokens=tokens)

        assert [m.input_tokens for m in recorder.history()] == [20, 30, 40]
        assert recorder.averages()["avg_input_tokens"] == 30


class TestTelemetryLogger:

    def test_summary(self, tmp_path):
        clock = FakeClock()
        recorder = MetricsRecorder(clock=clock)
        telemetry = TelemetryLogger(str(tmp_path / "telemetry.jsonl"))

        telemetry.log_request(finished_request(recorder, clock, "ok"))
        telemetry.log_request(finished_request(recorder, clock, "failed"))

        summary = telemetry.get_summary()
        assert summary["status"] == "ok"
        assert summary["period"]["total_requests"] == 2
        assert summary["outcomes"] == {"ok": 1, "failed": 1}
        assert summary["tiers"] == {"moderate": 2}
        assert summary["tokens"]["total_input"] == 200
        assert summary["context"]["total_context_tokens"] == 800

        assert telemetry.get_summary(last_n=1)["period"]["total_requests"] == 1

        text = telemetry.format_summary(summary)
        assert "Requests: 2" in text
        assert "failed=1, ok=1" in text

    def test_no_data(self, tmp_path):
        telemetry = TelemetryLogger(str(tmp_path / "missing.jsonl"))
        assert telemetry.get_summary()["status"] == "no_data"
        assert telemetry.format_summary() == "No telemetry data found."

    def test_percentile(self, tmp_path):
        telemetry = TelemetryLogger(str(tmp_path / "t.jsonl"))
        assert telemetry._percentile([], 50) == 0.0
        assert telemetry._percentile([1, 2, 3, 4], 50) == 2.5

    def test_clear(self, tmp_path):
        clock = FakeClock()
        telemetry = TelemetryLogger(str(tmp_path / "t.jsonl"))
        telemetry.log_request(finished_request(MetricsRecorder(clock=clock), clock))
        telemetry.clear()
        assert not (tmp_path / "t.jsonl").exists()


class TestEventLogger:

    def test_error_stats(self, tmp_path):
        logger = EventLogger(str(tmp_path))
        logger.log_error("history_summary", RuntimeError("down"), fallback="extractive")
        logger.log_error("history_summary", TimeoutError())
        logger.log_error("smart_context", ValueError("bad"), fallback="ranker")

        stats = logger.get_error_stats()
        assert stats["total_errors"] == 3
        assert stats["errors_by_stage"] == {"history_summary": 2, "smart_context": 1}

        first = logger.read_events("errors.jsonl")[0]
        assert first["error_type"] == "RuntimeError"
        assert first["message"] == "down"

    def test_cache_key_truncated(self, tmp_path):
        logger = EventLogger(str(tmp_path))
        logger.log_cache("hit", "k" * 80, entries=2)
        entry = logger.read_events("cache.jsonl")[0]
        assert len(entry["key"]) == 50
        assert entry["entries"] == 2

    def test_missing_file(self, tmp_path):
        assert EventLogger(str(tmp_path)).read_events("routing.jsonl") == []
