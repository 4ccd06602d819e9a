"""Per-request metrics and telemetry logging."""

import json
import time
import uuid
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import datetime
from pathlib import Path
from statistics import mean
from typing import Any, Callable, Dict, List, Optional


@dataclass
class RequestMetrics:
    """Metrics for a single model request."""
    request_id: str
    model: str
    mode: str
    start_time: float  # Clock reading, not wall time

    # Timing (ms since start)
    context_processing_ms: Optional[float] = None
    first_token_ms: Optional[float] = None
    total_duration_ms: Optional[float] = None

    # Tokens
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    cached_tokens: Optional[int] = None

    # Context selection
    context_items_considered: int = 0
    context_items_used: int = 0
    context_tokens: Optional[int] = None

    # Tools
    tool_call_count: int = 0
    tool_execution_ms: Optional[float] = None

    # Routing and outcome
    tier: Optional[str] = None
    complexity_score: Optional[int] = None  # Raw 0-100 routing score
    outcome: Optional[str] = None  # ok, cancelled, failed
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())


class MetricsRecorder:
    """
    Tracks the in-flight request and a bounded history of finished ones.

    Every record_* call is a no-op when no request is in flight.
    """

    def __init__(self, max_history: int = 50, clock: Callable[[], float] = time.monotonic):
        self.max_history = max_history
        self.clock = clock
        self.current: Optional[RequestMetrics] = None
        self._history: deque = deque(maxlen=max_history)

    def start(self, model: str, mode: str) -> str:
        """Begin tracking a request. Returns its id."""
        request_id = f"req_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
        self.current = RequestMetrics(
            request_id=request_id,
            model=model,
            mode=mode,
            start_time=self.clock(),
        )
        return request_id

    def _elapsed_ms(self) -> float:
        return (self.clock() - self.current.start_time) * 1000

    def record_routing(self, tier: str, complexity_score: Optional[int], model: Optional[str] = None):
        if not self.current:
            return
        self.current.tier = tier
        self.current.complexity_score = complexity_score
        if model:
            self.current.model = model

    def record_context_processing(self, considered: int, used: int, tokens: Optional[int] = None):
        if not self.current:
            return
        self.current.context_processing_ms = self._elapsed_ms()
        self.current.context_items_considered = considered
        self.current.context_items_used = used
        self.current.context_tokens = tokens

    def record_first_token(self):
        if not self.current or self.current.first_token_ms is not None:
            return
        self.current.first_token_ms = self._elapsed_ms()

    def record_tool_call(self):
        if not self.current:
            return
        self.current.tool_call_count += 1

    def record_tool_execution(self, duration_ms: float):
        if not self.current:
            return
        self.current.tool_execution_ms = (self.current.tool_execution_ms or 0) + duration_ms

    def record_token_usage(self, input_tokens: int, output_tokens: int, cached: Optional[int] = None):
        if not self.current:
            return
        self.current.input_tokens = (self.current.input_tokens or 0) + input_tokens
        self.current.output_tokens = (self.current.output_tokens or 0) + output_tokens
        if cached is not None:
            self.current.cached_tokens = (self.current.cached_tokens or 0) + cached

    def finish(self, outcome: Optional[str] = None) -> Optional[RequestMetrics]:
        """Close the in-flight request and move it into history."""
        if not self.current:
            return None
        metrics = self.current
        metrics.total_duration_ms = self._elapsed_ms()
        metrics.outcome = outcome
        self._history.append(metrics)
        self.current = None
        return metrics

    def history(self) -> List[RequestMetrics]:
        return list(self._history)

    def averages(self) -> Optional[Dict[str, float]]:
        """Mean timings and token counts over the history, None if empty."""
        if not self._history:
            return None
        history = list(self._history)
        return {
            "avg_context_processing_ms": mean(m.context_processing_ms or 0 for m in history),
            "avg_first_token_ms": mean(m.first_token_ms or 0 for m in history),
            "avg_total_duration_ms": mean(m.total_duration_ms or 0 for m in history),
            "avg_input_tokens": mean(m.input_tokens or 0 for m in history),
            "avg_output_tokens": mean(m.output_tokens or 0 for m in history),
            "avg_cached_tokens": mean(m.cached_tokens or 0 for m in history),
            "avg_tool_calls": mean(m.tool_call_count for m in history),
        }


class TelemetryLogger:
    """
    Logs finished request metrics as JSONL for offline analysis.
    """

    def __init__(
        self,
        log_path: str = "./termctx-telemetry.jsonl",
        max_file_size_mb: int = 50
    ):
        """
        Initialize telemetry logger.

        Args:
            log_path: Path to JSONL log file
            max_file_size_mb: Rotate file when it exceeds this size
        """
        self.log_path = Path(log_path)
        self.max_file_size = max_file_size_mb * 1024 * 1024

    def log_request(self, metrics: RequestMetrics):
        """Append one finished request."""
        self._maybe_rotate()

        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_path, "a") as f:
            entry = {
                "type": "request",
                "timestamp": datetime.now().isoformat(),
                **asdict(metrics)
            }
            f.write(json.dumps(entry) + "\n")

    def get_summary(
        self,
        since: Optional[str] = None,
        last_n: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Get summary statistics.

        Args:
            since: ISO timestamp to filter from
            last_n: Only include last N requests

        Returns:
            Summary dict
        """
        requests = [e for e in self._read_entries(since) if e.get("type") == "request"]
        if last_n:
            requests = requests[-last_n:]

        if not requests:
            return {
                "status": "no_data",
                "message": "No telemetry data found for the specified filters"
            }

        durations = [r.get("total_duration_ms") or 0 for r in requests]
        outcomes: Dict[str, int] = {}
        tiers: Dict[str, int] = {}
        for r in requests:
            outcome = r.get("outcome") or "unknown"
            outcomes[outcome] = outcomes.get(outcome, 0) + 1
            tier = r.get("tier") or "unrouted"
            tiers[tier] = tiers.get(tier, 0) + 1

        return {
            "status": "ok",
            "period": {
                "start": requests[0]["timestamp"],
                "end": requests[-1]["timestamp"],
                "total_requests": len(requests)
            },
            "outcomes": outcomes,
            "tiers": tiers,
            "context": {
                "avg_items_considered": mean(r.get("context_items_considered") or 0 for r in requests),
                "avg_items_used": mean(r.get("context_items_used") or 0 for r in requests),
                "total_context_tokens": sum(r.get("context_tokens") or 0 for r in requests),
            },
            "tokens": {
                "total_input": sum(r.get("input_tokens") or 0 for r in requests),
                "total_output": sum(r.get("output_tokens") or 0 for r in requests),
            },
            "performance": {
                "avg_duration_ms": mean(durations),
                "p50_duration_ms": self._percentile(durations, 50),
                "p95_duration_ms": self._percentile(durations, 95),
                "max_duration_ms": max(durations)
            }
        }

    def format_summary(self, summary: Optional[Dict] = None, **kwargs) -> str:
        """Format summary as human-readable text."""
        if summary is None:
            summary = self.get_summary(**kwargs)

        if summary.get("status") == "no_data":
            return "No telemetry data found."

        c = summary["context"]
        t = summary["tokens"]
        p = summary["performance"]
        outcomes = ", ".join(f"{k}={v}" for k, v in sorted(summary["outcomes"].items()))
        tiers = ", ".join(f"{k}={v}" for k, v in sorted(summary["tiers"].items()))

        return f"""termctx Request Summary
{'=' * 40}

Period:   {summary['period']['start'][:10]} to {summary['period']['end'][:10]}
Requests: {summary['period']['total_requests']}
Outcomes: {outcomes}
Tiers:    {tiers}

Context:
  Avg considered:   {c['avg_items_considered']:.1f}
  Avg used:         {c['avg_items_used']:.1f}
  Context tokens:   {c['total_context_tokens']:,}

Tokens:
  Input:            {t['total_input']:,}
  Output:           {t['total_output']:,}

Latency:
  Average:          {p['avg_duration_ms']:.1f}ms
  P95:              {p['p95_duration_ms']:.1f}ms
  Max:              {p['max_duration_ms']:.1f}ms
"""

    def _read_entries(self, since: Optional[str] = None) -> List[Dict]:
        if not self.log_path.exists():
            return []

        entries = []
        with open(self.log_path, "r") as f:
            for line in f:
                try:
                    entry = json.loads(line.strip())
                except json.JSONDecodeError:
                    continue
                if since and entry.get("timestamp", "") < since:
                    continue
                entries.append(entry)
        return entries

    def _maybe_rotate(self):
        """Rotate log file if too large."""
        if not self.log_path.exists():
            return

        if self.log_path.stat().st_size > self.max_file_size:
            old_path = self.log_path.with_suffix(".old.jsonl")
            if old_path.exists():
                old_path.unlink()
            self.log_path.rename(old_path)

    def _percentile(self, data: List[float], p: float) -> float:
        if not data:
            return 0.0
        sorted_data = sorted(data)
        k = (len(sorted_data) - 1) * (p / 100)
        f = int(k)
        c = f + 1 if f + 1 < len(sorted_data) else f
        return sorted_data[f] + (k - f) * (sorted_data[c] - sorted_data[f])

    def clear(self):
        """Clear telemetry log."""
        if self.log_path.exists():
            self.log_path.unlink()
