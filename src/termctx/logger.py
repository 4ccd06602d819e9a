"""
Event logging for context selection and routing.
"""

from pathlib import Path
from typing import Optional, Any, List, Dict
import json
from datetime import datetime


class EventLogger:
    """
    Logs context engine activities to JSONL files.

    Files:
    - routing.jsonl: Routing decisions and prompt enhancements
    - cache.jsonl: Context cache hits, misses and evictions
    - history.jsonl: Conversation window preparation and summaries
    - streaming.jsonl: Streaming buffer statistics
    - errors.jsonl: Downgraded and boundary errors
    """

    def __init__(self, log_path: str = "./logs/termctx/"):
        """
        Initialize logger.

        Args:
            log_path: Path to log directory
        """
        self.log_path = Path(log_path)
        self.log_path.mkdir(parents=True, exist_ok=True)

    def _log(self, file: str, entry: dict):
        """Write a log entry to file."""
        log_file = self.log_path / file
        entry["timestamp"] = datetime.now().isoformat()
        with open(log_file, "a") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    def log_routing(self, decision, query_type: Optional[str] = None):
        """Log a routing decision."""
        reasoning = decision.reasoning
        self._log("routing.jsonl", {
            "event": "routing_decision",
            "tier": decision.tier,
            "complexity": decision.complexity,
            "model": decision.model,
            "score": reasoning.score if reasoning else None,
            "query_type": reasoning.query_type if reasoning else query_type,
            "context_budget": decision.context_budget,
            "temperature": decision.temperature,
            "fallback_used": decision.fallback_used,
            "original_tier": decision.original_tier,
            "auto_routed": decision.auto_routed,
            "factors": [
                f"{f.name}:{f.value}" for f in (reasoning.factors if reasoning else [])
            ],
        })

    def log_enhancement(self, enhancement):
        """Log a prompt enhancement."""
        self._log("routing.jsonl", {
            "event": "prompt_enhanced",
            "pattern": enhancement.pattern,
            "reason": enhancement.reason,
            "original": enhancement.original[:200],
            "enhanced": enhancement.enhanced[:200],
        })

    def log_cache(self, event: str, key: str = "", **kwargs):
        """Log a context cache event."""
        self._log("cache.jsonl", {
            "event": event,
            "key": key[:50],
            **kwargs,
        })

    def log_history(
        self,
        original_count: int,
        recent_count: int,
        tokens_saved: int,
        summary_source: Optional[str] = None,
    ):
        """Log a prepared conversation window."""
        self._log("history.jsonl", {
            "event": "history_prepared",
            "original_count": original_count,
            "recent_count": recent_count,
            "tokens_saved": tokens_saved,
            "summary_source": summary_source,
        })

    def log_stream_stats(self, stats: dict):
        """Log streaming buffer statistics."""
        self._log("streaming.jsonl", {
            "event": "stream_finalized",
            **stats,
        })

    def log_error(self, stage: str, error: BaseException, fallback: Optional[str] = None):
        """Log an error that was downgraded or caught at a boundary."""
        self._log("errors.jsonl", {
            "event": "error",
            "stage": stage,
            "error_type": type(error).__name__,
            "message": str(error),
            "fallback": fallback,
        })

    def log_activity(self, activity: str, **kwargs):
        """Log a generic activity."""
        self._log("activity.jsonl", {
            "event": activity,
            **kwargs
        })

    def read_events(self, file: str, hours: Optional[int] = None) -> List[Dict[str, Any]]:
        """Read entries from a log file, optionally limited to the last N hours."""
        log_file = self.log_path / file
        if not log_file.exists():
            return []

        since = datetime.now().timestamp() - hours * 3600 if hours else None
        entries = []
        with open(log_file) as f:
            for line in f:
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if since is not None:
                    ts = datetime.fromisoformat(entry["timestamp"]).timestamp()
                    if ts <= since:
                        continue
                entries.append(entry)
        return entries

    def get_error_stats(self, hours: int = 24) -> dict:
        """Get error counts by stage for the last N hours."""
        by_stage: Dict[str, int] = {}
        entries = self.read_events("errors.jsonl", hours=hours)
        for entry in entries:
            stage = entry.get("stage", "unknown")
            by_stage[stage] = by_stage.get(stage, 0) + 1
        return {
            "total_errors": len(entries),
            "errors_by_stage": by_stage,
        }
