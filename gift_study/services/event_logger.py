"""
Experiment Event Logger
Appends each lifecycle event of an experiment to its own JSON Lines file,
as an audit trail kept next to (not inside) the database.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


logger = logging.getLogger(__name__)

# Keys whose values never reach the event files
REDACTED_KEYS = {'phone'}


class ExperimentEventLogger:
    """Per-experiment event files under `output_dir`. Disabled when output_dir is empty."""

    def __init__(self, output_dir: Optional[str] = "experiment_logs"):
        self.enabled = bool(output_dir)
        self.output_dir = Path(output_dir) if output_dir else None
        self._lock = threading.Lock()
        if self.enabled:
            self.output_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, experiment_id: str) -> Path:
        return self.output_dir / f"experiment_{experiment_id}.jsonl"

    def log_event(self, experiment_id: str, event: str, **details: Any) -> None:
        """Append one event. Write failures are logged and never interrupt the request."""
        if not self.enabled:
            return
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "experiment_id": experiment_id,
            "event": event,
            "details": self._sanitize(details),
        }
        try:
            with self._lock, open(self._path(experiment_id), 'a', encoding='utf-8') as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
        except OSError as e:
            logger.warning("Could not write event %s for %s: %s", event, experiment_id, e)

    def read_events(self, experiment_id: str) -> List[Dict[str, Any]]:
        if not self.enabled:
            return []
        path = self._path(experiment_id)
        if not path.exists():
            return []
        events = []
        with open(path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning("Skipping corrupt event line in %s", path)
        return events

    def summarize(self, experiment_id: str) -> Dict[str, Any]:
        """Event counts and first/last timestamps for one experiment."""
        events = self.read_events(experiment_id)
        if not events:
            return {}
        counts: Dict[str, int] = {}
        for e in events:
            counts[e["event"]] = counts.get(e["event"], 0) + 1
        return {
            "experiment_id": experiment_id,
            "total_events": len(events),
            "event_counts": counts,
            "first_event_at": events[0]["timestamp"],
            "last_event_at": events[-1]["timestamp"],
        }

    def _sanitize(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: ("[REDACTED]" if k in REDACTED_KEYS else self._sanitize(v))
                    for k, v in data.items()}
        if isinstance(data, list):
            return [self._sanitize(v) for v in data]
        return data
