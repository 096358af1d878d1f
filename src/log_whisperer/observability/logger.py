from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

_log = logging.getLogger("log_whisperer.events")


class EventLogger:
    """Diagnostics event sink.

    Every event goes to the ``log_whisperer.events`` logger at DEBUG level; if a
    path is configured it is also appended there as one JSON object per line.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        analysis_id: Optional[str] = None,
        enabled: bool = True,
    ) -> None:
        self.enabled = enabled
        self.analysis_id = analysis_id
        self.path = Path(path) if path else None
        if self.path and self.enabled:
            self.path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> "EventLogger":
        conf = settings.get("observability", {}) or {}
        return cls(path=conf.get("event_log_path"), enabled=conf.get("enabled", True))

    def set_analysis_id(self, analysis_id: Optional[str]) -> None:
        self.analysis_id = analysis_id

    def log(self, event_type: str, **fields: Any) -> None:
        if not self.enabled:
            return
        event: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "event_type": event_type,
        }
        if self.analysis_id:
            event["analysis_id"] = self.analysis_id
        event.update(fields)
        line = json.dumps(event, ensure_ascii=True, default=str)
        _log.debug(line)
        if self.path is None:
            return
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line)
            handle.write("\n")

    def stage_start(self, stage: str, **fields: Any) -> None:
        self.log("stage.start", stage=stage, **fields)

    def stage_end(self, stage: str, status: str = "ok", **fields: Any) -> None:
        self.log("stage.end", stage=stage, status=status, **fields)
