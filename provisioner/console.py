import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from provisioner.core.config import settings


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def log_json(obj: Dict[str, Any]) -> None:
    # One JSON object per line so log collectors parse it as a structured entry.
    try:
        print(json.dumps(obj, default=str), flush=True)
    except Exception:
        print(str(obj), flush=True)


class Console:
    """
    Step progress output for a bootstrap run.

    text: "[3/12] Link billing account" followed by ✅ / ℹ️ / ⚠️ lines
    json: {"severity": ..., "message": ..., "step": ...} per event
    """

    _GLYPHS = {"INFO": "ℹ️ ", "NOTICE": "✅", "WARNING": "⚠️ ", "ERROR": "❌"}

    def __init__(self, log_format: Optional[str] = None, total_steps: int = 0) -> None:
        self.log_format = (log_format or settings.log_format).lower()
        self.total_steps = total_steps
        self._index = 0
        self._label: Optional[str] = None

    def step(self, label: str) -> None:
        self._index += 1
        self._label = label
        if self.log_format == "json":
            self._emit("INFO", "step.start", index=self._index, total=self.total_steps)
            return
        print(f"\n[{self._index}/{self.total_steps}] {label}", flush=True)

    def ok(self, message: str, **fields: Any) -> None:
        self._emit("NOTICE", message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit("INFO", message, **fields)

    def warn(self, message: str, **fields: Any) -> None:
        self._emit("WARNING", message, **fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit("ERROR", message, **fields)

    def _emit(self, severity: str, message: str, **fields: Any) -> None:
        if self.log_format == "json":
            entry: Dict[str, Any] = {"severity": severity, "message": message, "step": self._label, "utc": now_utc()}
            entry.update(fields)
            log_json(entry)
            return

        stream = sys.stderr if severity == "ERROR" else sys.stdout
        print(f"  {self._GLYPHS.get(severity, '-')} {message}", file=stream, flush=True)
        output = fields.get("output")
        if output:
            for line in str(output).strip().splitlines():
                print(f"      {line}", file=stream, flush=True)
