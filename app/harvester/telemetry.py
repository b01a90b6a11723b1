"""Run telemetry for harvest runs."""

from __future__ import annotations

import os
import time
import uuid
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config
from .utils import save_json_file

MAX_EXPORTS = int(os.environ.get("EXPORTS_KEEP_MAX", "5"))


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S")


class RunTelemetry:
    """Collect per-run outcomes (rows, combinations, profiles) for the run report."""

    def __init__(self, task: str, *, runs_dir: Optional[Path] = None) -> None:
        self.run_id = f"{_ts()}_{uuid.uuid4().hex[:8]}"
        self.task = task
        self.started_at = time.time()
        self.entries: List[Dict[str, Any]] = []
        self.summary: Dict[str, int] = defaultdict(int)
        self.runs_dir = Path(runs_dir or config.RUNS_DIR)

    def add(self, status: str, reason: str, meta: Optional[Dict[str, Any]] = None) -> None:
        self.entries.append({"status": status, "reason": reason, **(meta or {})})
        self.summary[f"count_{status}"] += 1

    def count(self, status: str) -> int:
        return self.summary.get(f"count_{status}", 0)

    def finalize(self, extra: Optional[Dict[str, Any]] = None) -> Path:
        payload = {
            "run_id": self.run_id,
            "task": self.task,
            "started_at": self.started_at,
            "ended_at": time.time(),
            "summary": dict(self.summary),
            "entries": self.entries,
            **(extra or {}),
        }
        path = self.runs_dir / f"run_{self.run_id}.json"
        save_json_file(path, payload)
        return path


def prune_old_exports(exports_dir: Optional[Path] = None, keep: int = MAX_EXPORTS) -> None:
    directory = Path(exports_dir or config.EXPORTS_DIR)
    if not directory.exists():
        return
    files = sorted(directory.glob("*.xlsx"))
    while len(files) > keep:
        old = files.pop(0)
        try:
            old.unlink()
        except OSError:
            continue


__all__ = ["RunTelemetry", "prune_old_exports"]
