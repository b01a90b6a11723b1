from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from flask import Flask, Response, jsonify, request, send_file

from app.harvester import config
from app.harvester.config_validation import validate_runtime_config
from app.harvester.export import export_latest_run_to_excel
from app.harvester.healthcheck import run_health_checks
from app.harvester.logging_utils import _harvest_event
from app.harvester.run import run_task
from app.harvester.tasks import parse_task
from app.harvester.utils import ensure_dirs, get_current_log_path, load_json_file, log_line

app = Flask(__name__)
app.secret_key = os.environ.get("SECRET_KEY", "dev-secret-change-me")

# Runs share one output tree and one browser profile; only one at a time.
_RUN_LOCK = threading.Lock()

ensure_dirs()


def _optional_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    return int(value)


def _latest_log_path() -> Path:
    summary = load_json_file(config.SUMMARY_FILE) or {}
    log_path = summary.get("log_path")
    if log_path and Path(log_path).exists():
        return Path(log_path)
    return get_current_log_path()


def _read_last_log_lines(limit: int = 150) -> list[str]:
    """Return the trailing ``limit`` lines of the most recent log file."""

    path = _latest_log_path()
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as handle:
        lines = handle.readlines()[-limit:]
    return [line.rstrip("\n") for line in lines]


@app.get("/api/health")
def api_health() -> Response:
    """Return a JSON health summary for configuration, filesystem and browser."""

    result = run_health_checks(entrypoint="ui")
    status = 200 if result.ok else 503
    return jsonify({"ok": result.ok, "checks": result.checks}), status


@app.post("/api/runs")
def api_start_run() -> Response:
    """Start a harvest task in a background thread."""

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    try:
        spec = parse_task(payload.get("task"))
        start_page = _optional_int(payload.get("start_page")) or 1
        end_page = _optional_int(payload.get("end_page"))
        validate_runtime_config("ui", task=spec.command, start_page=start_page, end_page=end_page)
    except ValueError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 400

    if not _RUN_LOCK.acquire(blocking=False):
        return jsonify({"ok": False, "error": "a run is already in progress"}), 409

    companies = payload.get("companies")
    projects = payload.get("projects")

    def _run() -> None:
        try:
            summary = run_task(
                spec.command,
                companies=companies,
                projects=projects,
                start_page=start_page,
                end_page=end_page,
                trigger="ui",
                entrypoint="ui",
            )
            app.config["LAST_SUMMARY"] = summary
        except Exception as exc:  # noqa: BLE001
            log_line(f"[RUN][ERROR] Harvest thread failed: {exc}")
        finally:
            _RUN_LOCK.release()

    thread = threading.Thread(target=_run, daemon=True)
    app.config["RUN_THREAD"] = thread
    thread.start()
    _harvest_event("run", step="queued", task=spec.command, trigger="ui")
    return jsonify({"ok": True, "task": spec.command}), 202


@app.get("/api/runs/latest")
def api_runs_latest() -> Response:
    summary = load_json_file(config.SUMMARY_FILE)
    if not summary:
        return jsonify({"ok": False, "error": "no runs"}), 404
    return jsonify({"ok": True, "running": _RUN_LOCK.locked(), "run": summary})


@app.get("/api/logs")
def api_logs() -> Response:
    try:
        limit = max(1, min(int(request.args.get("limit", 150)), 2000))
    except ValueError:
        limit = 150
    return jsonify({"ok": True, "lines": _read_last_log_lines(limit)})


@app.get("/api/exports/latest.xlsx")
def api_export_latest_xlsx() -> Response:
    try:
        path = export_latest_run_to_excel()
    except FileNotFoundError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 404
    return send_file(path, as_attachment=True, download_name=path.name)
