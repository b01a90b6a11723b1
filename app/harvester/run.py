"""Run entrypoints for the Assectra harvester.

``run_task`` executes one ``<system>:<entity>:<task>`` command end to end:

- open a per-run log file and validate the runtime configuration;
- load the company / project filter lists;
- launch Chromium, log into Assectra and dispatch to the task;
- write ``last_summary.json`` and the run telemetry JSON.

On a fatal error a screenshot of the page is saved next to the summary
before the exception is re-raised. The CLI (``portal-harvest``) and the
Flask control app both call ``run_task``.
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from . import config
from .auth import assectra_login
from .config_validation import Entrypoint, validate_runtime_config
from .filter_lists import load_filter_lists
from .logging_utils import _harvest_event
from .orchestrator import harvest_documents
from .profiles import harvest_profiles
from .session import launch_session
from .tasks import TASKS, parse_task
from .telemetry import RunTelemetry
from .utils import log_line, run_log_context, save_json_file, write_debug_artifact


def _short_error_message(exc: BaseException, limit: int = 300) -> str:
    message = f"{type(exc).__name__}: {exc}"
    return message if len(message) <= limit else message[: limit - 3] + "..."


def _serialise_result(result: Dict[str, Any]) -> Dict[str, Any]:
    payload = dict(result)
    if "results" in payload:
        payload["results"] = [item.as_dict() for item in payload["results"]]
    return payload


def run_task(
    command: str,
    *,
    companies: Optional[Sequence[str]] = None,
    projects: Optional[Sequence[str]] = None,
    companies_file: Optional[Path] = None,
    projects_file: Optional[Path] = None,
    start_page: int = 1,
    end_page: Optional[int] = None,
    output_dir: Optional[Path] = None,
    headless: Optional[bool] = None,
    trigger: str = "cli",
    entrypoint: Entrypoint = "cli",
) -> Dict[str, Any]:
    """Run one harvest task and return its summary."""

    spec = parse_task(command)
    base = Path(output_dir or config.OUTPUT_DIR)
    summary_path = base / config.SUMMARY_FILE.name

    with run_log_context(base / "logs") as log_path:
        validate_runtime_config(
            entrypoint, task=spec.command, start_page=start_page, end_page=end_page
        )

        if companies is None or (spec.needs_projects and projects is None):
            loaded_companies, loaded_projects = load_filter_lists(companies_file, projects_file)
            companies = companies if companies is not None else loaded_companies
            projects = projects if projects is not None else loaded_projects
        companies = list(companies)
        projects = list(projects or [])

        output_root = config.output_root_for(spec.output_dir_name, base)
        telemetry = RunTelemetry(spec.command, runs_dir=base / "runs")
        summary: Dict[str, Any] = {
            "run_id": telemetry.run_id,
            "task": spec.command,
            "trigger": trigger,
            "started_at": time.time(),
            "log_path": str(log_path),
            "output_root": str(output_root),
            "companies": companies,
            "projects": projects if spec.needs_projects else [],
            "start_page": start_page,
            "end_page": end_page,
        }
        log_line(f"Running task: {spec.command} (trigger={trigger})")
        if start_page > 1:
            log_line(f"Starting from page: {start_page}")
        _harvest_event("run", step="start", task=spec.command, trigger=trigger, run_id=telemetry.run_id)

        with launch_session(headless=headless) as session:
            try:
                assectra_login(session, output_root=base)
                if spec.screen is not None:
                    result = harvest_documents(
                        session,
                        companies,
                        projects,
                        screen=spec.screen,
                        output_root=output_root,
                        start_page=start_page,
                        end_page=end_page,
                        telemetry=telemetry,
                    )
                else:
                    result = harvest_profiles(
                        session, companies, output_root=output_root, telemetry=telemetry
                    )
            except Exception as exc:
                log_line(f"[RUN][ERROR] Task {spec.command} failed: {exc!r}")
                _harvest_event("error", phase="run", task=spec.command, error=_short_error_message(exc))
                saved = write_debug_artifact(session, base, "error_screenshot")
                if saved:
                    log_line(f"Error screenshot saved to {saved[0]}")
                summary.update(status="failed", error=_short_error_message(exc), ended_at=time.time())
                summary["telemetry_path"] = str(telemetry.finalize({"status": "failed"}))
                save_json_file(summary_path, summary)
                raise

        summary.update(_serialise_result(result))
        summary.update(status="completed", ended_at=time.time())
        summary["telemetry_path"] = str(telemetry.finalize({"status": "completed"}))
        save_json_file(summary_path, summary)
        log_line("Process finished.")
        _harvest_event("run", step="finished", task=spec.command, run_id=telemetry.run_id)
        return summary


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portal-harvest", description="Harvest documents and profiles from Assectra"
    )
    parser.add_argument(
        "command",
        help=f"<system>:<entity>:<task>, one of: {', '.join(sorted(TASKS))}",
    )
    parser.add_argument("--start-page", type=int, default=1)
    parser.add_argument("--end-page", type=int, default=None)
    parser.add_argument("--companies-file", type=Path, default=None)
    parser.add_argument("--projects-file", type=Path, default=None)
    parser.add_argument("--output-dir", type=Path, default=None)
    parser.add_argument(
        "--headful", action="store_true", help="Show the browser window instead of running headless"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        parse_task(args.command)
    except ValueError as exc:
        log_line(f"[RUN][ERROR] {exc}")
        parser.print_usage(sys.stderr)
        return 2

    try:
        run_task(
            args.command,
            companies_file=args.companies_file,
            projects_file=args.projects_file,
            start_page=args.start_page,
            end_page=args.end_page,
            output_dir=args.output_dir,
            headless=False if args.headful else None,
            trigger="cli",
        )
    except ValueError as exc:
        log_line(f"[RUN][ERROR] {exc}")
        return 2
    except Exception as exc:  # noqa: BLE001
        log_line(f"[RUN][ERROR] {_short_error_message(exc)}")
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

__all__ = ["run_task", "build_parser", "main"]
