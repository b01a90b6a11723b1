from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from . import config
from .config_validation import Entrypoint, validate_runtime_config
from .logging_utils import _harvest_event
from .utils import disk_has_room, ensure_dirs, log_line


@dataclass
class HealthResult:
    ok: bool
    checks: dict[str, dict[str, Any]]


def _browser_check() -> dict[str, Any]:
    if config.CHROMIUM_PATH:
        found = Path(config.CHROMIUM_PATH).is_file()
        return {"ok": found, "executable": config.CHROMIUM_PATH}
    # Without an explicit path Playwright uses its own managed Chromium.
    return {"ok": True, "executable": "playwright-managed", "which": shutil.which("chromium")}


def run_health_checks(entrypoint: Entrypoint = "cli") -> HealthResult:
    checks: dict[str, dict[str, Any]] = {}

    try:
        validate_runtime_config(entrypoint or "cli")
        checks["config"] = {"ok": True}
    except ValueError as exc:
        checks["config"] = {"ok": False, "error": str(exc)}

    ensure_dirs()
    fs_ok = disk_has_room(config.MIN_FREE_MB, config.OUTPUT_DIR)
    checks["filesystem"] = {
        "ok": fs_ok,
        "output_dir": str(config.OUTPUT_DIR),
        "min_free_mb": config.MIN_FREE_MB,
    }

    checks["browser"] = _browser_check()

    checks["filter_lists"] = {
        "ok": True,
        "companies_file": str(config.COMPANIES_FILE),
        "companies_file_present": config.COMPANIES_FILE.is_file(),
        "projects_file": str(config.PROJECTS_FILE),
        "projects_file_present": config.PROJECTS_FILE.is_file(),
    }

    overall_ok = all(check.get("ok", False) for check in checks.values())

    _harvest_event(
        "state" if overall_ok else "error",
        phase="health",
        context="healthcheck",
        ok=overall_ok,
        checks=checks,
    )

    return HealthResult(ok=overall_ok, checks=checks)


if __name__ == "__main__":  # pragma: no cover
    result = run_health_checks(entrypoint="cli")
    for name, info in result.checks.items():
        status = "OK" if info.get("ok") else "FAIL"
        log_line(f"[HEALTH] {name}: {status} {info}")
    raise SystemExit(0 if result.ok else 1)
