"""JSON and Excel writers for harvested profiles and run telemetry."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from . import config
from .telemetry import prune_old_exports
from .utils import log_line, save_json_file, slugify_component

PROFILE_COLUMNS = [
    "Employer",
    "Company Registration ID",
    "Full Name",
    "National ID",
    "Role",
    "Project",
]

# Keys of a profile record, in PROFILE_COLUMNS order. The photo URL is kept
# in the JSON output only.
_PROFILE_FIELDS = {
    "Employer": "employer",
    "Company Registration ID": "company_registration_id",
    "Full Name": "full_name",
    "National ID": "national_id",
    "Role": "role",
    "Project": "project",
}


def _profiles_path(output_dir: Path, company: str, suffix: str) -> Path:
    return Path(output_dir) / f"profiles_{slugify_component(company)}{suffix}"


def save_profiles_json(output_dir: Path, company: str, profiles: Sequence[Mapping[str, Any]]) -> Path:
    path = _profiles_path(output_dir, company, ".json")
    save_json_file(path, [dict(profile) for profile in profiles])
    log_line(f"Profile data saved to {path}")
    return path


def save_profiles_excel(output_dir: Path, company: str, profiles: Sequence[Mapping[str, Any]]) -> Path:
    """Write one spreadsheet row per profile using :data:`PROFILE_COLUMNS`."""

    rows = [
        {column: profile.get(key) or "" for column, key in _PROFILE_FIELDS.items()}
        for profile in profiles
    ]
    df = pd.DataFrame(rows, columns=PROFILE_COLUMNS)

    path = _profiles_path(output_dir, company, ".xlsx")
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Employees")
    log_line(f"Profile spreadsheet saved to {path}")
    return path


def _latest_run_json_path(runs_dir: Path) -> Optional[Path]:
    if not runs_dir.is_dir():
        return None
    runs = sorted(runs_dir.glob("run_*.json"))
    return runs[-1] if runs else None


def export_latest_run_to_excel(
    dest_path: Optional[Path] = None,
    *,
    runs_dir: Optional[Path] = None,
    exports_dir: Optional[Path] = None,
) -> Path:
    """Create an Excel workbook from the most recent run telemetry payload."""

    runs_dir = Path(runs_dir or config.RUNS_DIR)
    exports_dir = Path(exports_dir or config.EXPORTS_DIR)
    run_path = _latest_run_json_path(runs_dir)
    if not run_path:
        raise FileNotFoundError("No run telemetry available to export")

    with run_path.open("r", encoding="utf-8") as handle:
        payload: Dict[str, Any] = json.load(handle)

    entries: List[Dict[str, Any]] = payload.get("entries", [])
    df = pd.DataFrame(entries)
    if df.empty:
        df = pd.DataFrame([{"status": "none", "reason": "No entries in latest run"}])

    def by_status(status: str) -> pd.DataFrame:
        return df[df["status"] == status].copy()

    summary_status = df.groupby("status").size().reset_index(name="count")
    summary_reason = (
        df.groupby(["status", "reason"]).size().reset_index(name="count").sort_values("count", ascending=False)
    )

    exports_dir.mkdir(parents=True, exist_ok=True)
    if not dest_path:
        dest_path = exports_dir / f"harvest_{payload['run_id']}.xlsx"

    with pd.ExcelWriter(dest_path, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="All")
        by_status("downloaded").to_excel(writer, index=False, sheet_name="Downloaded")
        by_status("skipped").to_excel(writer, index=False, sheet_name="Skipped")
        by_status("failed").to_excel(writer, index=False, sheet_name="Failed")
        summary_status.to_excel(writer, index=False, sheet_name="Summary_Status")
        summary_reason.to_excel(writer, index=False, sheet_name="Summary_Reason")

    prune_old_exports(exports_dir)
    return Path(dest_path)


__all__ = [
    "PROFILE_COLUMNS",
    "save_profiles_json",
    "save_profiles_excel",
    "export_latest_run_to_excel",
]
