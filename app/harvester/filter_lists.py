"""Company / project filter lists.

A list file is either a JSON array of strings or plain text with one entry
per line (blank lines and ``#`` comments ignored).
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from . import config
from .logging_utils import LogFn
from .utils import log_line


def read_list_file(path: Path) -> Optional[List[str]]:
    """Return the entries of ``path``, or ``None`` when it is missing or malformed."""

    path = Path(path)
    if not path.is_file():
        return None
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        log_line(f"[CONFIG][ERROR] Could not read {path}: {exc}")
        return None

    if path.suffix.lower() == ".json" or text.lstrip().startswith("["):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            log_line(f"[CONFIG][ERROR] {path} is not valid JSON: {exc}")
            return None
        if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
            log_line(f"[CONFIG][ERROR] {path} must contain a JSON array of strings.")
            return None
        entries = [item.strip() for item in data]
    else:
        entries = [line.strip() for line in text.splitlines()]
        entries = [line for line in entries if not line.startswith("#")]

    entries = [entry for entry in entries if entry]
    return entries or None


def load_list(
    name: str,
    path: Optional[Path],
    default_path: Path,
    fallback: Sequence[str],
    *,
    log: LogFn = log_line,
) -> List[str]:
    source = Path(path) if path else Path(default_path)
    label = "given file" if path else "default file"
    entries = read_list_file(source)
    if entries:
        log(f"- {name}: loaded {len(entries)} entries from {label} ({source}).")
        return entries
    log(f"[CONFIG][WARN] - {name}: could not load {label} ({source}); using fallback list.")
    return list(fallback)


def load_filter_lists(
    companies_file: Optional[Path] = None,
    projects_file: Optional[Path] = None,
    *,
    log: LogFn = log_line,
) -> Tuple[List[str], List[str]]:
    """Return ``(companies, projects)`` from their files or the built-in fallbacks."""

    log("Loading filter lists...")
    companies = load_list(
        "Companies", companies_file, config.COMPANIES_FILE, config.FALLBACK_COMPANIES, log=log
    )
    projects = load_list(
        "Projects", projects_file, config.PROJECTS_FILE, config.FALLBACK_PROJECTS, log=log
    )
    return companies, projects


__all__ = ["read_list_file", "load_list", "load_filter_lists"]
