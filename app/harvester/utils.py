from __future__ import annotations

import json
import logging
import re
import shutil
import sys
import unicodedata
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional, Tuple

from . import config

LOGGER = logging.getLogger("harvester")
_LOGGER_INITIALISED = False
_CURRENT_LOG_FILE: Path = config.LOG_DIR / "latest.log"


def _configure_logger(log_path: Path) -> None:
    """Configure the shared application logger to write to ``log_path``."""

    global _LOGGER_INITIALISED, _CURRENT_LOG_FILE

    log_path.parent.mkdir(parents=True, exist_ok=True)
    _close_handlers()

    formatter = logging.Formatter(
        fmt="[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)

    LOGGER.setLevel(logging.INFO)
    LOGGER.addHandler(stream_handler)
    LOGGER.addHandler(file_handler)
    LOGGER.propagate = False

    _CURRENT_LOG_FILE = log_path
    _LOGGER_INITIALISED = True


def _close_handlers() -> None:
    for handler in list(LOGGER.handlers):
        LOGGER.removeHandler(handler)
        try:
            handler.flush()
            handler.close()
        except Exception:  # noqa: BLE001
            continue


def _ensure_logger() -> None:
    """Initialise the logger lazily using the default log file."""

    if _LOGGER_INITIALISED:
        return
    _configure_logger(config.LOG_DIR / "latest.log")


@contextmanager
def run_log_context(log_dir: Path | None = None) -> Iterator[Path]:
    """Log to a fresh timestamped file for the duration of one run.

    Handlers are flushed and closed on exit, whatever the outcome, and the
    logger falls back to the default file on next use.
    """

    global _LOGGER_INITIALISED

    timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
    log_path = Path(log_dir or config.LOG_DIR) / f"harvest_{timestamp}.log"
    _configure_logger(log_path)
    LOGGER.info("Logging to %s", log_path)
    try:
        yield log_path
    finally:
        LOGGER.info("Run log closed: %s", log_path)
        _close_handlers()
        _LOGGER_INITIALISED = False


def get_current_log_path() -> Path:
    """Return the path to the log file currently receiving log lines."""

    _ensure_logger()
    return _CURRENT_LOG_FILE


def _level_for(message: str) -> int:
    if "[ERROR]" in message:
        return logging.ERROR
    if "[WARN]" in message:
        return logging.WARNING
    return logging.INFO


def log_line(message: str) -> None:
    """Write a timestamped log line to stdout and the active log file."""

    _ensure_logger()
    LOGGER.log(_level_for(message), message)


def ensure_dirs() -> None:
    """Ensure that the application's expected directory structure exists."""

    config.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    config.LOG_DIR.mkdir(parents=True, exist_ok=True)


def sanitize_filename_component(component: str | None) -> str:
    """Sanitise a filename component by removing unsafe characters."""

    if not component:
        return ""

    cleaned = "".join(ch if ord(ch) >= 32 else " " for ch in component)
    cleaned = re.sub(r"[\\/:*?\"<>|]+", " ", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned)
    cleaned = cleaned.strip(" .")

    return cleaned


def truncate_to_max_bytes(value: str, max_bytes: int) -> str:
    """Truncate *value* so its UTF-8 byte length does not exceed *max_bytes*."""

    encoded = value.encode("utf-8")
    if len(encoded) <= max_bytes:
        return value

    encoded = encoded[:max_bytes]
    while encoded and (encoded[-1] & 0b11000000) == 0b10000000:
        encoded = encoded[:-1]

    return encoded.decode("utf-8", "ignore")


def slugify_component(name: str | None) -> str:
    """Return an accent-free, lowercase directory name for *name*.

    ``"FJ Construções"`` becomes ``"fj_construcoes"``.
    """

    if not name:
        return "unnamed"
    decomposed = unicodedata.normalize("NFD", name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    slug = re.sub(r"[^a-z0-9]", "_", stripped, flags=re.IGNORECASE).lower()
    return slug or "unnamed"


def to_title_case(value: str | None) -> str:
    """Uppercase the first letter of each space-separated word."""

    if not value:
        return ""
    return " ".join(word[:1].upper() + word[1:] for word in value.lower().split(" "))


def reset_debug_dir(debug_dir: Path) -> Path:
    """Wipe and recreate *debug_dir*."""

    shutil.rmtree(debug_dir, ignore_errors=True)
    debug_dir.mkdir(parents=True, exist_ok=True)
    return debug_dir


def write_debug_artifact(session: Any, debug_dir: Path, name: str) -> Optional[Tuple[Path, Path]]:
    """Save a screenshot and HTML snapshot of the session for post-mortems.

    Best effort: failures are logged and ``None`` is returned.
    """

    stem = truncate_to_max_bytes(sanitize_filename_component(name) or "snapshot", 150)
    png_path = debug_dir / f"{stem}.png"
    html_path = debug_dir / f"{stem}.html"
    try:
        debug_dir.mkdir(parents=True, exist_ok=True)
        session.screenshot(png_path)
        html_path.write_text(session.content(), encoding="utf-8")
    except Exception as exc:  # noqa: BLE001
        log_line(f"[DEBUG][WARN] Failed to save debug artifact {stem}: {exc}")
        return None
    return png_path, html_path


def load_json_file(path: Path, default: Any = None) -> Any:
    try:
        with Path(path).open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except (FileNotFoundError, json.JSONDecodeError):
        return default


def save_json_file(path: Path, payload: Any) -> None:
    """Persist *payload* as JSON atomically."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=2, default=str)
    tmp_path.replace(path)


def disk_has_room(min_free_mb: int, path: Path) -> bool:
    """Return ``True`` when the filesystem holding *path* has enough space."""

    try:
        usage = shutil.disk_usage(path)
    except OSError:
        return False
    return usage.free >= min_free_mb * 1024 * 1024


__all__ = [
    "LOGGER",
    "run_log_context",
    "get_current_log_path",
    "log_line",
    "ensure_dirs",
    "sanitize_filename_component",
    "truncate_to_max_bytes",
    "slugify_component",
    "to_title_case",
    "reset_debug_dir",
    "write_debug_artifact",
    "load_json_file",
    "save_json_file",
    "disk_has_room",
]
