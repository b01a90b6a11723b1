"""Configuration constants for the portal harvester."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Local development convenience; a no-op when no .env file exists.
load_dotenv()

OUTPUT_DIR: Path = Path(os.getenv("HARVEST_OUTPUT_DIR", "output"))
LOG_DIR: Path = OUTPUT_DIR / "logs"
RUNS_DIR: Path = OUTPUT_DIR / "runs"
EXPORTS_DIR: Path = OUTPUT_DIR / "exports"
SUMMARY_FILE: Path = OUTPUT_DIR / "last_summary.json"

CONFIG_DIR: Path = Path(os.getenv("HARVEST_CONFIG_DIR", "config"))
COMPANIES_FILE: Path = CONFIG_DIR / "companies.json"
PROJECTS_FILE: Path = CONFIG_DIR / "projects.json"

# Used when no list file can be loaded.
FALLBACK_COMPANIES: list[str] = ["FJ CONSTRUÇÕES"]
FALLBACK_PROJECTS: list[str] = ["BELFORT", "CHAMONIX"]

ASSECTRA_BASE_URL: str = os.getenv("ASSECTRA_BASE_URL", "https://app.assectra.com.br/v3/")
ASSECTRA_USER: str = os.getenv("ASSECTRA_USER", "")
ASSECTRA_PASSWORD: str = os.getenv("ASSECTRA_PASSWORD", "")

CHROMIUM_PATH: str | None = os.getenv("CHROMIUM_PATH") or None
HEADLESS: bool = os.getenv("HARVEST_HEADLESS", "true").strip().lower() not in {"0", "false"}

NO_RESULTS_PHRASE: str = os.getenv("HARVEST_NO_RESULTS_PHRASE", "Nenhum registro encontrado")


def _parse_timeout_seconds(env_var: str, default: int, *, minimum: int = 1) -> int:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = int(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


# Playwright timeouts (seconds)
NAV_TIMEOUT_SECONDS: int = _parse_timeout_seconds("HARVEST_NAV_TIMEOUT_SECONDS", 60)
SELECTOR_TIMEOUT_SECONDS: int = _parse_timeout_seconds("HARVEST_SELECTOR_TIMEOUT_SECONDS", 10)
# Company/project option lists load asynchronously after the select appears.
DROPDOWN_TIMEOUT_SECONDS: int = _parse_timeout_seconds("HARVEST_DROPDOWN_TIMEOUT_SECONDS", 10)
PROFILE_DROPDOWN_TIMEOUT_SECONDS: int = _parse_timeout_seconds(
    "HARVEST_PROFILE_DROPDOWN_TIMEOUT_SECONDS", 30
)
RESULTS_TIMEOUT_SECONDS: int = _parse_timeout_seconds("HARVEST_RESULTS_TIMEOUT_SECONDS", 20)
MODAL_TIMEOUT_SECONDS: int = _parse_timeout_seconds("HARVEST_MODAL_TIMEOUT_SECONDS", 15)
FILE_ELEMENT_TIMEOUT_SECONDS: int = _parse_timeout_seconds("HARVEST_FILE_ELEMENT_TIMEOUT_SECONDS", 10)
MODAL_CLOSE_TIMEOUT_SECONDS: int = _parse_timeout_seconds("HARVEST_MODAL_CLOSE_TIMEOUT_SECONDS", 5)
NETWORK_IDLE_TIMEOUT_SECONDS: int = _parse_timeout_seconds("HARVEST_NETWORK_IDLE_TIMEOUT_SECONDS", 20)
DOWNLOAD_TIMEOUT_SECONDS: int = _parse_timeout_seconds("HARVEST_DOWNLOAD_TIMEOUT_SECONDS", 120)
# Click-level timeout remains in milliseconds to match Playwright API expectations.
CLOSE_CLICK_TIMEOUT_MS: int = int(os.getenv("HARVEST_CLOSE_CLICK_TIMEOUT_MS", "2000"))

# Row retry policy
ROW_MAX_ATTEMPTS: int = int(os.getenv("HARVEST_ROW_MAX_ATTEMPTS", "3"))
ROW_RETRY_DELAY_SECONDS: float = float(os.getenv("HARVEST_ROW_RETRY_DELAY_SECONDS", "5.0"))

# Short sleeps (seconds) for re-render settle
PAGE_SETTLE_SECONDS: float = float(os.getenv("HARVEST_PAGE_SETTLE_SECONDS", "0.5"))
MODAL_SETTLE_SECONDS: float = float(os.getenv("HARVEST_MODAL_SETTLE_SECONDS", "0.5"))
DROPDOWN_POLL_SECONDS: float = float(os.getenv("HARVEST_DROPDOWN_POLL_SECONDS", "0.5"))

# "request" hydrates a requests.Session from browser cookies; "page" opens a
# transient browser page carrying the same cookies and user agent.
FETCH_TRANSPORT: str = os.getenv("HARVEST_FETCH_TRANSPORT", "request").strip().lower() or "request"
FETCH_TRANSPORTS: tuple[str, ...] = ("request", "page")

MIN_FREE_MB: int = int(os.getenv("MIN_FREE_MB", "200"))

CHROMIUM_ARGS: list[str] = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]


def output_root_for(task_dir: str, base: Path | None = None) -> Path:
    """Return the output directory used by a task (e.g. ``company-documents``)."""

    return Path(base or OUTPUT_DIR) / task_dir


def credentials_configured() -> bool:
    """Return ``True`` when Assectra credentials are present."""

    return bool(ASSECTRA_USER.strip() and ASSECTRA_PASSWORD.strip())
