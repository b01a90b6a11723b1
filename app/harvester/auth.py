from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from playwright.sync_api import Error as PWError

from . import config
from .errors import LoginError
from .logging_utils import LogFn, _harvest_event
from .selectors import ASSECTRA_LOGIN, LoginSelectors
from .session import is_target_closed_error
from .utils import log_line, write_debug_artifact

LOGIN_TIMEOUT_SECONDS = 30


def assectra_login(
    session: Any,
    username: Optional[str] = None,
    password: Optional[str] = None,
    *,
    output_root: Optional[Path] = None,
    selectors: LoginSelectors = ASSECTRA_LOGIN,
    log: LogFn = log_line,
) -> None:
    """Log into Assectra; raises :class:`LoginError` on any failure.

    A screenshot and the page HTML are saved under
    ``<output_root>/assectra/login/`` when the flow fails after navigation.
    """

    username = username if username is not None else config.ASSECTRA_USER
    password = password if password is not None else config.ASSECTRA_PASSWORD
    if not (username or "").strip() or not (password or "").strip():
        raise LoginError(
            "ASSECTRA_USER and ASSECTRA_PASSWORD must be set (environment or .env file)."
        )

    try:
        log("Opening the Assectra login page...")
        if not session.goto(selectors.url, label="login"):
            raise LoginError(f"Could not open {selectors.url}")

        log("Waiting for the login form...")
        for selector in (selectors.username, selectors.password, selectors.submit):
            session.wait_for(selector, state="visible", timeout_seconds=LOGIN_TIMEOUT_SECONDS)

        log("Filling in credentials...")
        session.type_text(selectors.username, username)
        session.type_text(selectors.password, password)

        log("Submitting and waiting for navigation...")
        session.click_and_wait_for_navigation(selectors.submit)
    except (PWError, LoginError) as exc:
        if isinstance(exc, PWError) and is_target_closed_error(exc):
            raise
        log(f"[LOGIN][ERROR] Assectra login failed: {exc}")
        _harvest_event("error", log=log, phase="login", error=repr(exc))
        login_dir = Path(output_root or config.OUTPUT_DIR) / "assectra" / "login"
        saved = write_debug_artifact(session, login_dir, "error_login_assectra")
        if saved:
            log(f"Login failure screenshot saved to {saved[0]}")
        if isinstance(exc, LoginError):
            raise
        raise LoginError(f"Assectra login failed: {exc}") from exc

    log("Assectra login succeeded.")
    _harvest_event("login", log=log, status="ok")


__all__ = ["assectra_login"]
