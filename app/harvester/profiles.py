"""Employee profile extraction from the Assectra employees screen.

Each employee row opens an edit modal whose fields are filled asynchronously.
Links are re-queried by index for every employee because closing the modal
re-renders the list.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from playwright.sync_api import Error as PWError, TimeoutError as PWTimeout

from . import config
from .dropdown import resolve_option_value
from .error_codes import ErrorCode
from .errors import HarvestError
from .export import save_profiles_excel, save_profiles_json
from .fetcher import DocumentFetcher
from .logging_utils import LogFn, _harvest_event
from .rows import derive_filename
from .selectors import EMPLOYEE_PROFILES, EmployeeProfileSelectors
from .session import is_target_closed_error
from .telemetry import RunTelemetry
from .utils import log_line, reset_debug_dir, slugify_component, to_title_case, write_debug_artifact

_NAME_LOADED_JS = """
(selector) => {
    const input = document.querySelector(selector);
    return !!input && input.value.trim() !== '';
}
"""

_BUTTON_ENABLED_JS = """
(selector) => {
    const button = document.querySelector(selector);
    return !!button && !button.disabled;
}
"""

_EXTRACT_PROFILE_JS = """
([nameSel, idSel, employerSel, roleSel, photoSel]) => {
    const selectedText = (selector) => {
        const select = document.querySelector(selector);
        if (select && select.selectedIndex !== -1) {
            return select.options[select.selectedIndex].innerText;
        }
        return null;
    };
    const value = (selector) => {
        const el = document.querySelector(selector);
        return el ? el.value : null;
    };
    const photo = document.querySelector(photoSel);
    return {
        full_name: value(nameSel),
        national_id: value(idSel),
        employer: selectedText(employerSel),
        role: selectedText(roleSel),
        photo_url: photo ? photo.src : null,
    };
}
"""

_CLEAN_BODY_JS = """
() => {
    document.body.classList.remove('md-dialog-is-showing');
    document.body.removeAttribute('style');
}
"""

POST_CLOSE_IDLE_SECONDS = 7
SPINNER_TIMEOUT_SECONDS = 5
RECOVERY_TIMEOUT_SECONDS = 20


@dataclass
class EmployeeProfile:
    full_name: str
    national_id: str
    employer: str
    role: str
    photo_url: Optional[str] = None
    project: str = ""
    company_registration_id: str = ""
    photo_path: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "EmployeeProfile":
        return cls(
            full_name=to_title_case((raw.get("full_name") or "").strip()),
            national_id=(raw.get("national_id") or "").strip(),
            employer=to_title_case((raw.get("employer") or "").strip()),
            role=to_title_case((raw.get("role") or "").strip()),
            photo_url=raw.get("photo_url") or None,
        )


def harvest_profiles(
    session: Any,
    companies: Sequence[str],
    *,
    output_root: Path,
    fetcher: Optional[DocumentFetcher] = None,
    selectors: EmployeeProfileSelectors = EMPLOYEE_PROFILES,
    telemetry: Optional[RunTelemetry] = None,
    log: LogFn = log_line,
) -> Dict[str, Any]:
    """Extract every employee profile of ``companies`` and save JSON + xlsx per company."""

    output_root = Path(output_root)
    output_root.mkdir(parents=True, exist_ok=True)
    debug_dir = reset_debug_dir(output_root / "debug")
    fetcher = fetcher or DocumentFetcher(session, log=log)

    skipped: Dict[str, str] = {}
    counts: Dict[str, int] = {}
    outputs: List[str] = []
    failed = 0

    for company in companies:
        log(f"\n--- Extracting employee profiles for company: {company} ---")
        if not session.goto(selectors.url, label=selectors.output_dir_name):
            skipped[company] = ErrorCode.NETWORK
            continue

        company_value = resolve_option_value(
            session, selectors.company_select, company, config.PROFILE_DROPDOWN_TIMEOUT_SECONDS, log=log
        )
        if company_value is None:
            log(f"[PROFILES][WARN] Company {company!r} not found in dropdown. Skipping...")
            skipped[company] = ErrorCode.DROPDOWN_NOT_FOUND
            if telemetry is not None:
                telemetry.add("skipped", ErrorCode.DROPDOWN_NOT_FOUND, {"company": company})
            continue

        try:
            _apply_company_filter(session, selectors, company_value, log=log)
        except PWError as exc:
            if is_target_closed_error(exc):
                raise
            log(f"[PROFILES][ERROR] Could not filter employees for {company!r}: {exc}")
            skipped[company] = ErrorCode.FILTER_APPLICATION
            continue

        profiles, company_failures = _collect_profiles(
            session,
            selectors,
            company,
            company_value,
            output_root=output_root,
            debug_dir=debug_dir,
            fetcher=fetcher,
            telemetry=telemetry,
            log=log,
        )
        failed += company_failures
        counts[company] = len(profiles)

        records = [asdict(profile) for profile in profiles]
        outputs.append(str(save_profiles_json(output_root, company, records)))
        outputs.append(str(save_profiles_excel(output_root, company, records)))

    return {
        "companies": len(companies),
        "skipped": skipped,
        "profiles": counts,
        "failed": failed,
        "outputs": outputs,
    }


def _apply_company_filter(
    session: Any,
    selectors: EmployeeProfileSelectors,
    company_value: str,
    *,
    timeout_seconds: float = config.SELECTOR_TIMEOUT_SECONDS,
    log: LogFn = log_line,
) -> None:
    session.wait_for(selectors.company_select, state="visible", timeout_seconds=timeout_seconds)
    session.select_option(selectors.company_select, company_value)
    session.wait_for_function(
        _BUTTON_ENABLED_JS, selectors.search_button, timeout_seconds=timeout_seconds
    )
    log('Clicking "Search"...')
    session.click(selectors.search_button)
    session.wait_for_network_idle(config.NETWORK_IDLE_TIMEOUT_SECONDS)
    try:
        session.wait_for(selectors.spinner, state="hidden", timeout_seconds=timeout_seconds)
    except PWTimeout:
        log("[PROFILES][WARN] Loading spinner still visible; continuing.")
    session.wait_for(selectors.table, state="visible", timeout_seconds=timeout_seconds)


def _collect_profiles(
    session: Any,
    selectors: EmployeeProfileSelectors,
    company: str,
    company_value: str,
    *,
    output_root: Path,
    debug_dir: Path,
    fetcher: DocumentFetcher,
    telemetry: Optional[RunTelemetry],
    log: LogFn,
) -> tuple[List[EmployeeProfile], int]:
    profiles: List[EmployeeProfile] = []
    failures = 0
    total = session.count(selectors.employee_link)
    log(f"Found {total} employees for company {company}.")

    index = 0
    while True:
        session.wait_for(
            selectors.table, state="visible", timeout_seconds=config.SELECTOR_TIMEOUT_SECONDS
        )
        link_text = session.text_of_nth(selectors.employee_link, index)
        if link_text is None:
            log("All employees processed.")
            break

        log(f"Processing employee {index + 1}/{total}: {link_text}")
        try:
            if not session.click_nth(selectors.employee_link, index):
                break
            profile = _read_open_profile(session, selectors)
            _download_photo(profile, fetcher, output_root / slugify_component(company), log=log)
            profiles.append(profile)
            if telemetry is not None:
                telemetry.add(
                    "profile", "ok", {"company": company, "employee": profile.full_name}
                )
            _close_profile_modal(session, selectors, debug_dir, index, log=log)
        except (PWError, HarvestError) as exc:
            if isinstance(exc, PWError) and is_target_closed_error(exc):
                raise
            failures += 1
            log(f"[PROFILES][WARN] Error processing employee {link_text!r} of {company!r}: {exc}")
            _harvest_event("profile", log=log, step="failed", company=company, index=index + 1, error=repr(exc))
            if telemetry is not None:
                telemetry.add(
                    "failed", getattr(exc, "error_code", ErrorCode.UI_TIMEOUT), {"company": company, "employee": link_text}
                )
            if not _recover(session, selectors, company, company_value, log=log):
                break
        index += 1

    return profiles, failures


def _read_open_profile(session: Any, selectors: EmployeeProfileSelectors) -> EmployeeProfile:
    session.wait_for(
        selectors.name_input, state="visible", timeout_seconds=config.MODAL_TIMEOUT_SECONDS
    )
    session.wait_for_function(
        _NAME_LOADED_JS, selectors.name_input, timeout_seconds=config.MODAL_TIMEOUT_SECONDS
    )
    raw = session.evaluate(
        _EXTRACT_PROFILE_JS,
        [
            selectors.name_input,
            selectors.national_id_input,
            selectors.employer_select,
            selectors.role_select,
            selectors.photo,
        ],
    )
    return EmployeeProfile.from_raw(raw or {})


def _download_photo(
    profile: EmployeeProfile, fetcher: DocumentFetcher, company_dir: Path, *, log: LogFn
) -> None:
    if not profile.photo_url:
        return
    filename, infer_extension = derive_filename(profile.full_name.replace(" ", "_"), profile.photo_url)
    result = fetcher.fetch(profile.photo_url, company_dir, filename, infer_extension=infer_extension)
    if result:
        profile.photo_path = str(result.saved_path)
    else:
        log(f"[PROFILES][WARN] Photo for {profile.full_name!r} not saved: {result.error_reason}")


def _close_profile_modal(
    session: Any,
    selectors: EmployeeProfileSelectors,
    debug_dir: Path,
    index: int,
    *,
    log: LogFn,
) -> None:
    write_debug_artifact(session, debug_dir, f"step_{index}_1_pre_escape")
    session.press("Escape")
    session.wait_for(
        selectors.name_input, state="hidden", timeout_seconds=config.MODAL_CLOSE_TIMEOUT_SECONDS
    )
    write_debug_artifact(session, debug_dir, f"step_{index}_2_post_escape")

    # The backdrop intercepts the next click until it is gone.
    session.wait_for(
        selectors.backdrop, state="hidden", timeout_seconds=config.MODAL_CLOSE_TIMEOUT_SECONDS
    )
    session.wait_for_network_idle(POST_CLOSE_IDLE_SECONDS)
    try:
        session.wait_for(selectors.spinner, state="hidden", timeout_seconds=SPINNER_TIMEOUT_SECONDS)
    except PWTimeout:
        log("[PROFILES][WARN] Spinner did not clear after closing the modal.")
    session.evaluate(_CLEAN_BODY_JS)


def _recover(
    session: Any,
    selectors: EmployeeProfileSelectors,
    company: str,
    company_value: str,
    *,
    log: LogFn,
) -> bool:
    """Reload the employees screen and reapply the company filter."""

    log("Reloading the page to recover...")
    try:
        session.reload()
        log(f"Reapplying filter for company: {company}...")
        _apply_company_filter(
            session, selectors, company_value, timeout_seconds=RECOVERY_TIMEOUT_SECONDS, log=log
        )
    except PWError as exc:
        if is_target_closed_error(exc):
            raise
        log(
            f"[PROFILES][ERROR] Could not recover after an error for company {company!r}; "
            f"aborting this company. ({exc})"
        )
        _harvest_event("profile", log=log, step="recovery_failed", company=company)
        return False
    return True


__all__ = ["EmployeeProfile", "harvest_profiles"]
