"""Row-level interaction: open a row's detail modal and download its file."""
from __future__ import annotations

import enum
import time
import urllib.parse
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from playwright.sync_api import Error as PWError

from . import config
from .error_codes import ErrorCode
from .errors import DownloadError, InvalidFileContent, RowActionFailure
from .fetcher import DocumentFetcher, DownloadResult
from .logging_utils import LogFn, _harvest_event
from .retry_policy import call_with_retries
from .selectors import DocumentScreenSelectors
from .session import is_target_closed_error
from .telemetry import RunTelemetry
from .utils import log_line, sanitize_filename_component, slugify_component, truncate_to_max_bytes

MAX_FILENAME_BYTES = 180

# Dynamic endpoints; their suffix says nothing about the file served.
_SCRIPT_EXTENSIONS = {".php", ".asp", ".aspx", ".jsp", ".cgi"}


class RowState(str, enum.Enum):
    IDLE = "idle"
    ROW_LOCATED = "row_located"
    ACTION_TRIGGERED = "action_triggered"
    DETAIL_OPENED = "detail_opened"
    DATA_EXTRACTED = "data_extracted"
    DOWNLOADED = "downloaded"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass
class RowRecord:
    file_label: str
    download_affordance_present: bool
    employee_name: Optional[str] = None


def _url_extension(url: str) -> str:
    path = urllib.parse.urlparse(url).path
    suffix = Path(urllib.parse.unquote(path)).suffix
    if 1 < len(suffix) <= 6 and suffix[1:].isalnum() and suffix.lower() not in _SCRIPT_EXTENSIONS:
        return suffix
    return ""


def derive_filename(label: Optional[str], url: str) -> Tuple[str, bool]:
    """Return ``(filename, infer_extension)`` for a row's file label and URL.

    The extension comes from the URL path; when the URL has none the caller
    must infer it from the response media type.
    """

    base = truncate_to_max_bytes(sanitize_filename_component(label) or "document", MAX_FILENAME_BYTES)
    extension = _url_extension(url)
    if not extension:
        return base, True
    if base.lower().endswith(extension.lower()):
        return base, False
    return f"{base}{extension}", False


class RowProcessor:
    """Process rows of the current result page by index, with bounded retries.

    Rows are always looked up by index in a freshly queried collection; the
    table re-renders after every modal and element handles go stale.
    """

    def __init__(
        self,
        session: Any,
        selectors: DocumentScreenSelectors,
        column_map: Dict[str, int],
        *,
        fetcher: DocumentFetcher,
        company_dir: Path,
        group_label: str,
        max_attempts: Optional[int] = None,
        retry_delay_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        telemetry: Optional[RunTelemetry] = None,
        context: str = "",
        log: LogFn = log_line,
    ) -> None:
        self._session = session
        self._selectors = selectors
        self._column_map = column_map
        self._fetcher = fetcher
        self._company_dir = Path(company_dir)
        self._group_label = group_label
        self._max_attempts = max(1, config.ROW_MAX_ATTEMPTS if max_attempts is None else max_attempts)
        self._retry_delay_seconds = (
            config.ROW_RETRY_DELAY_SECONDS if retry_delay_seconds is None else retry_delay_seconds
        )
        self._sleep = sleep
        self._telemetry = telemetry
        self._context = context
        self._log = log
        self.state = RowState.IDLE
        self.current_employee: Optional[str] = None
        self.results: List[DownloadResult] = []
        self.page_label = ""
        self._last_failure: Optional[DownloadResult] = None

    # -- public -------------------------------------------------------------

    def process_row(self, row_index: int, total_rows: int) -> bool:
        """Process row ``row_index``; ``False`` means the row was abandoned."""

        def _failure(attempt: int, exc: BaseException, code: str, will_retry: bool) -> None:
            self.state = RowState.FAILED
            self._log(
                f"[ROW][WARN] {self._context} row {row_index + 1}/{total_rows} "
                f"attempt {attempt}/{self._max_attempts} failed ({code}): {exc}"
            )
            if will_retry:
                self._log(f"Waiting {self._retry_delay_seconds:g}s before retrying...")

        outcome = call_with_retries(
            lambda attempt: self._attempt(row_index, total_rows, attempt),
            max_attempts=self._max_attempts,
            delay_seconds=self._retry_delay_seconds,
            on_failure=_failure,
            sleep=self._sleep,
        )

        if outcome.ok:
            if outcome.value is not None:
                self.results.append(outcome.value)
                self._record("downloaded", "ok", row_index, outcome.value)
            return True

        self._log(
            f"[ROW][ERROR] {self._context} row {row_index + 1}/{total_rows} abandoned "
            f"after {outcome.attempts} attempt(s)."
        )
        _harvest_event(
            "row",
            log=self._log,
            step="abandoned",
            row=row_index + 1,
            attempts=outcome.attempts,
            error_code=outcome.error_code,
        )
        failed = self._last_failure
        if failed is None:
            failed = DownloadResult(
                success=False,
                url="",
                error_code=outcome.error_code,
                error_reason=str(outcome.error),
            )
        self.results.append(failed)
        self._record("failed", outcome.error_code or ErrorCode.INTERNAL, row_index, failed)
        return False

    # -- internals ----------------------------------------------------------

    def _attempt(self, row_index: int, total_rows: int, attempt: int) -> Optional[DownloadResult]:
        self.state = RowState.IDLE
        self._last_failure = None
        snapshot = self._session.row_snapshot(
            self._selectors.row, row_index, self._selectors.action_icon
        )
        if snapshot is None:
            self._log(
                f"[ROW][WARN] Attempt {attempt}: row {row_index + 1} no longer present; skipping."
            )
            return None
        self.state = RowState.ROW_LOCATED

        record = self._extract(snapshot)
        self._log(
            f"[Row {row_index + 1}/{total_rows}] Attempt {attempt}/{self._max_attempts} "
            f"for {self._context}{self.page_label} | File: {record.file_label!r}"
        )
        if not record.download_affordance_present:
            raise RowActionFailure(
                f"Action icon not found in column {self._selectors.file_column!r}"
            )

        try:
            return self._download(row_index, record)
        finally:
            self._close_detail()

    def _extract(self, snapshot: Dict[str, Any]) -> RowRecord:
        cells: List[str] = list(snapshot.get("cells") or [])

        def cell(label: Optional[str]) -> str:
            if not label:
                return ""
            position = self._column_map.get(label.upper())
            if not position or position > len(cells):
                return ""
            return (cells[position - 1] or "").strip()

        file_position = self._column_map.get(self._selectors.file_column.upper())
        record = RowRecord(
            file_label=cell(self._selectors.file_column),
            download_affordance_present=file_position in (snapshot.get("action_columns") or []),
        )
        if self._selectors.employee_column:
            shown = cell(self._selectors.employee_column)
            if shown:
                self.current_employee = shown
            record.employee_name = self.current_employee
        return record

    def _download(self, row_index: int, record: RowRecord) -> DownloadResult:
        selectors = self._selectors
        column = self._column_map[selectors.file_column.upper()]
        if not self._session.click_in_row(selectors.row, row_index, column, selectors.action_icon):
            raise RowActionFailure("Could not click the row's action icon")
        self.state = RowState.ACTION_TRIGGERED

        self._session.wait_for(
            selectors.modal, state="visible", timeout_seconds=config.MODAL_TIMEOUT_SECONDS
        )
        self._log("   - Detail modal opened.")
        self.state = RowState.DETAIL_OPENED

        self._session.wait_for(
            selectors.file_element,
            state="attached",
            timeout_seconds=config.FILE_ELEMENT_TIMEOUT_SECONDS,
        )
        src = self._session.attribute_of(selectors.file_element, "src") or self._session.attribute_of(
            selectors.file_element, "ng-src"
        )
        if not src:
            raise RowActionFailure("File element has no source")
        url = urllib.parse.urljoin(self._session.url, src)
        filename, infer_extension = derive_filename(record.file_label, url)
        self.state = RowState.DATA_EXTRACTED

        result = self._fetcher.fetch(
            url, self._destination(record), filename, infer_extension=infer_extension
        )
        if not result:
            if result.error_code == ErrorCode.INVALID_FILE_CONTENT:
                exc: Exception = InvalidFileContent(result.error_reason or "Invalid file content")
            else:
                exc = DownloadError(
                    result.error_reason or "Download failed",
                    error_code=result.error_code,
                    http_status=result.http_status,
                )
            self._last_failure = result
            raise exc
        self.state = RowState.DOWNLOADED
        return result

    def _destination(self, record: RowRecord) -> Path:
        if self._selectors.employee_column:
            return self._company_dir / slugify_component(record.employee_name)
        return self._company_dir / slugify_component(self._group_label)

    def _close_detail(self) -> None:
        """Close the detail modal if it is open; never raises for a live session."""

        modal = self._selectors.modal
        try:
            if not self._session.exists(modal):
                self.state = RowState.CLOSED
                return
            try:
                self._session.click(self._selectors.modal_close, timeout_ms=config.CLOSE_CLICK_TIMEOUT_MS)
                self._session.wait_for(
                    modal, state="hidden", timeout_seconds=config.MODAL_CLOSE_TIMEOUT_SECONDS
                )
                self._log("   - Modal closed.")
            except PWError as exc:
                if is_target_closed_error(exc):
                    raise
                self._log("[ROW][WARN] Could not close modal by clicking; pressing Escape.")
                self._session.press("Escape")
                self._session.pause(config.MODAL_SETTLE_SECONDS)
        except PWError as exc:
            if is_target_closed_error(exc):
                raise
            self._log(f"[ROW][WARN] Modal cleanup failed: {exc}")
        self.state = RowState.CLOSED

    def _record(self, status: str, reason: str, row_index: int, result: DownloadResult) -> None:
        if self._telemetry is None:
            return
        self._telemetry.add(
            status,
            reason,
            {
                "context": self._context,
                "row": row_index + 1,
                "url": result.url,
                "saved_path": str(result.saved_path) if result.saved_path else None,
            },
        )


__all__ = ["RowState", "RowRecord", "RowProcessor", "derive_filename"]
