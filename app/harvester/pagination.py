from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from playwright.sync_api import Error as PWError

from . import config
from .logging_utils import LogFn, _harvest_event
from .selectors import DocumentScreenSelectors
from .session import is_target_closed_error
from .utils import log_line

# "3 de 12" on the Portuguese UI; "3 of 12" and "3/12" are accepted too.
_PAGE_INFO_RE = re.compile(r"(\d+)\s*(?:de|of|/)\s*(\d+)", re.IGNORECASE)

# Consecutive "next" clicks that change nothing before the driver gives up.
MAX_STALLED_READS = 3


def parse_page_info(text: Optional[str]) -> Tuple[int, int]:
    """Parse a pagination indicator into ``(current, total)``.

    Unreadable or absent text is treated as a single page.
    """

    match = _PAGE_INFO_RE.search(text or "")
    if not match:
        return 1, 1
    current, total = int(match.group(1)), int(match.group(2))
    if current < 1:
        current = 1
    return current, max(total, current)


@dataclass
class PageCursor:
    current_page: int
    total_pages: int
    start_page: int = 1
    end_page: Optional[int] = None

    @property
    def past_end(self) -> bool:
        return self.end_page is not None and self.current_page > self.end_page

    @property
    def before_start(self) -> bool:
        return self.current_page < self.start_page


@dataclass
class PageInfo:
    cursor: PageCursor
    row_count: int


class PaginationDriver:
    """Walk the result pages of a document screen within a page window."""

    def __init__(
        self,
        session: Any,
        selectors: DocumentScreenSelectors,
        *,
        start_page: int = 1,
        end_page: Optional[int] = None,
        settle_seconds: float = config.PAGE_SETTLE_SECONDS,
        network_idle_timeout: float = config.NETWORK_IDLE_TIMEOUT_SECONDS,
        log: LogFn = log_line,
    ) -> None:
        self._session = session
        self._selectors = selectors
        self.start_page = max(1, int(start_page or 1))
        self.end_page = end_page
        self._settle_seconds = settle_seconds
        self._network_idle_timeout = network_idle_timeout
        self._log = log

    def _read_indicator(self) -> Optional[Tuple[int, int]]:
        """Return ``(current, total)`` from the indicator, or None when unreadable."""

        try:
            if not self._session.exists(self._selectors.page_info):
                return None
            text = self._session.text_of(self._selectors.page_info)
        except PWError as exc:
            if is_target_closed_error(exc):
                raise
            self._log(f"[PAGINATION][WARN] Page indicator unreadable: {exc}")
            return None
        if not text or not _PAGE_INFO_RE.search(text):
            return None
        return parse_page_info(text)

    def read_cursor(self) -> PageCursor:
        indicator = self._read_indicator()
        current, total = indicator if indicator is not None else parse_page_info(None)
        return PageCursor(current, total, self.start_page, self.end_page)

    def _fingerprint(self) -> Tuple[Any, ...]:
        """Row count plus first and last row texts; unchanged content means no advance."""

        row_selector = self._selectors.row
        try:
            count = self._session.count(row_selector)
            if not count:
                return (0,)
            first = self._session.row_snapshot(row_selector, 0, self._selectors.action_icon)
            last = self._session.row_snapshot(row_selector, count - 1, self._selectors.action_icon)
        except PWError as exc:
            if is_target_closed_error(exc):
                raise
            return (None,)
        return (
            count,
            tuple((first or {}).get("cells") or ()),
            tuple((last or {}).get("cells") or ()),
        )

    def for_each_page(self, process: Callable[[PageInfo], None]) -> int:
        """Call ``process`` for every page inside the window; return pages processed.

        A click on "next" counts as an advance when the table content changes or
        the indicator moves past the previous page. A page reached that way is always processed, and
        when its indicator cannot be read it is numbered one past the previous
        page. When neither changes the click is retried, and the walk stops after
        ``MAX_STALLED_READS`` such clicks in a row.
        """

        processed = 0
        previous: Optional[PageCursor] = None
        previous_fingerprint: Optional[Tuple[Any, ...]] = None
        stalled = 0

        while True:
            indicator = self._read_indicator()
            fingerprint = self._fingerprint()

            if previous is None:
                current, total = indicator if indicator is not None else parse_page_info(None)
                cursor = PageCursor(current, total, self.start_page, self.end_page)
                advanced = True
            else:
                advanced = fingerprint != previous_fingerprint or (
                    indicator is not None and indicator[0] > previous.current_page
                )
                if not advanced:
                    cursor = previous
                elif indicator is not None and indicator[0] > previous.current_page:
                    cursor = PageCursor(indicator[0], indicator[1], self.start_page, self.end_page)
                else:
                    current = previous.current_page + 1
                    total = max(indicator[1] if indicator else previous.total_pages, current)
                    cursor = PageCursor(current, total, self.start_page, self.end_page)
                    if indicator is None:
                        self._log(
                            f"[PAGINATION][WARN] Page indicator unreadable after advancing; "
                            f"treating this as page {current}."
                        )

            if not advanced:
                stalled += 1
                self._log(f"[PAGINATION][WARN] Next click did not change page {cursor.current_page}.")
                if stalled >= MAX_STALLED_READS:
                    self._log(
                        f"[PAGINATION][WARN] Page {cursor.current_page} did not advance "
                        f"after {stalled} clicks; stopping."
                    )
                    _harvest_event("pagination", log=self._log, step="stalled", page=cursor.current_page)
                    break
            else:
                stalled = 0
                self._log(f"--- Processing page {cursor.current_page} of {cursor.total_pages} ---")

                if cursor.past_end:
                    self._log(
                        f"Page {cursor.current_page} is beyond end page {self.end_page}. Stopping."
                    )
                    _harvest_event("pagination", log=self._log, step="past_end", page=cursor.current_page)
                    break

                if cursor.before_start:
                    self._log(
                        f"Skipping page {cursor.current_page} (before start page {self.start_page})."
                    )
                    _harvest_event("pagination", log=self._log, step="skip", page=cursor.current_page)
                else:
                    row_count = self._session.count(self._selectors.row)
                    self._log(f"Found {row_count} rows on this page.")
                    process(PageInfo(cursor=cursor, row_count=row_count))
                    processed += 1

                previous = cursor
                # Baseline the next click has to change.
                previous_fingerprint = self._fingerprint()

            next_selector = self._selectors.next_page
            if not self._session.exists(next_selector) or self._session.is_disabled(next_selector):
                self._log("Next page button disabled or absent. Finished.")
                _harvest_event("pagination", log=self._log, step="last_page", page=cursor.current_page)
                break

            self._log("Going to next page...")
            self._session.click(next_selector)
            self._session.wait_for_network_idle(self._network_idle_timeout)
            self._session.pause(self._settle_seconds)

        return processed


__all__ = [
    "parse_page_info",
    "PageCursor",
    "PageInfo",
    "PaginationDriver",
    "MAX_STALLED_READS",
]
