from __future__ import annotations

from typing import Any

from playwright.sync_api import Error as PWError

from . import config
from .errors import FilterApplicationError
from .logging_utils import LogFn, _harvest_event
from .selectors import DocumentScreenSelectors
from .session import is_target_closed_error
from .utils import log_line


class FilterController:
    """Apply a (company, project) filter pair on a document screen and search."""

    def __init__(
        self,
        session: Any,
        selectors: DocumentScreenSelectors,
        *,
        log: LogFn = log_line,
    ) -> None:
        self._session = session
        self._selectors = selectors
        self._log = log

    def apply_filters(self, company_value: str, project_value: str) -> None:
        self.select_company(company_value)
        self.select_project(project_value)
        self.search()

    def select_company(self, value: str) -> None:
        self._select(self._selectors.company_select, value, "company")

    def select_project(self, value: str) -> None:
        self._select(self._selectors.project_select, value, "project")

    def search(self) -> None:
        self._trigger_search()

        self._log("Waiting for search results...")
        self._session.wait_for_network_idle(config.NETWORK_IDLE_TIMEOUT_SECONDS)

    def _select(self, selector: str, value: str, field: str) -> None:
        try:
            self._session.wait_for(
                selector, state="attached", timeout_seconds=config.SELECTOR_TIMEOUT_SECONDS
            )
            self._session.select_option(selector, value)
        except PWError as exc:
            if is_target_closed_error(exc):
                raise
            raise FilterApplicationError(
                f"Could not set {field} filter to {value!r}: {exc}"
            ) from exc
        _harvest_event("filter", log=self._log, step="selected", field=field, value=value)

    def _trigger_search(self) -> None:
        # Ticking "sent only" fires the search by itself; clicking the search
        # button as well would run a second, racing query.
        checkbox = self._selectors.sent_only_checkbox
        try:
            self._session.wait_for(
                checkbox, state="visible", timeout_seconds=config.SELECTOR_TIMEOUT_SECONDS
            )
            if not self._session.is_checked(checkbox):
                self._log('Ticking "sent only" to filter and start the search...')
                self._session.click(checkbox)
                _harvest_event("filter", log=self._log, step="search", via="checkbox")
                return

            self._log('"Sent only" already ticked; clicking search to apply the other filters...')
            button = self._selectors.search_button
            self._session.wait_for(
                button, state="visible", timeout_seconds=config.SELECTOR_TIMEOUT_SECONDS
            )
            self._session.click(button)
            _harvest_event("filter", log=self._log, step="search", via="button")
        except PWError as exc:
            if is_target_closed_error(exc):
                raise
            raise FilterApplicationError(f"Could not trigger search: {exc}") from exc


__all__ = ["FilterController"]
