"""Playwright session handle shared by every harvester component.

Components never touch Playwright objects directly; they go through
:class:`PortalSession`, which keeps the capability set small (navigate, wait,
click, type, evaluate, cookies, screenshots) and lets tests substitute an
in-memory portal.
"""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from playwright.sync_api import (
    Error as PWError,
    Page,
    TimeoutError as PWTimeout,
    sync_playwright,
)

from . import config
from .logging_utils import LogFn, _harvest_event
from .utils import log_line

UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)

_OPTION_VALUE_JS = """
([selector, label]) => {
    const select = document.querySelector(selector);
    if (!select || !select.options || select.options.length === 0) {
        return null;
    }
    const wanted = label.trim().toUpperCase();
    const option = Array.from(select.options).find(
        (opt) => (opt.innerText || opt.textContent || '').trim().toUpperCase() === wanted
    );
    return option ? option.value : null;
}
"""

_ROW_SNAPSHOT_JS = """
([rowSelector, index, actionSelector]) => {
    const row = document.querySelectorAll(rowSelector)[index];
    if (!row) {
        return null;
    }
    const cells = Array.from(row.querySelectorAll('td'));
    return {
        cells: cells.map((cell) => (cell.innerText || '').trim()),
        action_columns: cells
            .map((cell, i) => (cell.querySelector(actionSelector) ? i + 1 : 0))
            .filter((i) => i > 0),
    };
}
"""

_CLICK_IN_ROW_JS = """
([rowSelector, index, column, actionSelector]) => {
    const row = document.querySelectorAll(rowSelector)[index];
    if (!row) {
        return false;
    }
    const cell = row.querySelector(`td:nth-child(${column})`);
    const target = cell ? cell.querySelector(actionSelector) : null;
    if (!target) {
        return false;
    }
    target.click();
    return true;
}
"""

_IS_DISABLED_JS = """
(el) => el.hasAttribute('disabled') || el.classList.contains('disabled')
"""


def is_target_closed_error(exc: BaseException) -> bool:
    """Return ``True`` if *exc* indicates the browser page or context is gone."""

    message = str(exc)
    return any(
        marker in message
        for marker in (
            "Target closed",
            "Target crashed",
            "has been closed",
            "Browser closed",
            "Execution context was destroyed",
        )
    )


class PortalSession:
    """Authenticated browser page plus the operations components rely on."""

    def __init__(self, page: Page, *, log: LogFn = log_line) -> None:
        self._page = page
        self._log = log

    @property
    def page(self) -> Page:
        return self._page

    @property
    def url(self) -> str:
        return self._page.url

    # -- navigation ---------------------------------------------------------

    def goto(self, url: str, *, label: str, wait_until: str = "networkidle") -> bool:
        """Navigate to ``url`` with bounded timeouts and structured logging."""

        _harvest_event("nav", log=self._log, step="goto", target=label, url=url)
        try:
            self._page.goto(
                url,
                wait_until=wait_until,
                timeout=config.NAV_TIMEOUT_SECONDS * 1000,
            )
            return True
        except PWTimeout as exc:
            self._log(f"[HARVEST][ERROR][NAV] goto({url!r}) timed out: {exc}")
            _harvest_event("error", log=self._log, phase="nav", step="goto_timeout", target=label, url=url)
            return False
        except PWError as exc:
            if is_target_closed_error(exc):
                raise
            self._log(f"[HARVEST][ERROR][NAV] goto({url!r}) failed: {exc}")
            _harvest_event("error", log=self._log, phase="nav", step="goto_error", target=label, url=url)
            return False

    def reload(self) -> None:
        self._page.reload(wait_until="networkidle", timeout=config.NAV_TIMEOUT_SECONDS * 1000)

    def click_and_wait_for_navigation(self, selector: str) -> None:
        with self._page.expect_navigation(
            wait_until="networkidle", timeout=config.NAV_TIMEOUT_SECONDS * 1000
        ):
            self._page.click(selector)

    # -- waiting ------------------------------------------------------------

    def wait_for(self, selector: str, *, state: str = "visible", timeout_seconds: float) -> None:
        """Wait for ``selector`` to reach ``state``; raises Playwright's TimeoutError."""

        self._page.wait_for_selector(selector, state=state, timeout=timeout_seconds * 1000)

    def wait_for_function(
        self, expression: str, arg: Any = None, *, timeout_seconds: float
    ) -> Any:
        handle = self._page.wait_for_function(expression, arg=arg, timeout=timeout_seconds * 1000)
        return handle.json_value()

    def wait_for_network_idle(self, timeout_seconds: float) -> bool:
        """Bounded wait for network quiescence; ``False`` on timeout."""

        try:
            self._page.wait_for_load_state("networkidle", timeout=timeout_seconds * 1000)
            return True
        except PWTimeout:
            self._log("[HARVEST][WARN] Network did not go idle; continuing.")
            return False

    def pause(self, seconds: float) -> None:
        """Wait safely for ``seconds`` only if the page remains open."""

        if seconds is None or seconds <= 0:
            return
        if not self._page.is_closed():
            self._page.wait_for_timeout(int(seconds * 1000))

    # -- queries ------------------------------------------------------------

    def exists(self, selector: str) -> bool:
        return self._page.query_selector(selector) is not None

    def count(self, selector: str) -> int:
        return self._page.locator(selector).count()

    def texts(self, selector: str) -> List[str]:
        return self._page.locator(selector).all_inner_texts()

    def text_of(self, selector: str) -> Optional[str]:
        handle = self._page.query_selector(selector)
        if handle is None:
            return None
        return handle.inner_text()

    def text_of_nth(self, selector: str, index: int) -> Optional[str]:
        locator = self._page.locator(selector).nth(index)
        if not locator.count():
            return None
        return (locator.inner_text() or "").strip()

    def attribute_of(self, selector: str, name: str) -> Optional[str]:
        handle = self._page.query_selector(selector)
        if handle is None:
            return None
        return handle.get_attribute(name)

    def is_checked(self, selector: str) -> bool:
        return self._page.is_checked(selector)

    def is_disabled(self, selector: str) -> bool:
        handle = self._page.query_selector(selector)
        if handle is None:
            return True
        return bool(handle.evaluate(_IS_DISABLED_JS))

    def option_value_for_label(self, select_selector: str, label: str) -> Optional[str]:
        """Return the option value whose visible text equals ``label``, if loaded."""

        value = self._page.evaluate(_OPTION_VALUE_JS, [select_selector, label])
        return None if value is None else str(value)

    def row_snapshot(
        self, row_selector: str, index: int, action_selector: str
    ) -> Optional[Dict[str, Any]]:
        """Re-query the row collection and return cell texts for row ``index``."""

        return self._page.evaluate(_ROW_SNAPSHOT_JS, [row_selector, index, action_selector])

    def evaluate(self, expression: str, arg: Any = None) -> Any:
        return self._page.evaluate(expression, arg)

    # -- actions ------------------------------------------------------------

    def click(self, selector: str, *, timeout_ms: Optional[int] = None) -> None:
        self._page.click(
            selector,
            timeout=timeout_ms if timeout_ms is not None else config.SELECTOR_TIMEOUT_SECONDS * 1000,
        )

    def click_nth(self, selector: str, index: int) -> bool:
        locator = self._page.locator(selector).nth(index)
        if not locator.count():
            return False
        locator.scroll_into_view_if_needed()
        self.pause(0.2)
        locator.click()
        return True

    def click_in_row(self, row_selector: str, index: int, column: int, action_selector: str) -> bool:
        return bool(
            self._page.evaluate(_CLICK_IN_ROW_JS, [row_selector, index, column, action_selector])
        )

    def type_text(self, selector: str, text: str) -> None:
        self._page.locator(selector).fill(text)

    def press(self, key: str) -> None:
        self._page.keyboard.press(key)

    def select_option(self, selector: str, value: str) -> None:
        self._page.select_option(
            selector, value=value, timeout=config.SELECTOR_TIMEOUT_SECONDS * 1000
        )

    # -- session state ------------------------------------------------------

    def cookies(self) -> List[Dict[str, Any]]:
        return list(self._page.context.cookies())

    def user_agent(self) -> str:
        return str(self._page.evaluate("() => navigator.userAgent"))

    def screenshot(self, path: Path) -> None:
        self._page.screenshot(path=str(path), full_page=True)

    def content(self) -> str:
        return self._page.content()

    @contextmanager
    def secondary_page(self) -> Iterator[Page]:
        """Open a transient page carrying this session's cookies and user agent."""

        browser = self._page.context.browser
        if browser is None:
            raise RuntimeError("Session page is not attached to a browser")
        context = browser.new_context(user_agent=self.user_agent())
        try:
            context.add_cookies(self.cookies())
            page = context.new_page()
            try:
                yield page
            finally:
                page.close()
        finally:
            context.close()


@contextmanager
def launch_session(*, headless: Optional[bool] = None, log: LogFn = log_line) -> Iterator[PortalSession]:
    """Launch Chromium and yield a :class:`PortalSession`; closes the browser on exit."""

    effective_headless = config.HEADLESS if headless is None else headless
    with sync_playwright() as pw:
        log("Starting browser...")
        browser = pw.chromium.launch(
            headless=effective_headless,
            executable_path=config.CHROMIUM_PATH,
            args=config.CHROMIUM_ARGS,
        )
        context = browser.new_context(user_agent=UA, locale="pt-BR")
        page = context.new_page()
        page.set_default_navigation_timeout(config.NAV_TIMEOUT_SECONDS * 1000)
        try:
            yield PortalSession(page, log=log)
        finally:
            log("Closing browser.")
            context.close()
            browser.close()


__all__ = ["PortalSession", "launch_session", "is_target_closed_error", "UA"]
