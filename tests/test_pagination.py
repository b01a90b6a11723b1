from __future__ import annotations

import pytest
from playwright.sync_api import Error as PWError

from app.harvester.pagination import PaginationDriver, parse_page_info
from app.harvester.selectors import COMPANY_DOCUMENTS

from fake_portal import FakeDocumentPortal, doc_row


def _portal(pages: int, **kwargs) -> FakeDocumentPortal:
    portal = FakeDocumentPortal(
        pages=[[doc_row(f"Doc {p}-{r}", f"/f/{p}-{r}.pdf") for r in range(2)] for p in range(pages)],
        **kwargs,
    )
    portal.searched = True
    return portal


def _drive(portal, **kwargs):
    seen: list[int] = []
    driver = PaginationDriver(portal, COMPANY_DOCUMENTS, settle_seconds=0, log=lambda _m: None, **kwargs)
    processed = driver.for_each_page(lambda info: seen.append(info.cursor.current_page))
    return seen, processed


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1 de 5", (1, 5)),
        ("Página 3 de 12", (3, 12)),
        ("2 of 4", (2, 4)),
        ("7/9", (7, 9)),
        ("", (1, 1)),
        (None, (1, 1)),
        ("sem paginação", (1, 1)),
    ],
)
def test_parse_page_info(text, expected):
    assert parse_page_info(text) == expected


def test_end_page_bounds_processing_and_advances():
    portal = _portal(5)

    seen, processed = _drive(portal, start_page=1, end_page=3)

    assert seen == [1, 2, 3]
    assert processed == 3
    assert portal.clicks.count(COMPANY_DOCUMENTS.next_page) == 3


def test_pages_before_start_are_skipped_but_advanced():
    portal = _portal(4)

    seen, _ = _drive(portal, start_page=3)

    assert seen == [3, 4]
    assert portal.clicks.count(COMPANY_DOCUMENTS.next_page) == 3


def test_unbounded_run_stops_on_disabled_next():
    portal = _portal(2)

    seen, _ = _drive(portal)

    assert seen == [1, 2]
    assert portal.clicks.count(COMPANY_DOCUMENTS.next_page) == 1


def test_missing_indicator_is_a_single_page():
    portal = _portal(1, show_pagination=False)

    seen, _ = _drive(portal)

    assert seen == [1]
    assert COMPANY_DOCUMENTS.next_page not in portal.clicks


def test_stalled_indicator_stops_the_loop():
    portal = _portal(3, stuck_pagination=True)

    seen, _ = _drive(portal)

    assert seen == [1]
    assert portal.clicks.count(COMPANY_DOCUMENTS.next_page) == 3


class _FlakyIndicatorPortal(FakeDocumentPortal):
    """Indicator text misbehaves while the table is on one given page."""

    def __init__(self, *args, flaky_page: int, failure=None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.flaky_page = flaky_page
        self.failure = failure

    def text_of(self, selector):
        if selector == self.screen.page_info and self.page_index + 1 == self.flaky_page:
            if self.failure is not None:
                raise self.failure
            return ""
        return super().text_of(selector)


def _flaky_portal(pages: int, **kwargs) -> _FlakyIndicatorPortal:
    portal = _FlakyIndicatorPortal(
        pages=[[doc_row(f"Doc {p}-{r}", f"/f/{p}-{r}.pdf") for r in range(2)] for p in range(pages)],
        **kwargs,
    )
    portal.searched = True
    return portal


def test_blank_indicator_after_advance_still_processes_the_page():
    portal = _flaky_portal(3, flaky_page=2)

    seen, processed = _drive(portal)

    assert seen == [1, 2, 3]
    assert processed == 3


def test_detached_indicator_is_read_as_unreadable():
    portal = _flaky_portal(3, flaky_page=2, failure=PWError("Element is not attached to the DOM"))

    seen, _ = _drive(portal)

    assert seen == [1, 2, 3]


def test_closed_browser_while_reading_indicator_propagates():
    portal = _flaky_portal(3, flaky_page=2, failure=PWError("Target closed"))

    with pytest.raises(PWError):
        _drive(portal)


def test_lagging_indicator_is_numbered_from_the_previous_page():
    class _LaggingPortal(FakeDocumentPortal):
        def text_of(self, selector):
            if selector == self.screen.page_info:
                return f"1 de {len(self.pages)}"
            return super().text_of(selector)

    portal = _LaggingPortal(
        pages=[[doc_row(f"Doc {p}", f"/f/{p}.pdf")] for p in range(3)],
    )
    portal.searched = True

    seen, _ = _drive(portal, end_page=2)

    assert seen == [1, 2]
    assert portal.clicks.count(COMPANY_DOCUMENTS.next_page) == 2
