from __future__ import annotations

import pytest
from playwright.sync_api import Error as PWError

from app.harvester.error_codes import ErrorCode
from app.harvester.rows import RowProcessor, RowState, derive_filename
from app.harvester.selectors import COMPANY_DOCUMENTS, EMPLOYEE_DOCUMENTS

from fake_portal import FakeDocumentPortal, FakeHttp, doc_row

FORBIDDEN = set('\\/:*?"<>|')


def _portal(rows, **kwargs) -> FakeDocumentPortal:
    portal = FakeDocumentPortal(pages=[rows], **kwargs)
    portal.url = COMPANY_DOCUMENTS.url
    portal.searched = True
    return portal


def _processor(portal, fetcher, tmp_path, *, screen=COMPANY_DOCUMENTS, sleeps=None, column_map=None):
    return RowProcessor(
        portal,
        screen,
        column_map or {"DOCUMENTO": 2, "ARQUIVOS": 3},
        fetcher=fetcher,
        company_dir=tmp_path / "acme",
        group_label="SITE-A",
        max_attempts=3,
        retry_delay_seconds=5,
        sleep=(sleeps.append if sleeps is not None else (lambda _s: None)),
        context="ACME | SITE-A",
        log=lambda _m: None,
    )


def test_filename_sanitisation_removes_reserved_characters():
    name, infer = derive_filename("Contract: Q1/2024?", "https://x/files/abc.pdf")

    assert not FORBIDDEN & set(name)
    assert name.endswith(".pdf")
    assert infer is False


def test_filename_without_url_extension_requests_inference():
    name, infer = derive_filename("Alvará", "https://x/arquivo.php?id=1")

    assert name == "Alvará"
    assert infer is True


def test_filename_does_not_repeat_extension():
    assert derive_filename("relatorio.PDF", "https://x/f/relatorio.pdf")[0] == "relatorio.PDF"


def test_successful_row_downloads_and_closes_modal(fetcher, fake_http, tmp_path):
    portal = _portal([doc_row("Contract A", "/v3/files/a.pdf")])
    processor = _processor(portal, fetcher, tmp_path)

    assert processor.process_row(0, 1) is True

    assert fake_http.calls == ["https://app.assectra.com.br/v3/files/a.pdf"]
    assert (tmp_path / "acme" / "site_a" / "Contract A.pdf").exists()
    assert portal.modal_open is False
    assert processor.state is RowState.CLOSED
    assert len(processor.results) == 1 and processor.results[0]


def test_fails_twice_then_succeeds_fetches_once(fetcher, fake_http, tmp_path):
    portal = _portal([doc_row("Contract A", "/v3/files/a.pdf")], click_failures={(1, 0): 2})
    sleeps: list[float] = []
    processor = _processor(portal, fetcher, tmp_path, sleeps=sleeps)

    assert processor.process_row(0, 1) is True

    assert len(fake_http.calls) == 1
    assert sleeps == [5, 5]
    assert portal.row_clicks == [(1, 0), (1, 0), (1, 0)]


def test_exhaustion_returns_false_and_next_row_continues(fetcher, fake_http, tmp_path):
    portal = _portal(
        [doc_row("Broken", "/v3/files/x.pdf"), doc_row("Fine", "/v3/files/y.pdf")],
        click_failures={(1, 0): 99},
    )
    processor = _processor(portal, fetcher, tmp_path)

    outcomes = [processor.process_row(index, 2) for index in range(2)]

    assert outcomes == [False, True]
    assert portal.row_clicks.count((1, 0)) == 3
    assert [bool(result) for result in processor.results] == [False, True]
    assert processor.results[0].error_code == ErrorCode.ROW_ACTION
    assert fake_http.calls == ["https://app.assectra.com.br/v3/files/y.pdf"]


def test_missing_action_icon_is_retried_then_abandoned(fetcher, tmp_path):
    portal = _portal([doc_row("No icon", "/v3/files/a.pdf", action=False)])
    processor = _processor(portal, fetcher, tmp_path)

    assert processor.process_row(0, 1) is False
    assert portal.row_clicks == []


def test_vanished_row_is_a_trivial_success(fetcher, fake_http, tmp_path):
    portal = _portal([doc_row("Only", "/v3/files/a.pdf")])
    processor = _processor(portal, fetcher, tmp_path)

    assert processor.process_row(5, 6) is True
    assert fake_http.calls == []
    assert processor.results == []


def test_not_found_download_is_not_retried(tmp_path, log_lines):
    from app.harvester.fetcher import DocumentFetcher, FetchedResponse

    url = "https://app.assectra.com.br/v3/files/gone.pdf"
    http = FakeHttp({url: FetchedResponse(404, "text/html", b"")})
    fetcher = DocumentFetcher(None, http_client=http, min_free_mb=0, log=log_lines.append)
    portal = _portal([doc_row("Gone", "/v3/files/gone.pdf")])
    processor = _processor(portal, fetcher, tmp_path)

    assert processor.process_row(0, 1) is False
    assert http.calls == [url]
    assert processor.results[0].http_status == 404


def test_session_loss_propagates(fetcher, tmp_path):
    portal = _portal([doc_row("A", "/v3/files/a.pdf")])
    portal.closed = True
    processor = _processor(portal, fetcher, tmp_path)

    with pytest.raises(PWError):
        processor.process_row(0, 1)


def test_employee_column_is_carried_across_blank_cells(fetcher, tmp_path):
    rows = [
        doc_row("ASO", "/v3/f/1.pdf", employee="João Souza"),
        doc_row("NR-35", "/v3/f/2.pdf"),
        doc_row("ASO", "/v3/f/3.pdf", employee="Maria Lima"),
    ]
    portal = FakeDocumentPortal(
        screen=EMPLOYEE_DOCUMENTS, pages=[rows], headers=("Colaborador", "Documento", "Arquivos")
    )
    portal.searched = True
    portal.url = EMPLOYEE_DOCUMENTS.url
    processor = _processor(
        portal,
        fetcher,
        tmp_path,
        screen=EMPLOYEE_DOCUMENTS,
        column_map={"COLABORADOR": 1, "DOCUMENTO": 2, "ARQUIVOS": 3},
    )

    for index in range(3):
        assert processor.process_row(index, 3)

    assert (tmp_path / "acme" / "joao_souza" / "ASO.pdf").exists()
    assert (tmp_path / "acme" / "joao_souza" / "NR-35.pdf").exists()
    assert (tmp_path / "acme" / "maria_lima" / "ASO.pdf").exists()
    assert processor.current_employee == "Maria Lima"
