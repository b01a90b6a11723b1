from __future__ import annotations

import pytest
from playwright.sync_api import Error as PWError

from app.harvester.error_codes import ErrorCode
from app.harvester.orchestrator import FilterCombination, harvest_documents, iter_combinations
from app.harvester.selectors import COMPANY_DOCUMENTS
from app.harvester.telemetry import RunTelemetry

from fake_portal import FakeDocumentPortal, doc_row


def _two_pages() -> list[list[dict]]:
    return [
        [doc_row("Alvará 2024", "/v3/files/1.pdf"), doc_row("Contrato Social", "/v3/files/2.pdf")],
        [doc_row("CNPJ", "/v3/files/3.pdf"), doc_row("Contract: Q1/2024?", "/v3/files/4.pdf")],
    ]


def _run(portal, fetcher, output_root, **kwargs):
    return harvest_documents(
        portal,
        kwargs.pop("companies", ["ACME"]),
        kwargs.pop("projects", ["SITE-A"]),
        screen=COMPANY_DOCUMENTS,
        output_root=output_root,
        fetcher=fetcher,
        log=lambda _m: None,
        sleep=lambda _s: None,
        **kwargs,
    )


def test_iter_combinations_is_the_cartesian_product():
    combos = list(iter_combinations(["A", "B"], ["X", "Y"]))

    assert combos == [
        FilterCombination("A", "X"),
        FilterCombination("A", "Y"),
        FilterCombination("B", "X"),
        FilterCombination("B", "Y"),
    ]


def test_two_pages_of_two_rows_yield_four_files(fetcher, tmp_path):
    portal = FakeDocumentPortal(pages=_two_pages())
    output_root = tmp_path / "company-documents"

    summary = _run(portal, fetcher, output_root)

    successes = [result for result in summary["results"] if result]
    assert len(successes) == 4
    assert summary["downloaded"] == 4
    assert summary["failed"] == 0
    saved = sorted(path.name for path in (output_root / "acme" / "site_a").iterdir())
    assert saved == ["Alvará 2024.pdf", "CNPJ.pdf", "Contract Q1 2024.pdf", "Contrato Social.pdf"]
    assert (output_root / "debug" / "debug_acme_site_a.png").exists()


def test_missing_company_is_skipped_without_output(fetcher, fake_http, tmp_path):
    portal = FakeDocumentPortal(companies={"OTHER CO": "3"}, pages=_two_pages())
    output_root = tmp_path / "company-documents"

    summary = _run(portal, fetcher, output_root)

    assert summary["skipped"] == 1
    assert summary["skip_reasons"] == {"ACME | SITE-A": ErrorCode.DROPDOWN_NOT_FOUND}
    assert summary["results"] == []
    assert fake_http.calls == []
    assert not (output_root / "acme").exists()


def test_skip_does_not_stop_remaining_combinations(fetcher, tmp_path):
    portal = FakeDocumentPortal(
        companies={"BETA": "2"}, projects={"SITE-A": "20"}, pages=[[doc_row("Doc", "/v3/f/d.pdf")]]
    )
    telemetry = RunTelemetry("assectra:companies:documents", runs_dir=tmp_path / "runs")

    summary = _run(portal, fetcher, tmp_path / "out", companies=["ACME", "BETA"], telemetry=telemetry)

    assert summary["combinations"] == 2
    assert summary["skipped"] == 1
    assert summary["downloaded"] == 1
    assert telemetry.count("skipped") == 1
    assert telemetry.count("downloaded") == 1


def test_project_is_resolved_after_the_company_is_selected(fetcher, tmp_path):
    portal = FakeDocumentPortal(
        companies={"ACME": "10", "BETA": "2"},
        projects_by_company={"10": {"SITE-A": "20"}, "2": {"SITE-B": "30"}},
        pages=[[doc_row("Doc", "/v3/f/d.pdf")]],
    )

    summary = _run(portal, fetcher, tmp_path / "out", companies=["ACME", "BETA"], projects=["SITE-A", "SITE-B"])

    assert summary["downloaded"] == 2
    assert summary["skip_reasons"] == {
        "ACME | SITE-B": ErrorCode.DROPDOWN_NOT_FOUND,
        "BETA | SITE-A": ErrorCode.DROPDOWN_NOT_FOUND,
    }
    assert (tmp_path / "out" / "acme" / "site_a" / "Doc.pdf").exists()
    assert (tmp_path / "out" / "beta" / "site_b" / "Doc.pdf").exists()


def test_no_results_banner_skips_the_combination(fetcher, tmp_path):
    portal = FakeDocumentPortal(no_results=True)

    summary = _run(portal, fetcher, tmp_path / "out")

    assert summary["skip_reasons"] == {"ACME | SITE-A": ErrorCode.NO_RESULTS}


def test_results_timeout_skips_the_combination(fetcher, tmp_path):
    portal = FakeDocumentPortal(results_timeout=True)

    summary = _run(portal, fetcher, tmp_path / "out")

    assert summary["skip_reasons"] == {"ACME | SITE-A": ErrorCode.RESULTS_TIMEOUT}


def test_missing_file_column_skips_the_combination(fetcher, tmp_path):
    portal = FakeDocumentPortal(headers=("Documento", "Validade"), pages=_two_pages())

    summary = _run(portal, fetcher, tmp_path / "out")

    assert summary["skip_reasons"] == {"ACME | SITE-A": ErrorCode.MISSING_COLUMNS}
    assert portal.row_clicks == []


def test_filter_failure_skips_the_combination(fetcher, tmp_path):
    portal = FakeDocumentPortal(failing_selects=[COMPANY_DOCUMENTS.company_select])

    summary = _run(portal, fetcher, tmp_path / "out")

    assert summary["skip_reasons"] == {"ACME | SITE-A": ErrorCode.FILTER_APPLICATION}


def test_page_window_limits_downloads(fetcher, tmp_path):
    portal = FakeDocumentPortal(pages=_two_pages())

    summary = _run(portal, fetcher, tmp_path / "out", start_page=2, end_page=2)

    names = sorted(result.saved_path.name for result in summary["results"])
    assert names == ["CNPJ.pdf", "Contract Q1 2024.pdf"]


def test_debug_dir_is_wiped_each_run(fetcher, tmp_path):
    stale = tmp_path / "out" / "debug" / "stale.png"
    stale.parent.mkdir(parents=True)
    stale.write_bytes(b"old")

    _run(FakeDocumentPortal(no_results=True), fetcher, tmp_path / "out")

    assert not stale.exists()


def test_closed_session_stops_the_run(fetcher, tmp_path):
    class _Crashing(FakeDocumentPortal):
        def option_value_for_label(self, select_selector, label):
            raise PWError("Target closed")

    with pytest.raises(PWError):
        _run(_Crashing(), fetcher, tmp_path / "out")
