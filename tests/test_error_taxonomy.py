import pytest

from app.harvester.error_codes import ErrorCode
from app.harvester.errors import (
    DownloadError,
    FilterApplicationError,
    HarvestError,
    InvalidFileContent,
    LoginError,
    MissingRequiredColumns,
    RowActionFailure,
)
from app.harvester.fetcher import FetchedResponse

from fake_portal import FakeHttp

URL = "https://app.assectra.com.br/v3/files/doc.pdf"


@pytest.mark.parametrize(
    "exc, code",
    [
        (FilterApplicationError("x"), ErrorCode.FILTER_APPLICATION),
        (RowActionFailure("x"), ErrorCode.ROW_ACTION),
        (InvalidFileContent("x"), ErrorCode.INVALID_FILE_CONTENT),
        (DownloadError("x"), ErrorCode.NETWORK),
        (LoginError("x"), ErrorCode.LOGIN),
        (HarvestError("x"), ErrorCode.INTERNAL),
    ],
)
def test_default_error_codes(exc: HarvestError, code: str) -> None:
    assert exc.error_code == code


def test_missing_columns_reports_what_was_found() -> None:
    exc = MissingRequiredColumns({"ARQUIVOS"}, {"DOCUMENTO": 2})

    assert exc.missing == ["ARQUIVOS"]
    assert exc.found == ["DOCUMENTO"]
    assert exc.error_code == ErrorCode.MISSING_COLUMNS
    assert "ARQUIVOS" in str(exc)


@pytest.mark.parametrize(
    "status, code",
    [
        (401, ErrorCode.HTTP_401),
        (403, ErrorCode.HTTP_403),
        (404, ErrorCode.HTTP_404),
        (410, ErrorCode.HTTP_4XX),
        (503, ErrorCode.HTTP_5XX),
    ],
)
def test_fetch_maps_http_status_to_error_code(status: int, code: str, tmp_path, log_lines) -> None:
    from app.harvester.fetcher import DocumentFetcher

    http = FakeHttp({URL: FetchedResponse(status, "text/html", b"error page")})
    fetcher = DocumentFetcher(None, http_client=http, min_free_mb=0, log=log_lines.append)

    result = fetcher.fetch(URL, tmp_path, "doc.pdf")

    assert result.error_code == code
    assert result.http_status == status
    assert result.as_dict()["error_code"] == code
