from __future__ import annotations

import pytest

from app.harvester import config, utils
from app.harvester.fetcher import DocumentFetcher
from fake_portal import FakeHttp


@pytest.fixture(autouse=True)
def isolated_output(tmp_path, monkeypatch):
    """Point every output path at ``tmp_path`` and make dropdown lookups instant."""

    output = tmp_path / "output"
    monkeypatch.setattr(config, "OUTPUT_DIR", output)
    monkeypatch.setattr(config, "LOG_DIR", output / "logs")
    monkeypatch.setattr(config, "RUNS_DIR", output / "runs")
    monkeypatch.setattr(config, "EXPORTS_DIR", output / "exports")
    monkeypatch.setattr(config, "SUMMARY_FILE", output / "last_summary.json")
    monkeypatch.setattr(config, "DROPDOWN_TIMEOUT_SECONDS", 0)
    monkeypatch.setattr(config, "PROFILE_DROPDOWN_TIMEOUT_SECONDS", 0)
    monkeypatch.setattr(utils, "_LOGGER_INITIALISED", False)
    yield output
    utils._close_handlers()


@pytest.fixture
def log_lines() -> list[str]:
    return []


@pytest.fixture
def fake_http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def fetcher(fake_http, log_lines) -> DocumentFetcher:
    return DocumentFetcher(None, http_client=fake_http, min_free_mb=0, log=log_lines.append)
