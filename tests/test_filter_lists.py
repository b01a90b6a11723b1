from __future__ import annotations

from pathlib import Path

import pytest

from app.harvester import config
from app.harvester.filter_lists import load_filter_lists, read_list_file


def test_json_array_is_read(tmp_path: Path) -> None:
    path = tmp_path / "companies.json"
    path.write_text('["FJ CONSTRUÇÕES", "  ACME  ", ""]', encoding="utf-8")

    assert read_list_file(path) == ["FJ CONSTRUÇÕES", "ACME"]


def test_text_file_skips_comments_and_blank_lines(tmp_path: Path) -> None:
    path = tmp_path / "projects.txt"
    path.write_text("# current sites\nBELFORT\n\n  CHAMONIX \n", encoding="utf-8")

    assert read_list_file(path) == ["BELFORT", "CHAMONIX"]


@pytest.mark.parametrize("content", ['{"companies": ["A"]}', "[1, 2]", "[not json", "[]"])
def test_malformed_or_empty_lists_are_rejected(tmp_path: Path, content: str) -> None:
    path = tmp_path / "companies.json"
    path.write_text(content, encoding="utf-8")

    assert read_list_file(path) is None


def test_missing_file_is_none(tmp_path: Path) -> None:
    assert read_list_file(tmp_path / "absent.json") is None


def test_given_files_win_over_defaults(tmp_path: Path) -> None:
    companies = tmp_path / "c.json"
    companies.write_text('["ACME"]', encoding="utf-8")
    projects = tmp_path / "p.txt"
    projects.write_text("SITE-A\nSITE-B\n", encoding="utf-8")

    assert load_filter_lists(companies, projects, log=lambda _m: None) == (["ACME"], ["SITE-A", "SITE-B"])


def test_fallback_lists_are_used_when_nothing_loads(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "COMPANIES_FILE", tmp_path / "companies.json")
    monkeypatch.setattr(config, "PROJECTS_FILE", tmp_path / "projects.json")
    messages: list[str] = []

    companies, projects = load_filter_lists(log=messages.append)

    assert companies == config.FALLBACK_COMPANIES
    assert projects == config.FALLBACK_PROJECTS
    assert companies is not config.FALLBACK_COMPANIES
    assert any("fallback" in message for message in messages)
