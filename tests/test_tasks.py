from __future__ import annotations

import pytest

from app.harvester.selectors import COMPANY_DOCUMENTS, EMPLOYEE_DOCUMENTS
from app.harvester.tasks import TASKS, parse_task


@pytest.mark.parametrize(
    "command, screen, needs_projects",
    [
        ("assectra:companies:documents", COMPANY_DOCUMENTS, True),
        ("ASSECTRA:Employees:Documents", EMPLOYEE_DOCUMENTS, True),
        (" assectra:employees:profiles ", None, False),
    ],
)
def test_parse_known_tasks(command: str, screen, needs_projects: bool) -> None:
    spec = parse_task(command)

    assert spec.screen is screen
    assert spec.needs_projects is needs_projects
    assert spec.command in TASKS


@pytest.mark.parametrize("command", ["", None, "assectra:companies", "assectra::documents", "a:b:c:d"])
def test_malformed_tasks_are_rejected(command) -> None:
    with pytest.raises(ValueError, match="Invalid task"):
        parse_task(command)


def test_unknown_task_lists_valid_ones() -> None:
    with pytest.raises(ValueError) as excinfo:
        parse_task("inmeta:companies:documents")

    assert "assectra:employees:profiles" in str(excinfo.value)
