from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from .selectors import COMPANY_DOCUMENTS, EMPLOYEE_DOCUMENTS, DocumentScreenSelectors

COMPANY_DOCUMENTS_TASK = "assectra:companies:documents"
EMPLOYEE_DOCUMENTS_TASK = "assectra:employees:documents"
EMPLOYEE_PROFILES_TASK = "assectra:employees:profiles"


@dataclass(frozen=True)
class TaskSpec:
    command: str
    system: str
    entity: str
    task: str
    output_dir_name: str
    # Document screens only; profile extraction has its own selectors.
    screen: Optional[DocumentScreenSelectors] = None
    needs_projects: bool = False


TASKS: Dict[str, TaskSpec] = {
    COMPANY_DOCUMENTS_TASK: TaskSpec(
        command=COMPANY_DOCUMENTS_TASK,
        system="assectra",
        entity="companies",
        task="documents",
        output_dir_name=COMPANY_DOCUMENTS.output_dir_name,
        screen=COMPANY_DOCUMENTS,
        needs_projects=True,
    ),
    EMPLOYEE_DOCUMENTS_TASK: TaskSpec(
        command=EMPLOYEE_DOCUMENTS_TASK,
        system="assectra",
        entity="employees",
        task="documents",
        output_dir_name=EMPLOYEE_DOCUMENTS.output_dir_name,
        screen=EMPLOYEE_DOCUMENTS,
        needs_projects=True,
    ),
    EMPLOYEE_PROFILES_TASK: TaskSpec(
        command=EMPLOYEE_PROFILES_TASK,
        system="assectra",
        entity="employees",
        task="profiles",
        output_dir_name="employee-profiles",
    ),
}


def parse_task(command: Optional[str]) -> TaskSpec:
    """Return the :class:`TaskSpec` for ``<system>:<entity>:<task>``.

    Raises ``ValueError`` for malformed or unknown commands.
    """

    raw = (command or "").strip().lower()
    parts = raw.split(":")
    if len(parts) != 3 or not all(parts):
        raise ValueError(
            f"Invalid task {command!r}; expected <system>:<entity>:<task>, "
            f"e.g. {EMPLOYEE_PROFILES_TASK}"
        )
    spec = TASKS.get(raw)
    if spec is None:
        raise ValueError(
            f"Unknown task {command!r}; valid tasks: {', '.join(sorted(TASKS))}"
        )
    return spec


__all__ = [
    "TaskSpec",
    "TASKS",
    "parse_task",
    "COMPANY_DOCUMENTS_TASK",
    "EMPLOYEE_DOCUMENTS_TASK",
    "EMPLOYEE_PROFILES_TASK",
]
