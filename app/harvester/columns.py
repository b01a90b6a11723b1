from __future__ import annotations

from typing import Any, Dict, Iterable, Sequence

from . import config
from .errors import MissingRequiredColumns
from .logging_utils import LogFn, _harvest_event
from .utils import log_line

ColumnMap = Dict[str, int]


def map_header_labels(labels: Sequence[str]) -> ColumnMap:
    """Map uppercased, trimmed header labels to 1-based column positions.

    Empty headers (icon or checkbox columns) keep their position but get no
    entry; the first occurrence of a repeated label wins.
    """

    column_map: ColumnMap = {}
    for position, raw in enumerate(labels, start=1):
        label = (raw or "").strip().upper()
        if label:
            column_map.setdefault(label, position)
    return column_map


def build_column_map(
    session: Any,
    header_row_selector: str,
    required: Iterable[str] = (),
    *,
    log: LogFn = log_line,
) -> ColumnMap:
    """Read the rendered header row and return its :data:`ColumnMap`.

    Raises :class:`MissingRequiredColumns` when any ``required`` label is absent.
    """

    session.wait_for(
        header_row_selector, state="attached", timeout_seconds=config.SELECTOR_TIMEOUT_SECONDS
    )
    labels = session.texts(f"{header_row_selector} th")
    column_map = map_header_labels(labels)

    missing = {label.strip().upper() for label in required} - set(column_map)
    if missing:
        log(
            f"[COLUMNS][ERROR] Required columns {sorted(missing)} not found; "
            f"headers were: {', '.join(column_map) or '(none)'}"
        )
        raise MissingRequiredColumns(missing, column_map)

    log(f"Column mapping detected: {column_map}")
    _harvest_event("columns", log=log, mapping=column_map)
    return column_map


__all__ = ["ColumnMap", "map_header_labels", "build_column_map"]
