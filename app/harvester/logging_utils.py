from __future__ import annotations

from typing import Any, Callable

from .utils import log_line

# Components take a ``log`` callable so tests and callers can capture output
# without touching the shared logger.
LogFn = Callable[[str], None]


def _harvest_event(
    label: str = "",
    /,
    *,
    phase: str | None = None,
    log: LogFn | None = None,
    **fields: Any,
) -> None:
    """Emit a structured harvester log line.

    ``phase`` may be used as a keyword alias for the label. When both ``label``
    and ``phase`` are provided, ``phase`` is emitted as part of the payload so
    the caller still captures the event stage. ``label`` is positional-only, so
    a payload field may itself be called ``label``. ``log`` routes the line to a
    component's injected writer instead of the shared logger.
    """

    try:
        phase_label = label or (phase or "")
        if phase and label:
            fields.setdefault("phase", phase)
        payload = ", ".join(f"{k}={repr(v)}" for k, v in sorted(fields.items()))
        (log or log_line)(f"[HARVEST][{phase_label.upper()}] {payload}")
    except Exception:
        # Never let logging break the harvester.
        return


__all__ = ["_harvest_event", "LogFn"]
