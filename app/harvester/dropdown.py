from __future__ import annotations

import time
from typing import Any, Callable, Optional

from playwright.sync_api import Error as PWError

from . import config
from .logging_utils import LogFn, _harvest_event
from .session import is_target_closed_error
from .utils import log_line


def resolve_option_value(
    session: Any,
    select_selector: str,
    visible_label: str,
    timeout_seconds: float,
    *,
    poll_seconds: float = config.DROPDOWN_POLL_SECONDS,
    clock: Callable[[], float] = time.monotonic,
    log: LogFn = log_line,
) -> Optional[str]:
    """Return the value of the option labelled ``visible_label``, or ``None``.

    Matching is case-insensitive on trimmed option text. The select and its
    options may render after the page settles, so the lookup is polled until
    ``timeout_seconds`` elapses. A missing option is an expected outcome and
    never raises.
    """

    deadline = clock() + max(0.0, timeout_seconds)
    polls = 0
    while True:
        polls += 1
        try:
            value = session.option_value_for_label(select_selector, visible_label)
        except PWError as exc:
            if is_target_closed_error(exc):
                raise
            value = None
        if value is not None:
            _harvest_event(
                "dropdown", log=log, step="resolved", option=visible_label, value=value, polls=polls
            )
            return value
        if clock() >= deadline:
            break
        session.pause(poll_seconds)

    log(
        f"[DROPDOWN][WARN] Option {visible_label!r} not found in {select_selector!r} "
        f"after {timeout_seconds}s."
    )
    _harvest_event("dropdown", log=log, step="not_found", option=visible_label, polls=polls)
    return None


__all__ = ["resolve_option_value"]
