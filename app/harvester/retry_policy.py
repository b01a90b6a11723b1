from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

import requests
from playwright.sync_api import Error as PWError, TimeoutError as PWTimeout

from .error_codes import ErrorCode
from .errors import DownloadError, HarvestError
from .logging_utils import _harvest_event
from .session import is_target_closed_error

T = TypeVar("T")

RETRYABLE_ERROR_CODES = {
    ErrorCode.NETWORK,
    ErrorCode.HTTP_5XX,
    ErrorCode.EMPTY_RESPONSE,
    ErrorCode.INVALID_FILE_CONTENT,
    ErrorCode.ROW_ACTION,
    ErrorCode.UI_TIMEOUT,
    ErrorCode.INTERNAL,
}

NON_RETRYABLE_ERROR_CODES = {
    ErrorCode.HTTP_401,
    ErrorCode.HTTP_403,
    ErrorCode.HTTP_404,
    ErrorCode.HTTP_4XX,
    ErrorCode.MISSING_COLUMNS,
    ErrorCode.LOGIN,
}

# Session-level failures: nothing later in the run can succeed.
FATAL_ERROR_CODES = {ErrorCode.SESSION_CLOSED}


def classify_exception(exc: BaseException) -> str:
    """Map an exception raised by a UI/download step to an :class:`ErrorCode`."""

    if isinstance(exc, HarvestError):
        return exc.error_code
    if isinstance(exc, PWTimeout):
        return ErrorCode.UI_TIMEOUT
    if isinstance(exc, PWError):
        if is_target_closed_error(exc):
            return ErrorCode.SESSION_CLOSED
        return ErrorCode.ROW_ACTION
    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return ErrorCode.NETWORK
    return ErrorCode.INTERNAL


def decide_retry(
    attempt_index: int,
    max_attempts: int,
    error: BaseException | None = None,
    *,
    error_code: Optional[str] = None,
    http_status: Optional[int] = None,
) -> bool:
    """Decide whether a failed attempt should be retried."""

    code = (error_code or "").strip()
    if attempt_index >= max_attempts:
        _harvest_event(
            "state",
            phase="retry_decision",
            kind="capped",
            attempt=attempt_index,
            max_attempts=max_attempts,
            error_code=code or None,
            http_status=http_status,
            will_retry=False,
        )
        return False

    if code in NON_RETRYABLE_ERROR_CODES or code in FATAL_ERROR_CODES:
        _harvest_event(
            "state",
            phase="retry_decision",
            kind="non_retryable",
            error_code=code,
            attempt=attempt_index,
            max_attempts=max_attempts,
            http_status=http_status,
            will_retry=False,
        )
        return False

    if code in RETRYABLE_ERROR_CODES or (http_status is not None and http_status >= 500):
        _harvest_event(
            "state",
            phase="retry_decision",
            kind="retryable",
            error_code=code or None,
            attempt=attempt_index,
            max_attempts=max_attempts,
            http_status=http_status,
            will_retry=True,
        )
        return True

    _harvest_event(
        "state",
        phase="retry_decision",
        kind="unknown" if code else "missing_error_code",
        error_code=code or None,
        attempt=attempt_index,
        max_attempts=max_attempts,
        http_status=http_status,
        will_retry=False,
        error_repr=repr(error) if error is not None else None,
    )
    return False


@dataclass
class RetryOutcome(Generic[T]):
    ok: bool
    value: Optional[T]
    attempts: int
    error_code: Optional[str] = None
    error: Optional[BaseException] = None


def call_with_retries(
    fn: Callable[[int], T],
    *,
    max_attempts: int,
    delay_seconds: float,
    classify: Callable[[BaseException], str] = classify_exception,
    on_failure: Optional[Callable[[int, BaseException, str, bool], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RetryOutcome[T]:
    """Call ``fn(attempt)`` up to ``max_attempts`` times with a fixed delay.

    Exceptions are classified into error codes; fatal codes re-raise, other
    failures are retried while :func:`decide_retry` allows it. The final
    failure is returned as a :class:`RetryOutcome` rather than raised.
    """

    attempts = max(1, max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return RetryOutcome(ok=True, value=fn(attempt), attempts=attempt)
        except Exception as exc:  # noqa: BLE001
            code = classify(exc)
            if code in FATAL_ERROR_CODES:
                raise
            http_status = getattr(exc, "http_status", None) if isinstance(exc, DownloadError) else None
            will_retry = decide_retry(
                attempt, attempts, exc, error_code=code, http_status=http_status
            )
            if on_failure is not None:
                on_failure(attempt, exc, code, will_retry)
            if not will_retry:
                return RetryOutcome(
                    ok=False, value=None, attempts=attempt, error_code=code, error=exc
                )
            sleep(delay_seconds)

    raise RuntimeError("call_with_retries exhausted without returning a result")


__all__ = [
    "decide_retry",
    "call_with_retries",
    "classify_exception",
    "RetryOutcome",
    "RETRYABLE_ERROR_CODES",
    "NON_RETRYABLE_ERROR_CODES",
    "FATAL_ERROR_CODES",
]
