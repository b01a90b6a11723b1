from __future__ import annotations

import pytest
import requests
from playwright.sync_api import Error as PWError, TimeoutError as PWTimeout

from app.harvester import retry_policy
from app.harvester.error_codes import ErrorCode
from app.harvester.errors import DownloadError, RowActionFailure


@pytest.fixture
def event_recorder(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, dict]]:
    events: list[tuple[str, dict]] = []

    def _record(event_phase: str, **fields: object) -> None:
        events.append((event_phase, fields))

    monkeypatch.setattr(retry_policy, "_harvest_event", _record)
    return events


@pytest.mark.parametrize(
    "attempt, expected, kind",
    [
        (1, True, "retryable"),
        (2, True, "retryable"),
        (3, False, "capped"),
        (5, False, "capped"),
    ],
)
def test_row_action_retry_limits(
    attempt: int, expected: bool, kind: str, event_recorder: list[tuple[str, dict]]
) -> None:
    result = retry_policy.decide_retry(attempt, 3, error_code=ErrorCode.ROW_ACTION)
    assert result is expected
    assert len(event_recorder) == 1
    phase, fields = event_recorder[0]
    assert phase == "state"
    assert fields["phase"] == "retry_decision"
    assert fields["attempt"] == attempt
    assert fields["max_attempts"] == 3
    assert fields["will_retry"] is expected
    assert fields["kind"] == kind


@pytest.mark.parametrize(
    "error_code",
    [ErrorCode.HTTP_404, ErrorCode.HTTP_403, ErrorCode.MISSING_COLUMNS, ErrorCode.SESSION_CLOSED],
)
def test_non_retryable_error_codes(error_code: str, event_recorder: list[tuple[str, dict]]) -> None:
    assert retry_policy.decide_retry(1, 3, error_code=error_code) is False
    _, fields = event_recorder[0]
    assert fields["kind"] == "non_retryable"
    assert fields["error_code"] == error_code


@pytest.mark.parametrize(
    "error_code, expected_kind",
    [
        ("", "missing_error_code"),
        (None, "missing_error_code"),
        ("unexpected_code", "unknown"),
    ],
)
def test_missing_or_unknown_error_codes(
    error_code: str | None, expected_kind: str, event_recorder: list[tuple[str, dict]]
) -> None:
    assert retry_policy.decide_retry(1, 3, error_code=error_code) is False
    _, fields = event_recorder[0]
    assert fields["will_retry"] is False
    assert fields["kind"] == expected_kind


def test_server_errors_are_retried_by_status(event_recorder: list[tuple[str, dict]]) -> None:
    assert retry_policy.decide_retry(1, 3, error_code="custom", http_status=502) is True


@pytest.mark.parametrize(
    "exc, code",
    [
        (RowActionFailure("no icon"), ErrorCode.ROW_ACTION),
        (PWTimeout("Timeout 10000ms exceeded"), ErrorCode.UI_TIMEOUT),
        (PWError("Target closed"), ErrorCode.SESSION_CLOSED),
        (PWError("Element is not attached to the DOM"), ErrorCode.ROW_ACTION),
        (requests.ConnectionError("reset"), ErrorCode.NETWORK),
        (KeyError("x"), ErrorCode.INTERNAL),
    ],
)
def test_classify_exception(exc: BaseException, code: str) -> None:
    assert retry_policy.classify_exception(exc) == code


def test_call_with_retries_sleeps_between_attempts(event_recorder) -> None:
    sleeps: list[float] = []
    attempts: list[int] = []

    def _flaky(attempt: int) -> str:
        attempts.append(attempt)
        if attempt < 3:
            raise RowActionFailure("not yet")
        return "done"

    outcome = retry_policy.call_with_retries(_flaky, max_attempts=3, delay_seconds=5, sleep=sleeps.append)

    assert outcome.ok and outcome.value == "done"
    assert outcome.attempts == 3
    assert attempts == [1, 2, 3]
    assert sleeps == [5, 5]


def test_call_with_retries_stops_on_non_retryable(event_recorder) -> None:
    sleeps: list[float] = []
    failures: list[tuple[int, str, bool]] = []

    def _gone(attempt: int) -> None:
        raise DownloadError("not found", error_code=ErrorCode.HTTP_404, http_status=404)

    outcome = retry_policy.call_with_retries(
        _gone,
        max_attempts=3,
        delay_seconds=5,
        sleep=sleeps.append,
        on_failure=lambda attempt, exc, code, retry: failures.append((attempt, code, retry)),
    )

    assert outcome.ok is False
    assert outcome.error_code == ErrorCode.HTTP_404
    assert failures == [(1, ErrorCode.HTTP_404, False)]
    assert sleeps == []


def test_call_with_retries_reraises_session_loss(event_recorder) -> None:
    def _closed(attempt: int) -> None:
        raise PWError("Target closed")

    with pytest.raises(PWError):
        retry_policy.call_with_retries(_closed, max_attempts=3, delay_seconds=0, sleep=lambda _s: None)
