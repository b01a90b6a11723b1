"""Centralised error code taxonomy for harvester failures.

These codes appear in structured logs, run telemetry and download results so
that a run can be explained without re-running it. Keep them stable; the
telemetry exports group by them.
"""
from __future__ import annotations


class ErrorCode:
    NETWORK = "network_error"
    HTTP_4XX = "http_4xx"
    HTTP_401 = "http_401_unauthorised"
    HTTP_403 = "http_403_forbidden"
    HTTP_404 = "http_404_not_found"
    HTTP_5XX = "http_5xx"
    EMPTY_RESPONSE = "empty_response"
    INVALID_FILE_CONTENT = "invalid_file_content"
    DROPDOWN_NOT_FOUND = "dropdown_not_found"
    FILTER_APPLICATION = "filter_application_failed"
    MISSING_COLUMNS = "missing_required_columns"
    RESULTS_TIMEOUT = "results_timeout"
    NO_RESULTS = "no_results"
    ROW_ACTION = "row_action_failed"
    UI_TIMEOUT = "ui_timeout"
    LOGIN = "login_failed"
    SESSION_CLOSED = "session_closed"
    INTERNAL = "internal_error"


__all__ = ["ErrorCode"]
