from __future__ import annotations

from typing import Literal, Optional

from . import config
from .logging_utils import _harvest_event
from .utils import log_line

Entrypoint = Literal["ui", "cli", "tests"]

# Entrypoints that drive the live portal and therefore need credentials.
LIVE_ENTRYPOINTS = {"ui", "cli"}


def _raise_config_error(
    message: str, *, entrypoint: Entrypoint, error: str, task: str | None
) -> None:
    _harvest_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
        task=task,
    )
    task_fragment = f", task={task}" if task else ""
    log_line(f"[CONFIG][ERROR] {message} (entrypoint={entrypoint}{task_fragment})")
    raise ValueError(message)


def _clamp(field: str, value: float, adjusted: float, *, entrypoint: Entrypoint, task: str | None) -> None:
    _harvest_event(
        "state",
        phase="config",
        context="runtime_validation",
        kind="config_adjustment",
        field=field,
        value=value,
        adjusted=adjusted,
        entrypoint=entrypoint,
        task=task,
    )
    log_line(f"[CONFIG][WARN] {field}={value} is out of range; clamping to {adjusted}.")
    setattr(config, field, adjusted)


def validate_runtime_config(
    entrypoint: Entrypoint,
    *,
    task: Optional[str] = None,
    start_page: int = 1,
    end_page: Optional[int] = None,
) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Soft knobs (row retry attempts and delay) are clamped and logged.
    """

    if entrypoint in LIVE_ENTRYPOINTS and not config.credentials_configured():
        _raise_config_error(
            "ASSECTRA_USER and ASSECTRA_PASSWORD must be set for live runs.",
            entrypoint=entrypoint,
            error="missing_credentials",
            task=task,
        )

    if config.FETCH_TRANSPORT not in config.FETCH_TRANSPORTS:
        _raise_config_error(
            f"HARVEST_FETCH_TRANSPORT must be one of {', '.join(config.FETCH_TRANSPORTS)}.",
            entrypoint=entrypoint,
            error="invalid_fetch_transport",
            task=task,
        )

    if config.MIN_FREE_MB < 0:
        _raise_config_error(
            "MIN_FREE_MB must be non-negative.",
            entrypoint=entrypoint,
            error="min_free_mb_invalid",
            task=task,
        )

    timeout_fields = [
        ("NAV_TIMEOUT_SECONDS", config.NAV_TIMEOUT_SECONDS),
        ("SELECTOR_TIMEOUT_SECONDS", config.SELECTOR_TIMEOUT_SECONDS),
        ("RESULTS_TIMEOUT_SECONDS", config.RESULTS_TIMEOUT_SECONDS),
        ("MODAL_TIMEOUT_SECONDS", config.MODAL_TIMEOUT_SECONDS),
        ("DOWNLOAD_TIMEOUT_SECONDS", config.DOWNLOAD_TIMEOUT_SECONDS),
    ]
    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
                task=task,
            )

    if start_page < 1:
        _raise_config_error(
            "start page must be 1 or greater.",
            entrypoint=entrypoint,
            error="invalid_start_page",
            task=task,
        )
    if end_page is not None and end_page < start_page:
        _raise_config_error(
            f"end page ({end_page}) must not be before start page ({start_page}).",
            entrypoint=entrypoint,
            error="invalid_page_range",
            task=task,
        )

    if config.ROW_MAX_ATTEMPTS < 1:
        _clamp("ROW_MAX_ATTEMPTS", config.ROW_MAX_ATTEMPTS, 1, entrypoint=entrypoint, task=task)
    if config.ROW_RETRY_DELAY_SECONDS < 0:
        _clamp(
            "ROW_RETRY_DELAY_SECONDS", config.ROW_RETRY_DELAY_SECONDS, 0.0, entrypoint=entrypoint, task=task
        )


__all__ = ["validate_runtime_config", "Entrypoint"]
