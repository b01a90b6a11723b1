from __future__ import annotations

from typing import Iterable, Optional

from .error_codes import ErrorCode


class HarvestError(Exception):
    """Base class for harvester failures carrying an :class:`ErrorCode`."""

    default_code = ErrorCode.INTERNAL

    def __init__(self, message: str, *, error_code: str | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code or self.default_code

    def __str__(self) -> str:  # pragma: no cover - inherited behaviour
        return str(self.args[0]) if self.args else ""


class FilterApplicationError(HarvestError):
    default_code = ErrorCode.FILTER_APPLICATION


class MissingRequiredColumns(HarvestError):
    default_code = ErrorCode.MISSING_COLUMNS

    def __init__(self, missing: Iterable[str], found: Iterable[str]) -> None:
        self.missing = sorted(missing)
        self.found = list(found)
        super().__init__(
            f"Missing required columns {self.missing}; found {self.found}"
        )


class RowActionFailure(HarvestError):
    default_code = ErrorCode.ROW_ACTION


class InvalidFileContent(HarvestError):
    default_code = ErrorCode.INVALID_FILE_CONTENT

    def __init__(self, message: str, *, preview: str = "") -> None:
        self.preview = preview
        detail = f"{message} (preview={preview!r})" if preview else message
        super().__init__(detail)


class DownloadError(HarvestError):
    default_code = ErrorCode.NETWORK

    def __init__(
        self, message: str, *, error_code: str | None = None, http_status: Optional[int] = None
    ) -> None:
        super().__init__(message, error_code=error_code)
        self.http_status = http_status


class LoginError(HarvestError):
    default_code = ErrorCode.LOGIN


__all__ = [
    "HarvestError",
    "FilterApplicationError",
    "MissingRequiredColumns",
    "RowActionFailure",
    "InvalidFileContent",
    "DownloadError",
    "LoginError",
]
