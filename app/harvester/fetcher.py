"""Authenticated file downloads for harvested rows and profile photos.

Bytes are fetched inside the browser session's authentication (its cookies,
user agent and referer), validated, and only then written to disk.
"""
from __future__ import annotations

import base64
import binascii
import mimetypes
import urllib.parse
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import requests
from playwright.sync_api import Error as PWError, TimeoutError as PWTimeout

from . import config
from .error_codes import ErrorCode
from .errors import DownloadError, HarvestError, InvalidFileContent
from .logging_utils import LogFn, _harvest_event
from .session import is_target_closed_error
from .utils import disk_has_room, log_line

KNOWN_SIGNATURES: Dict[str, Tuple[bytes, ...]] = {
    ".pdf": (b"%PDF-",),
    ".png": (b"\x89PNG\r\n\x1a\n",),
    ".jpg": (b"\xff\xd8\xff",),
    ".jpeg": (b"\xff\xd8\xff",),
    ".gif": (b"GIF87a", b"GIF89a"),
}

_CONTENT_TYPE_EXTENSIONS = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
}

PREVIEW_BYTES = 64


@dataclass
class DownloadResult:
    success: bool
    url: str
    saved_path: Optional[Path] = None
    error_code: Optional[str] = None
    error_reason: Optional[str] = None
    http_status: Optional[int] = None

    def __bool__(self) -> bool:
        return self.success

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "url": self.url,
            "saved_path": str(self.saved_path) if self.saved_path else None,
            "error_code": self.error_code,
            "error_reason": self.error_reason,
            "http_status": self.http_status,
        }


@dataclass
class FetchedResponse:
    status: Optional[int]
    content_type: str
    body: bytes


HttpClient = Callable[[str, float], FetchedResponse]


def _redact_url(url: str) -> str:
    if url.startswith("data:"):
        return url[:32] + "..."
    try:
        parsed = urllib.parse.urlparse(url)
        return urllib.parse.urlunparse(parsed._replace(query=""))
    except ValueError:
        return url


def _classify_http_status(status: Optional[int]) -> str:
    if status is None:
        return ErrorCode.INTERNAL
    if status == 401:
        return ErrorCode.HTTP_401
    if status == 403:
        return ErrorCode.HTTP_403
    if status == 404:
        return ErrorCode.HTTP_404
    if 400 <= status < 500:
        return ErrorCode.HTTP_4XX
    if status >= 500:
        return ErrorCode.HTTP_5XX
    return ErrorCode.INTERNAL


def extension_for_content_type(content_type: Optional[str]) -> str:
    """Return a file extension (with dot) for a media type, or ``""``."""

    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if not media_type:
        return ""
    if media_type in _CONTENT_TYPE_EXTENSIONS:
        return _CONTENT_TYPE_EXTENSIONS[media_type]
    return mimetypes.guess_extension(media_type) or ""


def _preview(body: bytes) -> str:
    return body[:PREVIEW_BYTES].decode("utf-8", errors="replace")


def validate_signature(filename: str, body: bytes) -> None:
    """Raise :class:`InvalidFileContent` when ``body`` does not match its extension."""

    signatures = KNOWN_SIGNATURES.get(Path(filename).suffix.lower())
    if not signatures:
        return
    if not any(body.startswith(signature) for signature in signatures):
        raise InvalidFileContent(
            f"Content of {filename!r} does not look like a {Path(filename).suffix} file",
            preview=_preview(body),
        )


def _decode_data_url(url: str) -> FetchedResponse:
    header, _, payload = url.partition(",")
    media_type = header[len("data:"):].split(";", 1)[0]
    try:
        if ";base64" in header:
            body = base64.b64decode(payload, validate=False)
        else:
            body = urllib.parse.unquote_to_bytes(payload)
    except (binascii.Error, ValueError) as exc:
        raise InvalidFileContent(f"Malformed data URL: {exc}") from exc
    return FetchedResponse(status=200, content_type=media_type, body=body)


def cookies_to_requests_session(
    cookies: list[dict[str, Any]],
    *,
    user_agent: Optional[str] = None,
    referer: Optional[str] = None,
) -> requests.Session:
    """Build a requests session hydrated with the browser's cookies."""

    http = requests.Session()
    if user_agent:
        http.headers["User-Agent"] = user_agent
    if referer:
        http.headers["Referer"] = referer
    for cookie in cookies:
        http.cookies.set(
            cookie["name"],
            cookie["value"],
            domain=cookie.get("domain") or "",
            path=cookie.get("path") or "/",
        )
    return http


def session_http_client(session: Any) -> HttpClient:
    """Return an HTTP client that reuses ``session``'s cookies via ``requests``.

    The requests session is rebuilt on every call so cookies refreshed by the
    portal between rows are picked up.
    """

    def _get(url: str, timeout: float) -> FetchedResponse:
        http = cookies_to_requests_session(
            session.cookies(), user_agent=session.user_agent(), referer=session.url
        )
        try:
            response = http.get(url, timeout=timeout)
            return FetchedResponse(
                status=response.status_code,
                content_type=response.headers.get("Content-Type", ""),
                body=response.content,
            )
        finally:
            http.close()

    return _get


def page_http_client(session: Any) -> HttpClient:
    """Return an HTTP client that fetches through a transient browser page."""

    def _get(url: str, timeout: float) -> FetchedResponse:
        referer = session.url
        with session.secondary_page() as page:
            response = page.request.get(
                url, headers={"Referer": referer}, timeout=timeout * 1000
            )
            try:
                return FetchedResponse(
                    status=response.status,
                    content_type=response.headers.get("content-type", ""),
                    body=response.body(),
                )
            finally:
                response.dispose()

    return _get


class DocumentFetcher:
    """Download a URL within the session's authentication and persist it."""

    def __init__(
        self,
        session: Any,
        *,
        transport: Optional[str] = None,
        http_client: Optional[HttpClient] = None,
        timeout_seconds: Optional[float] = None,
        min_free_mb: Optional[int] = None,
        log: LogFn = log_line,
    ) -> None:
        transport = transport or config.FETCH_TRANSPORT
        if http_client is None:
            if transport == "page":
                http_client = page_http_client(session)
            elif transport == "request":
                http_client = session_http_client(session)
            else:
                raise ValueError(f"Unknown fetch transport: {transport!r}")
        self._http_client = http_client
        self._timeout_seconds = (
            config.DOWNLOAD_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )
        self._min_free_mb = config.MIN_FREE_MB if min_free_mb is None else min_free_mb
        self._log = log

    def fetch(
        self,
        url: str,
        destination_dir: Path,
        filename: str,
        *,
        infer_extension: bool = False,
    ) -> DownloadResult:
        """Fetch ``url`` into ``destination_dir / filename``.

        With ``infer_extension`` the extension is taken from the response's
        media type. Download problems are returned as a failed
        :class:`DownloadResult`; only a closed browser session propagates.
        """

        safe_url = _redact_url(url)
        destination_dir = Path(destination_dir)
        status: Optional[int] = None
        try:
            if url.startswith("data:"):
                response = _decode_data_url(url)
            else:
                response = self._http_client(url, self._timeout_seconds)
            status = response.status
            if status is not None and status >= 400:
                raise DownloadError(
                    f"HTTP {status}", error_code=_classify_http_status(status), http_status=status
                )
            body = bytes(response.body or b"")
            if not body:
                raise DownloadError(
                    "Empty response body", error_code=ErrorCode.EMPTY_RESPONSE, http_status=status
                )

            if infer_extension:
                filename = f"{filename}{extension_for_content_type(response.content_type)}"
            validate_signature(filename, body)

            destination_dir.mkdir(parents=True, exist_ok=True)
            if not disk_has_room(self._min_free_mb, destination_dir):
                raise DownloadError(
                    f"Less than {self._min_free_mb} MB free under {destination_dir}",
                    error_code=ErrorCode.INTERNAL,
                )
            target = destination_dir / filename
            tmp_path = target.with_name(target.name + ".part")
            tmp_path.write_bytes(body)
            tmp_path.replace(target)
        except HarvestError as exc:
            return self._failure(
                url, safe_url, exc.error_code, str(exc), getattr(exc, "http_status", None) or status
            )
        except (requests.Timeout, requests.ConnectionError, PWTimeout) as exc:
            return self._failure(url, safe_url, ErrorCode.NETWORK, str(exc), status)
        except PWError as exc:
            if is_target_closed_error(exc):
                raise
            return self._failure(url, safe_url, ErrorCode.NETWORK, str(exc), status)
        except (requests.RequestException, OSError) as exc:
            return self._failure(url, safe_url, ErrorCode.INTERNAL, str(exc), status)

        self._log(f"File saved successfully to: {target}")
        _harvest_event(
            "fetch", log=self._log, status="ok", url=safe_url, http_status=status, bytes=len(body), path=str(target)
        )
        return DownloadResult(success=True, url=url, saved_path=target, http_status=status)

    def _failure(
        self,
        url: str,
        safe_url: str,
        error_code: str,
        reason: str,
        http_status: Optional[int],
    ) -> DownloadResult:
        self._log(f"[FETCH][ERROR] {safe_url} -> {error_code}: {reason}")
        _harvest_event(
            "fetch", log=self._log, status="failed", url=safe_url, error_code=error_code, http_status=http_status
        )
        return DownloadResult(
            success=False,
            url=url,
            error_code=error_code,
            error_reason=reason,
            http_status=http_status,
        )


__all__ = [
    "DownloadResult",
    "FetchedResponse",
    "HttpClient",
    "DocumentFetcher",
    "KNOWN_SIGNATURES",
    "cookies_to_requests_session",
    "extension_for_content_type",
    "page_http_client",
    "session_http_client",
    "validate_signature",
]
