"""
Stem separation backend API operations.

Submits links and uploads, fetches cached archives and the extracted-file
listing. Every failure is translated into the library exception taxonomy.
"""

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

import requests
from loguru import logger

from .exceptions import BackendError, DownloadCancelled, NetworkError

TITLE_HEADER = "X-Video-Title"
CACHE_KEY_HEADER = "X-Cache-Key"

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class ArchiveResponse:
    """A result archive plus the metadata headers that came with it."""

    content: bytes
    title: Optional[str] = None
    cache_key: Optional[str] = None


@dataclass(frozen=True)
class ExtractedListing:
    """The backend's listing of files extracted for a link."""

    filenames: list[str]
    title: Optional[str] = None


def _error_detail(response: requests.Response) -> Optional[str]:
    """Pull a human-readable detail out of an error response body."""
    try:
        payload = response.json()
    except ValueError:
        return None

    if isinstance(payload, dict):
        detail = payload.get("detail") or payload.get("message")
        if detail:
            return detail if isinstance(detail, str) else json.dumps(detail)
    return json.dumps(payload)


def _header(response: requests.Response, name: str) -> Optional[str]:
    value = response.headers.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


class ProcessingClient:
    """HTTP client for the stem separation service.

    Args:
        base_url: Service root, e.g. "http://localhost:8000"
        session: Optional requests session (shared connection pool)
        timeout: Per-request timeout in seconds; None waits indefinitely
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _request(
        self,
        method: str,
        path: str,
        stream: bool = False,
        **kwargs: Any,
    ) -> requests.Response:
        """Send a request and raise library errors for transport/HTTP failures."""
        url = self._url(path)
        try:
            response = self.session.request(
                method, url, timeout=self.timeout, stream=stream, **kwargs
            )
        except requests.RequestException as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise NetworkError(f"Backend unreachable at {self.base_url}: {e}") from e

        if not response.ok:
            detail = _error_detail(response)
            response.close()
            logger.warning(f"{method} {url} -> HTTP {response.status_code}: {detail}")
            raise BackendError(response.status_code, detail)

        return response

    def _read_body(
        self,
        response: requests.Response,
        cancel_event: Optional[threading.Event] = None,
    ) -> bytes:
        """Read a streamed body, checking cancel_event between chunks."""
        chunks = []
        try:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if cancel_event is not None and cancel_event.is_set():
                    raise DownloadCancelled("Download cancelled")
                if chunk:
                    chunks.append(chunk)
        except requests.RequestException as e:
            raise NetworkError(f"Connection lost while downloading: {e}") from e
        finally:
            response.close()
        return b"".join(chunks)

    def submit_link(
        self, youtube_url: str, cancel_event: Optional[threading.Event] = None
    ) -> ArchiveResponse:
        """Submit a video link for separation.

        Raises:
            NetworkError: Backend unreachable
            BackendError: Non-2xx response
            DownloadCancelled: cancel_event was set mid-transfer
        """
        if cancel_event is not None and cancel_event.is_set():
            raise DownloadCancelled("Download cancelled")

        response = self._request(
            "POST", "/youtube", stream=True, json={"youtube_url": youtube_url}
        )
        title = _header(response, TITLE_HEADER)
        content = self._read_body(response, cancel_event)
        logger.info(f"Received archive for {youtube_url} ({len(content)} bytes)")
        return ArchiveResponse(content=content, title=title)

    def lookup_extracted(self, youtube_url: str) -> ExtractedListing:
        """Fetch the extracted-file listing (and title header) for a link.

        Directory-like names and the raw "audio/" inputs are left out.
        """
        response = self._request(
            "POST", "/youtube/extracted", json={"youtube_url": youtube_url}
        )
        title = _header(response, TITLE_HEADER)
        try:
            payload = response.json()
        except ValueError:
            payload = {}

        filenames = []
        for item in payload.get("extracted_files", []) if isinstance(payload, dict) else []:
            name = item.get("filename") if isinstance(item, dict) else None
            if not name or name.startswith("audio/") or name.endswith("/"):
                continue
            filenames.append(name)

        return ExtractedListing(filenames=filenames, title=title)

    def upload_file(self, path: Path) -> ArchiveResponse:
        """Upload a local audio file as multipart form data (field "file").

        Raises:
            NetworkError: Backend unreachable
            BackendError: Non-2xx response
        """
        path = Path(path)
        with open(path, "rb") as f:
            response = self._request(
                "POST",
                "/upload",
                stream=True,
                files={"file": (path.name, f, "application/octet-stream")},
            )
        cache_key = _header(response, CACHE_KEY_HEADER)
        content = self._read_body(response)
        logger.info(
            f"Received archive for upload {path.name} ({len(content)} bytes, cache_key={cache_key})"
        )
        return ArchiveResponse(content=content, cache_key=cache_key)

    def fetch_cached(
        self, cache_key: str, cancel_event: Optional[threading.Event] = None
    ) -> bytes:
        """Re-fetch a previously computed archive by its cache token.

        Raises:
            NetworkError: Backend unreachable
            BackendError: Non-2xx response (e.g. expired cache entry)
            DownloadCancelled: cancel_event was set mid-transfer
        """
        if cancel_event is not None and cancel_event.is_set():
            raise DownloadCancelled("Download cancelled")

        response = self._request(
            "GET", f"/cache/{quote(cache_key, safe='')}", stream=True
        )
        return self._read_body(response, cancel_event)
