"""Image fetch capabilities keyed by an opaque location handle.

A fetcher is any ``Callable[[str], bytes]``. Every failure surfaces as
:class:`ImageFetchFailed` so the orchestrator can skip the image.
"""

from __future__ import annotations

import io
import zipfile
from pathlib import Path
from typing import Callable, Dict, Optional
from urllib.parse import urlparse

import requests

from .errors import ImageFetchFailed

Fetcher = Callable[[str], bytes]

USER_AGENT = "pptx-folder-assembler/0.1"
ARCHIVE_SCHEME = "zip:"


def _requests_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    return session


class FileFetcher:
    """Read images from the local filesystem, relative paths against ``base_dir``."""

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir).resolve() if base_dir else None

    def __call__(self, location: str) -> bytes:
        raw = location[len("file://"):] if location.startswith("file://") else location
        path = Path(raw)
        if not path.is_absolute() and self.base_dir:
            path = self.base_dir / path
        try:
            return path.read_bytes()
        except OSError as exc:
            raise ImageFetchFailed(location, exc.strerror or str(exc)) from exc


class HttpFetcher:
    """Download images over HTTP(S); one session shared across worker threads."""

    def __init__(self, session: Optional[requests.Session] = None, *, timeout: float = 30.0):
        self.session = session or _requests_session()
        self.timeout = timeout

    def __call__(self, location: str) -> bytes:
        try:
            resp = self.session.get(location, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise ImageFetchFailed(location, str(exc)) from exc
        return resp.content


class ArchiveFetcher:
    """Serve images out of an in-memory ZIP; locations look like ``zip:<entry path>``."""

    def __init__(self, data: bytes):
        self._entries: Dict[str, bytes] = {}
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            for info in zf.infolist():
                if not info.is_dir():
                    self._entries[info.filename] = zf.read(info.filename)

    @staticmethod
    def location_for(entry: str) -> str:
        return f"{ARCHIVE_SCHEME}{entry}"

    def __call__(self, location: str) -> bytes:
        entry = location[len(ARCHIVE_SCHEME):] if location.startswith(ARCHIVE_SCHEME) else location
        try:
            return self._entries[entry]
        except KeyError:
            raise ImageFetchFailed(location, "no such entry in archive") from None


class DispatchingFetcher:
    """Pick a fetcher by location scheme: http(s), zip:, otherwise the filesystem."""

    def __init__(
        self,
        *,
        files: Optional[FileFetcher] = None,
        http: Optional[HttpFetcher] = None,
        archive: Optional[ArchiveFetcher] = None,
    ):
        self.files = files or FileFetcher()
        self.http = http or HttpFetcher()
        self.archive = archive

    def __call__(self, location: str) -> bytes:
        if location.startswith(ARCHIVE_SCHEME):
            if self.archive is None:
                raise ImageFetchFailed(location, "no archive loaded")
            return self.archive(location)
        if urlparse(location).scheme in {"http", "https"}:
            return self.http(location)
        return self.files(location)
