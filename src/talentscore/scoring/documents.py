from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlparse

import requests

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "document.pdf"


@dataclass(slots=True)
class DownloadedDocument:
    content: bytes
    filename: str
    content_type: str


class DocumentDownloader:
    """Pulls evidence files out of storage by URL, one at a time."""

    def __init__(self, timeout_sec: int = 30, http: requests.Session | None = None):
        self.timeout_sec = timeout_sec
        self.http = http or requests.Session()

    def fetch(self, file_url: str) -> DownloadedDocument | None:
        try:
            response = self.http.get(file_url, timeout=self.timeout_sec)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Failed to download evidence %s: %s", file_url, exc)
            return None

        return DownloadedDocument(
            content=response.content,
            filename=filename_from_url(file_url),
            content_type=response.headers.get("Content-Type", "application/octet-stream"),
        )


def filename_from_url(file_url: str) -> str:
    path = urlparse(file_url).path
    return path.rsplit("/", 1)[-1] or DEFAULT_FILENAME
