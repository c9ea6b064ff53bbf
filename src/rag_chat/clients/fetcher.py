"""Document fetcher — download a source and reduce it to readable text.

HTTP(S) URLs are fetched with ``requests`` (with retries); anything else is
treated as a local file path (``file://`` prefix optional).  HTML is parsed
with BeautifulSoup and narrowed to the primary content container
(``<article>`` → ``<main>`` → ``<body>``); markdown and plain text are kept
as-is.  Every failure is logged and reported as ``""``.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
import unicodedata
from pathlib import Path

import requests
from bs4 import BeautifulSoup

from rag_chat.config import settings

logger = logging.getLogger(__name__)

_BOILERPLATE_TAGS = ["script", "style", "nav", "footer", "header", "aside", "noscript", "iframe", "form"]
_HTML_SUFFIXES = (".html", ".htm")


def normalise_text(text: str) -> str:
    """Unicode NFC, collapse whitespace, strip control chars."""
    text = unicodedata.normalize("NFC", text)
    text = re.sub(r"[^\S\n]+", " ", text)  # collapse spaces (keep \n)
    text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f]", "", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)  # max two consecutive newlines
    return text.strip()


def extract_readable_text(html: str) -> str:
    """Primary readable text of an HTML page, or ``""`` when there is none."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_BOILERPLATE_TAGS):
        tag.decompose()
    container = soup.find("article") or soup.find("main") or soup.body or soup
    return normalise_text(container.get_text(separator="\n", strip=True))


class HttpDocumentFetcher:
    """Fetches URLs and local files; never raises.

    Parameters
    ----------
    timeout:
        Per-request timeout in seconds.
    max_retries:
        Attempts for transient HTTP errors, with exponential back-off.
    headers:
        Extra HTTP headers sent with every request.
    """

    def __init__(
        self,
        *,
        timeout: float | None = None,
        max_retries: int = 3,
        headers: dict[str, str] | None = None,
        backoff_seconds: float = 1.0,
    ) -> None:
        self.timeout = timeout or settings.request_timeout_seconds
        self.max_retries = max(1, max_retries)
        self.headers = headers or {}
        self.backoff_seconds = backoff_seconds

    async def fetch_text(self, uri: str) -> str:
        return await asyncio.to_thread(self.fetch_text_sync, uri)

    def fetch_text_sync(self, uri: str) -> str:
        try:
            if uri.startswith(("http://", "https://")):
                return self._fetch_url(uri)
            return self._read_file(uri)
        except (requests.RequestException, OSError, UnicodeDecodeError, ValueError) as exc:
            logger.error("✗ %s: %s", uri, exc)
            return ""

    # -- internals ------------------------------------------------------------

    def _fetch_url(self, url: str) -> str:
        last_exc: requests.RequestException | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                resp = requests.get(url, headers=self.headers, timeout=self.timeout)
                resp.raise_for_status()
                break
            except requests.RequestException as exc:
                last_exc = exc
                if attempt < self.max_retries:
                    wait = self.backoff_seconds * 2 ** (attempt - 1)
                    logger.warning("Retry %d/%d for %s (wait %.1fs): %s", attempt, self.max_retries, url, wait, exc)
                    time.sleep(wait)
        else:
            assert last_exc is not None
            raise last_exc

        ctype = resp.headers.get("content-type", "")
        if "html" in ctype or url.lower().endswith(_HTML_SUFFIXES):
            return extract_readable_text(resp.text)
        return normalise_text(resp.text)

    def _read_file(self, uri: str) -> str:
        path = Path(uri.removeprefix("file://"))
        raw = path.read_text(encoding="utf-8", errors="replace")
        if path.suffix.lower() in _HTML_SUFFIXES:
            return extract_readable_text(raw)
        return normalise_text(raw)
