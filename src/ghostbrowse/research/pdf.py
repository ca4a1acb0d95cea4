"""
PDF reader.

Downloads a PDF with requests and extracts its text with pdfplumber. Used by
the page reader for ``.pdf`` URLs, which a browser cannot render to text.
"""

import asyncio
import io
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlparse

import pdfplumber
import requests

from ghostbrowse.core.errors import ErrorKind, RenderError

logger = logging.getLogger(__name__)

# PDF magic bytes
PDF_MAGIC = b"%PDF"

DEFAULT_TIMEOUT_S = 30.0
USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) ghostbrowse/0.4"
EMPTY_PDF_TEXT = "[PDF extracted but empty]"


def is_pdf_url(url: str) -> bool:
    """True when the URL path ends in ``.pdf`` (query string ignored)."""
    try:
        path = urlparse(url).path
    except ValueError:
        return False
    return path.lower().endswith(".pdf")


def pdf_title(url: str) -> str:
    """Last path segment of the URL, used as the document title."""
    path = urlparse(url).path.rstrip("/")
    return unquote(path.rsplit("/", 1)[-1]) or url


@dataclass
class PdfText:
    title: str
    content: str
    page_count: int = 0


class PdfReader:
    """
    Download and extract text from PDF documents.

    Blocking I/O (download, parsing) runs in a worker thread so the event
    loop keeps serving other reads.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        """
        Initialize PDF reader.

        Args:
            session: Optional requests session (shared connection pool)
            timeout_s: Download timeout in seconds
        """
        self.session = session or requests.Session()
        self.timeout_s = timeout_s

    async def read(self, url: str, max_chars: int) -> PdfText:
        """
        Download *url* and extract up to *max_chars* characters of text.

        Raises:
            RenderError: Download failed or the body is not a PDF.
        """
        data = await asyncio.to_thread(self._download, url)
        text, page_count = await asyncio.to_thread(self.extract_text, data)
        content = text.strip()[:max_chars] or EMPTY_PDF_TEXT
        logger.debug("[PDF] %s: %d pages, %d chars", url, page_count, len(content))
        return PdfText(title=pdf_title(url), content=content, page_count=page_count)

    def _download(self, url: str) -> bytes:
        try:
            response = self.session.get(
                url,
                timeout=self.timeout_s,
                headers={"User-Agent": USER_AGENT},
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise RenderError(f"PDF download failed: {e}") from e
        return response.content

    @staticmethod
    def extract_text(data: bytes) -> tuple[str, int]:
        """Extract text from raw PDF bytes. Returns ``(text, page_count)``."""
        if data[:4] != PDF_MAGIC:
            raise RenderError(
                "Data does not appear to be a valid PDF", kind=ErrorKind.PARSE_FAILURE
            )

        text_parts = []
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                page_count = len(pdf.pages)
                for page in pdf.pages:
                    page_text = page.extract_text()
                    if page_text:
                        text_parts.append(page_text)
        except Exception as e:
            raise RenderError(
                f"Failed to parse PDF: {e}", kind=ErrorKind.PARSE_FAILURE
            ) from e

        return "\n\n".join(text_parts), page_count
