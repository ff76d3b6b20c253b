"""
External retrieval capability.

HttpRetrievalTool fetches a page with httpx and pulls the title and main
text out with BeautifulSoup using the extraction template's CSS selectors.
Pages that need JavaScript rendering are fetched as static HTML; their
selectors usually miss and the tool falls back to the page's visible text.
"""

import logging
import re
from dataclasses import dataclass
from typing import Protocol

import httpx
from bs4 import BeautifulSoup

from agentflow.errors import RetrievalError, TransientInvocationError
from agentflow.tools.classifier import ExtractionTemplate

logger = logging.getLogger(__name__)

MAX_EXTRACTED_CHARS = 8000
USER_AGENT = "agentflow-retrieval/0.1 (+https://example.invalid/bot)"


@dataclass
class RetrievalResult:
    success: bool
    url: str
    title: str = ""
    extracted_text: str = ""
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "url": self.url,
            "title": self.title,
            "extracted_text": self.extracted_text,
            "error": self.error,
        }


class RetrievalTool(Protocol):
    async def retrieve(self, url: str, template: ExtractionTemplate, timeout_ms: int) -> RetrievalResult:
        ...


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def extract_content(html: str, template: ExtractionTemplate) -> tuple[str, str]:
    """Return (title, text) from raw HTML."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    selectors = template.selectors
    title = ""
    if selectors.get("title"):
        node = soup.select_one(selectors["title"])
        if node is not None:
            title = _clean(node.get_text(" "))
    if not title and soup.title is not None:
        title = _clean(soup.title.get_text(" "))

    text = ""
    if selectors.get("content"):
        parts = [_clean(node.get_text(" ")) for node in soup.select(selectors["content"])]
        text = " ".join(p for p in parts if p)
    if not text:
        body = soup.body or soup
        text = _clean(body.get_text(" "))

    return title, text[:MAX_EXTRACTED_CHARS]


class HttpRetrievalTool:
    """RetrievalTool over plain HTTP."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    async def retrieve(self, url: str, template: ExtractionTemplate, timeout_ms: int) -> RetrievalResult:
        timeout = httpx.Timeout(timeout_ms / 1000)
        headers = {"User-Agent": USER_AGENT}

        if self._client is not None:
            response = await self._client.get(url, timeout=timeout, headers=headers, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=timeout, headers=headers, follow_redirects=True) as client:
                response = await client.get(url)

        if response.status_code >= 500:
            raise TransientInvocationError(f"{url} returned HTTP {response.status_code}")
        if response.status_code >= 400:
            return RetrievalResult(success=False, url=url, error=f"HTTP {response.status_code}")

        try:
            title, text = extract_content(response.text, template)
        except Exception as e:
            raise RetrievalError(f"Failed to parse {url}: {e}") from e

        logger.info(f"[RETRIEVAL] {url}: title={title[:60]!r} chars={len(text)}")
        return RetrievalResult(
            success=bool(text),
            url=url,
            title=title,
            extracted_text=text,
            error=None if text else "no extractable text",
        )
