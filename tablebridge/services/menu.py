"""Menu ingestion and keyword search.

Menus are published as PDFs. At startup each configured PDF is fetched
with aiohttp, its text is extracted with pypdf and split into normalised
lines tagged with the menu they came from (``Day``, ``Dinner``,
``Beverage``). Searches score every line against the query and return
the best distinct lines.
"""

from __future__ import annotations

import asyncio
import io
import re
from dataclasses import dataclass

import aiohttp
import pypdf
from loguru import logger
from pypdf.errors import PyPdfError

PRICE_RE = re.compile(r"\$\s?\d")
_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class MenuLine:
    source: str
    text: str


# ---------------------------------------------------------------------------
# Text extraction
# ---------------------------------------------------------------------------


def extract_pdf_text(content: bytes) -> str:
    """Extract plain text from a PDF, one page after another."""
    reader = pypdf.PdfReader(io.BytesIO(content))
    parts = []
    for page in reader.pages:
        text = page.extract_text()
        if text:
            parts.append(text)
    return "\n".join(parts)


def normalize_lines(text: str) -> list[str]:
    """Split text into lines, collapse runs of whitespace and drop blanks."""
    lines = (_WS_RE.sub(" ", line).strip() for line in text.splitlines())
    return [line for line in lines if line]


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


def score_line(text: str, query: str) -> int:
    """Score one menu line against a lower-cased query.

    +3 if the whole query appears, +1 per query word that appears,
    +1 if the line shows a price.
    """
    hay = text.lower()
    score = 0
    if query and query in hay:
        score += 3
    for word in query.split():
        if word in hay:
            score += 1
    if PRICE_RE.search(text):
        score += 1
    return score


def search_lines(lines: list[MenuLine], query: str, limit: int = 8) -> list[MenuLine]:
    """Rank ``lines`` for ``query``. Zero-score lines and duplicate texts are dropped."""
    if not lines:
        return []
    q = (query or "").lower().strip()
    scored = [(score_line(line.text, q), line) for line in lines]
    scored = [item for item in scored if item[0] > 0]
    # sort() is stable, so equal scores keep menu order
    scored.sort(key=lambda item: item[0], reverse=True)

    seen: set[str] = set()
    results: list[MenuLine] = []
    for _, line in scored:
        if line.text in seen:
            continue
        seen.add(line.text)
        results.append(line)
        if len(results) >= limit:
            break
    return results


def format_menu_answer(query: str, rows: list[MenuLine], limit: int = 5) -> str:
    """Turn search results into a short script for the agent to speak."""
    if not rows:
        return (
            f'I didn\'t find "{query}" on the current menus. I can text you links '
            "to the Day, Dinner, or Beverage menus if you'd like."
        )
    bullets = "\n".join(f"• ({row.source}) {row.text}" for row in rows[:limit])
    return (
        f"Here's what I found:\n{bullets}\n"
        "(Items and prices can change; I can confirm with the team.)"
    )


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------


class MenuIndex:
    """In-memory index of menu lines, searchable by keyword.

    Usage:
        index = MenuIndex(config.menu_sources)
        await index.ingest()
        rows = await index.search("ribeye")
    """

    def __init__(
        self,
        sources: list[tuple[str, str]] | None = None,
        *,
        timeout: float = 30.0,
    ) -> None:
        self.sources = list(sources or [])
        self.timeout = timeout
        self.lines: list[MenuLine] = []

    def __len__(self) -> int:
        return len(self.lines)

    def add_text(self, source: str, text: str) -> int:
        """Index raw text under ``source``. Returns the number of lines added."""
        new = [MenuLine(source=source, text=line) for line in normalize_lines(text)]
        self.lines.extend(new)
        return len(new)

    async def ingest(self) -> int:
        """(Re)build the index from the configured PDFs.

        A menu that cannot be fetched or parsed is logged and skipped.
        Returns the number of lines indexed.
        """
        self.lines = []
        if not self.sources:
            logger.info("No menu PDFs configured")
            return 0

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as http:
            for source, url in self.sources:
                text = await self._fetch_text(http, source, url)
                self.add_text(source, text)

        logger.info(f"Ingested {len(self.lines)} menu lines from {len(self.sources)} PDFs")
        return len(self.lines)

    async def _fetch_text(self, http: aiohttp.ClientSession, source: str, url: str) -> str:
        try:
            async with http.get(url) as response:
                response.raise_for_status()
                content = await response.read()
            return await asyncio.to_thread(extract_pdf_text, content)
        except (aiohttp.ClientError, asyncio.TimeoutError, PyPdfError) as e:
            logger.error(f"Failed to fetch/parse {source} menu PDF {url}: {e}")
            return ""

    async def search(self, query: str, limit: int = 8) -> list[MenuLine]:
        return search_lines(self.lines, query, limit)
