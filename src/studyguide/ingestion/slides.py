"""Slide marker parsing, page formatting and text hygiene."""

from __future__ import annotations

import logging
from pathlib import Path
import re

from charset_normalizer import from_bytes

from studyguide.ingestion.models import SlideBlock


logger = logging.getLogger(__name__)

NO_TEXT_PLACEHOLDER = "[NO TEXT]"

_SLIDE_MARKER_RE = re.compile(r"^[ \t]*Slide\s+(\d+)\s*\(p\.\s*(\d+)\)\s*:[ \t]*", re.IGNORECASE | re.MULTILINE)
_PAGE_MARKER_RE = re.compile(r"^---\s*Page\s+(\d+)\s*---[ \t]*$", re.IGNORECASE | re.MULTILINE)
_APOSTROPHE_RE = re.compile("[’‘‛`]")

REFUSAL_PATTERNS = (
    re.compile(r"i\s+can't\s+assist", re.IGNORECASE),
    re.compile(r"i\s+cannot\s+assist", re.IGNORECASE),
    re.compile(r"i\s*'m\s+sorry", re.IGNORECASE),
    re.compile(r"unable\s+to", re.IGNORECASE),
    re.compile(r"cannot\s+comply", re.IGNORECASE),
    re.compile(r"as\s+an\s+ai", re.IGNORECASE),
    re.compile(r"i\s+cannot\s+help\s+with\s+that", re.IGNORECASE),
)


def _normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def sanitize_slide_text(raw: str) -> str:
    """Normalize apostrophes, drop refusal lines, collapse blank runs."""

    normalized = _APOSTROPHE_RE.sub("'", _normalize_line_endings(raw or ""))
    collapsed: list[str] = []
    blank_streak = 0

    for line in normalized.split("\n"):
        if any(pattern.search(line) for pattern in REFUSAL_PATTERNS):
            continue
        line = line.rstrip(" \t")
        if not line.strip():
            blank_streak += 1
            if blank_streak > 1:
                continue
            collapsed.append("")
            continue
        blank_streak = 0
        collapsed.append(line)

    return "\n".join(collapsed).strip()


def parse_slide_text(raw_text: str) -> list[SlideBlock]:
    """Parse ``Slide N (p.P):`` marked text into ordered slide blocks.

    Content before the first marker is discarded. A marker without a body (or with
    the ``[NO TEXT]`` placeholder) yields an empty-body slide. When the same index
    appears twice, the first occurrence is kept.
    """

    text = _normalize_line_endings(raw_text or "")
    matches = list(_SLIDE_MARKER_RE.finditer(text))
    if not matches:
        return []

    if text[: matches[0].start()].strip():
        logger.debug("Discarding %d characters before the first slide marker", matches[0].start())

    slides: dict[int, SlideBlock] = {}
    for position, match in enumerate(matches):
        body_end = matches[position + 1].start() if position + 1 < len(matches) else len(text)
        body = sanitize_slide_text(text[match.end() : body_end])
        if body == NO_TEXT_PLACEHOLDER:
            body = ""

        index = int(match.group(1))
        if index in slides:
            logger.warning("Duplicate slide marker %d ignored", index)
            continue
        slides[index] = SlideBlock(index=index, page=int(match.group(2)), text=body)

    return [slides[index] for index in sorted(slides)]


def format_slide_text(extracted_text: str, page_count: int | None = None) -> str:
    """Convert ``--- Page N ---`` extracted text into slide marker text.

    Pages are ordered by number, lines are right-trimmed, and pages missing from the
    input (up to ``page_count``) are written with a ``[NO TEXT]`` body.
    """

    text = _normalize_line_endings(extracted_text or "")
    matches = list(_PAGE_MARKER_RE.finditer(text))
    pages: dict[int, str] = {}

    for position, match in enumerate(matches):
        body_end = matches[position + 1].start() if position + 1 < len(matches) else len(text)
        lines = [line.rstrip() for line in text[match.end() : body_end].split("\n")]
        body = "\n".join(line for line in lines if line.strip())
        pages.setdefault(int(match.group(1)), body)

    if not matches and text.strip():
        pages[1] = "\n".join(line.rstrip() for line in text.split("\n") if line.strip())

    last_page = max([page_count or 0, *pages.keys()], default=0)
    blocks: list[str] = []
    for number in range(1, last_page + 1):
        body = pages.get(number, "")
        if body:
            blocks.append(f"Slide {number} (p.{number}):\n{body}")
        else:
            blocks.append(f"Slide {number} (p.{number}): {NO_TEXT_PLACEHOLDER}")
    return "\n\n".join(blocks)


def _detect_encoding(raw: bytes) -> str:
    best = from_bytes(raw).best()
    if best and best.encoding:
        return best.encoding

    for fallback in ("utf-8", "cp1251"):
        try:
            raw.decode(fallback)
            return fallback
        except UnicodeDecodeError:
            continue
    raise ValueError("Could not detect slide text encoding")


def read_slide_text(path: str | Path) -> str:
    """Read a slide text file with charset detection."""

    raw = Path(path).read_bytes()
    if not raw:
        return ""
    return raw.decode(_detect_encoding(raw))
