"""Comparison normalization shared by inventory, registry and coverage checks."""

from __future__ import annotations

import re

_WHITESPACE_RE = re.compile(r"\s+")
_LEADING_NUMBERING_RE = re.compile(r"^\s*\d+[.)]\s*")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")

STOPWORDS = frozenset({"in", "of", "and", "the", "a", "an", "to", "for", "with", "on", "at", "by", "from"})

VARIANT_MAP = {
    "paediatric": "pediatric",
    "pediatrics": "pediatric",
    "utis": "uti",
}


def normalize_whitespace(text: str) -> str:
    """Collapse repeated whitespace and trim boundaries."""

    return _WHITESPACE_RE.sub(" ", text or "").strip()


def strip_leading_numbering(value: str) -> str:
    """Drop list numbering such as ``1.`` or ``2)`` from the start of a line."""

    return _LEADING_NUMBERING_RE.sub("", value or "", count=1)


def normalize_for_comparison(value: str) -> str:
    """Case-, punctuation- and whitespace-insensitive comparison key."""

    lowered = strip_leading_numbering(value).lower()
    return normalize_whitespace(_NON_ALNUM_RE.sub(" ", lowered))


def normalize_token(token: str) -> str:
    lowered = token.lower()
    mapped = VARIANT_MAP.get(lowered, lowered)
    if mapped.endswith("s") and len(mapped) > 4 and not mapped.endswith("sis"):
        return mapped[:-1]
    return mapped


def normalize_tokens(value: str) -> list[str]:
    """Significant tokens: singularized, at least three characters, no stopwords."""

    normalized = normalize_for_comparison(value)
    if not normalized:
        return []
    tokens = (normalize_token(token) for token in normalized.split(" "))
    return [token for token in tokens if len(token) >= 3 and token not in STOPWORDS]
