"""Greedy chunk planner for bounded extraction calls."""

from __future__ import annotations

from typing import Sequence

from studyguide.ingestion.models import ExtractionChunk, SlideBlock


def _build_chunk_windows(slides: Sequence[SlideBlock], max_slides: int, max_chars: int) -> list[list[SlideBlock]]:
    windows: list[list[SlideBlock]] = []
    current: list[SlideBlock] = []
    current_chars = 0

    for slide in slides:
        would_overflow = bool(current) and (
            len(current) + 1 > max_slides or current_chars + slide.char_count > max_chars
        )
        if would_overflow:
            windows.append(current)
            current = []
            current_chars = 0

        # A single oversized slide still forms its own window.
        current.append(slide)
        current_chars += slide.char_count

    if current:
        windows.append(current)
    return windows


def plan_chunks(
    slides: Sequence[SlideBlock],
    *,
    max_slides: int = 10,
    max_chars: int = 12000,
) -> list[ExtractionChunk]:
    """Partition ordered slides into contiguous, non-overlapping chunks.

    Slides are accumulated greedily until adding the next one would exceed either the
    slide-count cap or the character budget. Every slide lands in exactly one chunk.
    """

    if max_slides <= 0:
        raise ValueError("max_slides must be positive")
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")

    ordered = sorted(slides, key=lambda slide: slide.index)
    return [
        ExtractionChunk(
            start_slide=window[0].index,
            end_slide=window[-1].index,
            slides=tuple(window),
        )
        for window in _build_chunk_windows(ordered, max_slides=max_slides, max_chars=max_chars)
    ]
