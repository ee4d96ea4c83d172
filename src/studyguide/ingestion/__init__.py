"""Slide parsing and chunk planning interfaces."""

from .chunking import plan_chunks
from .models import ExtractionChunk, SlideBlock
from .slides import format_slide_text, parse_slide_text, read_slide_text, sanitize_slide_text

__all__ = [
    "ExtractionChunk",
    "SlideBlock",
    "format_slide_text",
    "parse_slide_text",
    "plan_chunks",
    "read_slide_text",
    "sanitize_slide_text",
]
