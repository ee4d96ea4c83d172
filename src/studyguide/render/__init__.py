"""Deterministic study guide rendering and its style contract."""

from .contracts import (
    BASE_STUDY_GUIDE_CSS,
    HIGHLIGHT_LEGEND_ITEMS,
    REQUIRED_SECTION_IDS,
    render_legend,
    render_style_block,
)
from .html import RenderInput, clamp_words, render_study_guide_html, render_text

__all__ = [
    "BASE_STUDY_GUIDE_CSS",
    "HIGHLIGHT_LEGEND_ITEMS",
    "REQUIRED_SECTION_IDS",
    "RenderInput",
    "clamp_words",
    "render_legend",
    "render_style_block",
    "render_study_guide_html",
    "render_text",
]
