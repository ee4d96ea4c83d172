"""Canonical slide and chunk models shared by planning and extraction."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SlideBlock:
    """One parsed slide: 1-based index, source page and body text."""

    index: int
    page: int
    text: str

    @property
    def char_count(self) -> int:
        return len(self.text)

    @property
    def first_line(self) -> str:
        for line in self.text.splitlines():
            stripped = line.strip()
            if stripped:
                return stripped
        return ""


@dataclass(frozen=True, slots=True)
class ExtractionChunk:
    """Contiguous slide range processed by one completion call."""

    start_slide: int
    end_slide: int
    slides: tuple[SlideBlock, ...]

    @property
    def char_count(self) -> int:
        return sum(slide.char_count for slide in self.slides)

    def render_text(self) -> str:
        """Render the chunk back into marker text for prompts."""

        blocks = []
        for slide in self.slides:
            body = slide.text if slide.text else "[NO TEXT]"
            blocks.append(f"Slide {slide.index} (p.{slide.page}):\n{body}")
        return "\n\n".join(blocks)
