"""Structured extraction models with lenient decoding of model output."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


BUCKET_NAMES = (
    "dx",
    "pathophys",
    "clinical",
    "labs",
    "imaging",
    "treatment",
    "complications",
    "risk_factors",
    "epidemiology",
    "red_flags",
    "buzzwords",
)


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    items = [_as_str(item) for item in value]
    return [item for item in items if item]


def _as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return default


def _as_int_list(value: Any) -> list[int]:
    if not isinstance(value, list):
        return []
    numbers = [_as_int(item, default=-1) for item in value]
    return sorted({number for number in numbers if number > 0})


def _as_mappings(value: Any) -> list[Mapping[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


@dataclass(slots=True)
class NumberValue:
    value: str
    unit: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"value": self.value, "unit": self.unit}


@dataclass(slots=True)
class ExtractFact:
    text: str
    tags: list[str] = field(default_factory=list)
    numbers: list[NumberValue] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ExtractFact":
        numbers = [
            NumberValue(value=_as_str(item.get("value")), unit=_as_str(item.get("unit")))
            for item in _as_mappings(payload.get("numbers"))
            if _as_str(item.get("value"))
        ]
        return cls(text=_as_str(payload.get("text")), tags=_as_str_list(payload.get("tags")), numbers=numbers)

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "tags": list(self.tags),
            "numbers": [number.to_dict() for number in self.numbers],
        }


@dataclass(slots=True)
class ExtractSection:
    heading: str
    facts: list[ExtractFact] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ExtractSection":
        facts = [ExtractFact.from_dict(item) for item in _as_mappings(payload.get("facts"))]
        return cls(
            heading=_as_str(payload.get("heading")) or "General",
            facts=[fact for fact in facts if fact.text],
        )

    def to_dict(self) -> dict[str, Any]:
        return {"heading": self.heading, "facts": [fact.to_dict() for fact in self.facts]}


@dataclass(slots=True)
class ExtractTable:
    caption: str
    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ExtractTable":
        raw_rows = payload.get("rows")
        rows: list[list[str]] = []
        if isinstance(raw_rows, list):
            rows = [[_as_str(cell) for cell in row] for row in raw_rows if isinstance(row, list)]
        return cls(caption=_as_str(payload.get("caption")), headers=_as_str_list(payload.get("headers")), rows=rows)

    def to_dict(self) -> dict[str, Any]:
        return {"caption": self.caption, "headers": list(self.headers), "rows": [list(row) for row in self.rows]}


@dataclass(slots=True)
class ExtractSlide:
    """Structured facts extracted from one slide."""

    n: int
    page: int
    sections: list[ExtractSection] = field(default_factory=list)
    tables: list[ExtractTable] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ExtractSlide":
        n = _as_int(payload.get("n"))
        return cls(
            n=n,
            page=_as_int(payload.get("page"), default=n),
            sections=[ExtractSection.from_dict(item) for item in _as_mappings(payload.get("sections"))],
            tables=[ExtractTable.from_dict(item) for item in _as_mappings(payload.get("tables"))],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "n": self.n,
            "page": self.page,
            "sections": [section.to_dict() for section in self.sections],
            "tables": [table.to_dict() for table in self.tables],
        }

    def iter_fact_texts(self) -> list[str]:
        return [fact.text for section in self.sections for fact in section.facts]


@dataclass(slots=True)
class ChunkResult:
    """Raw structured extraction for one slide range."""

    lecture_title: str
    start_slide: int
    end_slide: int
    slides: list[ExtractSlide] = field(default_factory=list)

    @classmethod
    def from_dict(
        cls,
        payload: Mapping[str, Any],
        *,
        start_slide: int | None = None,
        end_slide: int | None = None,
    ) -> "ChunkResult":
        """Decode a chunk payload; an explicit range overrides the reported one.

        Slides reported outside the range are dropped.
        """

        chunk = payload.get("chunk") if isinstance(payload.get("chunk"), Mapping) else {}
        start = start_slide if start_slide is not None else _as_int(chunk.get("start_slide"), default=1)
        end = end_slide if end_slide is not None else _as_int(chunk.get("end_slide"), default=start)
        slides = [ExtractSlide.from_dict(item) for item in _as_mappings(payload.get("slides"))]
        return cls(
            lecture_title=_as_str(payload.get("lecture_title")),
            start_slide=start,
            end_slide=end,
            slides=[slide for slide in slides if start <= slide.n <= end],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "lecture_title": self.lecture_title,
            "chunk": {"start_slide": self.start_slide, "end_slide": self.end_slide},
            "slides": [slide.to_dict() for slide in self.slides],
        }


@dataclass(slots=True)
class DocumentExtract:
    """Merged extraction: slides sorted and unique by index."""

    lecture_title: str
    slides: list[ExtractSlide] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"lecture_title": self.lecture_title, "slides": [slide.to_dict() for slide in self.slides]}


@dataclass(slots=True)
class SourceSpan:
    text: str
    slides: list[int] = field(default_factory=list)
    pages: list[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SourceSpan":
        return cls(
            text=_as_str(payload.get("text")),
            slides=_as_int_list(payload.get("slides")),
            pages=_as_int_list(payload.get("pages")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "slides": list(self.slides), "pages": list(self.pages)}


@dataclass(slots=True)
class Discriminator:
    topic: str
    signals: list[str] = field(default_factory=list)
    pitfalls: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Discriminator":
        return cls(
            topic=_as_str(payload.get("topic")),
            signals=_as_str_list(payload.get("signals")),
            pitfalls=_as_str_list(payload.get("pitfalls")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"topic": self.topic, "signals": list(self.signals), "pitfalls": list(self.pitfalls)}


@dataclass(slots=True)
class DerivedFacts:
    """Document-level buckets, atoms and spans from the derivation pass."""

    raw_facts: list[str] = field(default_factory=list)
    buckets: dict[str, list[str]] = field(default_factory=lambda: {name: [] for name in BUCKET_NAMES})
    discriminators: list[Discriminator] = field(default_factory=list)
    exam_atoms: list[str] = field(default_factory=list)
    abbrev_map: dict[str, str] = field(default_factory=dict)
    source_spans: list[SourceSpan] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DerivedFacts":
        raw_buckets = payload.get("buckets") if isinstance(payload.get("buckets"), Mapping) else {}
        raw_abbrev = payload.get("abbrev_map") if isinstance(payload.get("abbrev_map"), Mapping) else {}
        abbrev_map = {
            _as_str(key): _as_str(value)
            for key, value in raw_abbrev.items()
            if _as_str(key) and _as_str(value)
        }
        spans = [SourceSpan.from_dict(item) for item in _as_mappings(payload.get("source_spans"))]
        discriminators = [Discriminator.from_dict(item) for item in _as_mappings(payload.get("discriminators"))]
        return cls(
            raw_facts=_as_str_list(payload.get("raw_facts")),
            buckets={name: _as_str_list(raw_buckets.get(name)) for name in BUCKET_NAMES},
            discriminators=[item for item in discriminators if item.topic],
            exam_atoms=_as_str_list(payload.get("exam_atoms")),
            abbrev_map=abbrev_map,
            source_spans=[span for span in spans if span.text],
        )

    def bucket(self, name: str) -> list[str]:
        return list(self.buckets.get(name, []))

    def iter_texts(self) -> list[str]:
        """All derived free-text strings, in a stable order."""

        texts = list(self.raw_facts)
        for name in BUCKET_NAMES:
            texts.extend(self.buckets.get(name, []))
        for item in self.discriminators:
            texts.append(item.topic)
            texts.extend(item.signals)
            texts.extend(item.pitfalls)
        texts.extend(self.exam_atoms)
        texts.extend(span.text for span in self.source_spans)
        return texts

    def to_dict(self) -> dict[str, Any]:
        return {
            "raw_facts": list(self.raw_facts),
            "buckets": {name: list(self.buckets.get(name, [])) for name in BUCKET_NAMES},
            "discriminators": [item.to_dict() for item in self.discriminators],
            "exam_atoms": list(self.exam_atoms),
            "abbrev_map": dict(self.abbrev_map),
            "source_spans": [span.to_dict() for span in self.source_spans],
        }
