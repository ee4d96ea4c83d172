"""Synthesis summary model and its validators.

``validate_step_b`` enforces formatting bounds, redundancy and exam-atom coverage
against the derived facts; ``validate_synthesis`` only checks that the core lists
exist and are not mostly empty.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Any, Iterable, Mapping, Sequence

from studyguide.extraction.models import DerivedFacts, DocumentExtract
from studyguide.quality.failures import GateFailure, SynthesisGateError, raise_for_failures


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _texts(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [_text(item) for item in value]


def _mappings(value: Any) -> list[Mapping[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item if isinstance(item, Mapping) else {} for item in value]


@dataclass(slots=True)
class RapidApproachRow:
    clue: str = ""
    think_of: str = ""
    why: str = ""
    confirm: str = ""

    @property
    def is_complete(self) -> bool:
        return all((self.clue, self.think_of, self.why, self.confirm))

    def texts(self) -> list[str]:
        return [self.clue, self.think_of, self.why, self.confirm]


@dataclass(slots=True)
class CompareRow:
    dx1: str = ""
    dx2: str = ""
    how_to_tell: str = ""


@dataclass(slots=True)
class CompareTopic:
    topic: str = ""
    rows: list[CompareRow] = field(default_factory=list)


@dataclass(slots=True)
class QuantCutoff:
    item: str = ""
    value: str = ""
    note: str = ""


@dataclass(slots=True)
class GlossaryEntry:
    term: str = ""
    definition: str = ""


_CORE_LISTS = ("high_yield_summary", "one_page_last_minute_review", "rapid_approach_table")


@dataclass(slots=True)
class SynthesisSummary:
    """Condensed exam summary produced by the optional synthesis call."""

    high_yield_summary: list[str] = field(default_factory=list)
    rapid_approach_table: list[RapidApproachRow] = field(default_factory=list)
    one_page_last_minute_review: list[str] = field(default_factory=list)
    compare_differential: list[CompareTopic] = field(default_factory=list)
    quant_cutoffs: list[QuantCutoff] = field(default_factory=list)
    pitfalls: list[str] = field(default_factory=list)
    glossary: list[GlossaryEntry] = field(default_factory=list)
    supplemental_glue: list[str] = field(default_factory=list)
    # Core lists absent (not just empty) in the decoded payload.
    missing_lists: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SynthesisSummary":
        return cls(
            high_yield_summary=_texts(payload.get("high_yield_summary")),
            rapid_approach_table=[
                RapidApproachRow(
                    clue=_text(item.get("clue")),
                    think_of=_text(item.get("think_of")),
                    why=_text(item.get("why")),
                    confirm=_text(item.get("confirm")),
                )
                for item in _mappings(payload.get("rapid_approach_table"))
            ],
            one_page_last_minute_review=_texts(payload.get("one_page_last_minute_review")),
            compare_differential=[
                CompareTopic(
                    topic=_text(item.get("topic")),
                    rows=[
                        CompareRow(
                            dx1=_text(row.get("dx1")),
                            dx2=_text(row.get("dx2")),
                            how_to_tell=_text(row.get("how_to_tell")),
                        )
                        for row in _mappings(item.get("rows"))
                    ],
                )
                for item in _mappings(payload.get("compare_differential"))
            ],
            quant_cutoffs=[
                QuantCutoff(item=_text(item.get("item")), value=_text(item.get("value")), note=_text(item.get("note")))
                for item in _mappings(payload.get("quant_cutoffs"))
            ],
            pitfalls=_texts(payload.get("pitfalls")),
            glossary=[
                GlossaryEntry(term=_text(item.get("term")), definition=_text(item.get("definition")))
                for item in _mappings(payload.get("glossary"))
            ],
            supplemental_glue=_texts(payload.get("supplemental_glue")),
            missing_lists=tuple(name for name in _CORE_LISTS if not isinstance(payload.get(name), list)),
        )

    def iter_strings(self) -> list[str]:
        """Every non-empty synthesized string, in a stable order."""

        strings: list[str] = [*self.high_yield_summary, *self.one_page_last_minute_review]
        strings.extend(self.pitfalls)
        strings.extend(self.supplemental_glue)
        for row in self.rapid_approach_table:
            strings.extend(row.texts())
        for topic in self.compare_differential:
            strings.append(topic.topic)
            for row in topic.rows:
                strings.extend((row.dx1, row.dx2, row.how_to_tell))
        for cutoff in self.quant_cutoffs:
            strings.extend((cutoff.item, cutoff.value, cutoff.note))
        for entry in self.glossary:
            strings.extend((entry.term, entry.definition))
        return [value for value in strings if value.strip()]


# ---------------------------------------------------------------------------
# Limits and text helpers
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ListLimits:
    min_items: int
    max_items: int
    max_words: int


HIGH_YIELD_LIMITS = ListLimits(min_items=8, max_items=12, max_words=16)
ONE_PAGE_LIMITS = ListLimits(min_items=12, max_items=18, max_words=14)
RAPID_MIN_ROWS = 10
RAPID_MAX_ROWS = 18
RAPID_FIELD_MAX_WORDS = {"clue": 10, "think_of": 6, "why": 14, "confirm": 10}
COMPARE_MIN_TOPICS = 2
COMPARE_MAX_TOPICS = 4
COMPARE_MIN_ROWS = 4
COMPARE_MAX_ROWS = 7
COMPARE_HOW_TO_TELL_MAX_WORDS = 18
GLUE_MAX_ITEMS = 10
GLUE_MAX_WORDS = 14
COVERAGE_MIN_RATIO = 0.7
ATOM_TOKEN_OVERLAP = 0.6
TRIGRAM_REPEAT_LIMIT = 3
NONEMPTY_MIN_RATIO = 0.7

STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "in",
        "is", "it", "of", "on", "or", "the", "to", "with", "without",
    }
)

_WORD_RE = re.compile(r"[a-z0-9]+", re.IGNORECASE)
_NON_WORD_RE = re.compile(r"[^a-z0-9\s]+")
_SPACE_RE = re.compile(r"\s+")


def word_count(text: str) -> int:
    return len(_WORD_RE.findall(text or ""))


def _normalize(text: str) -> str:
    return _SPACE_RE.sub(" ", _NON_WORD_RE.sub(" ", (text or "").lower())).strip()


def coverage_tokens(text: str) -> list[str]:
    normalized = _normalize(text)
    if not normalized:
        return []
    return [token for token in normalized.split(" ") if len(token) >= 2 and token not in STOPWORDS]


def _token_set(strings: Iterable[str]) -> set[str]:
    return {token for value in strings for token in coverage_tokens(value)}


def _source_strings(derived: DerivedFacts, extract: DocumentExtract | None) -> list[str]:
    strings = derived.iter_texts()
    for abbreviation, expansion in derived.abbrev_map.items():
        strings.extend((abbreviation, expansion))
    if extract is not None:
        for slide in extract.slides:
            strings.extend(slide.iter_fact_texts())
            for table in slide.tables:
                strings.append(table.caption)
                strings.extend(table.headers)
                strings.extend(cell for row in table.rows for cell in row)
    return [value for value in strings if value and value.strip()]


def _mentions_abbreviation(text: str, abbrev_map: Mapping[str, str]) -> bool:
    normalized = _normalize(text)
    if not normalized:
        return False
    for abbreviation, expansion in abbrev_map.items():
        short, long = _normalize(abbreviation), _normalize(expansion)
        if (short and short in normalized) or (long and long in normalized):
            return True
    return False


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


def _check_list(failures: list[GateFailure], items: Sequence[str], limits: ListLimits, path: str, label: str) -> None:
    if len(items) < limits.min_items:
        failures.append(GateFailure("TOO_FEW_BULLETS", f"{label} has too few bullets.", path))
    if len(items) > limits.max_items:
        failures.append(GateFailure("TOO_MANY_BULLETS", f"{label} has too many bullets.", path))
    for index, item in enumerate(items):
        if word_count(item) > limits.max_words:
            failures.append(GateFailure("BULLET_TOO_LONG", f"{label} bullet exceeds word limit.", f"{path}[{index}]"))


def _check_rapid_rows(failures: list[GateFailure], rows: Sequence[RapidApproachRow]) -> None:
    path = "rapid_approach_table"
    if len(rows) < RAPID_MIN_ROWS:
        failures.append(GateFailure("TOO_FEW_BULLETS", "Rapid-approach table has too few rows.", path))
    if len(rows) > RAPID_MAX_ROWS:
        failures.append(GateFailure("TOO_MANY_BULLETS", "Rapid-approach table has too many rows.", path))
    for index, row in enumerate(rows):
        if not row.is_complete:
            failures.append(
                GateFailure("TABLE_ROW_INVALID", "Rapid-approach row missing required fields.", f"{path}[{index}]")
            )
            continue
        for name, limit in RAPID_FIELD_MAX_WORDS.items():
            if word_count(getattr(row, name)) > limit:
                failures.append(
                    GateFailure("BULLET_TOO_LONG", f"Rapid-approach {name} exceeds word limit.", f"{path}[{index}].{name}")
                )


def _check_compare(failures: list[GateFailure], topics: Sequence[CompareTopic]) -> None:
    path = "compare_differential"
    if len(topics) < COMPARE_MIN_TOPICS:
        failures.append(GateFailure("TOO_FEW_BULLETS", "Compare differential has too few topics.", path))
    if len(topics) > COMPARE_MAX_TOPICS:
        failures.append(GateFailure("TOO_MANY_BULLETS", "Compare differential has too many topics.", path))
    for topic_index, topic in enumerate(topics):
        topic_path = f"{path}[{topic_index}]"
        if not topic.topic:
            failures.append(GateFailure("TABLE_ROW_INVALID", "Compare differential topic is empty.", f"{topic_path}.topic"))
        if len(topic.rows) < COMPARE_MIN_ROWS:
            failures.append(
                GateFailure("TOO_FEW_BULLETS", "Compare differential topic has too few rows.", f"{topic_path}.rows")
            )
        if len(topic.rows) > COMPARE_MAX_ROWS:
            failures.append(
                GateFailure("TOO_MANY_BULLETS", "Compare differential topic has too many rows.", f"{topic_path}.rows")
            )
        for row_index, row in enumerate(topic.rows):
            row_path = f"{topic_path}.rows[{row_index}]"
            if not (row.dx1 and row.dx2 and row.how_to_tell):
                failures.append(
                    GateFailure("TABLE_ROW_INVALID", "Compare differential row missing required fields.", row_path)
                )
                continue
            if word_count(row.how_to_tell) > COMPARE_HOW_TO_TELL_MAX_WORDS:
                failures.append(
                    GateFailure(
                        "BULLET_TOO_LONG",
                        "Compare differential how_to_tell exceeds word limit.",
                        f"{row_path}.how_to_tell",
                    )
                )


def _check_redundancy(failures: list[GateFailure], strings: Sequence[str]) -> None:
    normalized = [value for value in (_normalize(item) for item in strings) if value]
    if len(set(normalized)) < len(normalized):
        failures.append(GateFailure("REDUNDANT_BULLETS", "Duplicate bullets detected across synthesis output."))

    trigram_counts: dict[tuple[str, str, str], int] = {}
    for value in normalized:
        tokens = value.split(" ")
        for trigram in zip(tokens, tokens[1:], tokens[2:]):
            if all(token in STOPWORDS for token in trigram):
                continue
            trigram_counts[trigram] = trigram_counts.get(trigram, 0) + 1
    if any(count > TRIGRAM_REPEAT_LIMIT for count in trigram_counts.values()):
        failures.append(GateFailure("HIGH_NGRAM_OVERLAP", "Repeated trigrams detected across synthesis output."))


def _atom_is_covered(tokens: Sequence[str], available: set[str]) -> bool:
    ratio = sum(1 for token in tokens if token in available) / len(tokens)
    return ratio == 1 if len(tokens) <= 2 else ratio >= ATOM_TOKEN_OVERLAP


def validate_step_b(
    derived: DerivedFacts,
    summary: SynthesisSummary,
    *,
    extract: DocumentExtract | None = None,
    selected_atoms: Sequence[str] | None = None,
) -> list[GateFailure]:
    """Bounds, redundancy, exam-atom coverage and glue grounding checks."""

    failures: list[GateFailure] = []
    _check_list(failures, summary.high_yield_summary, HIGH_YIELD_LIMITS, "high_yield_summary", "High-yield summary")
    _check_list(
        failures,
        summary.one_page_last_minute_review,
        ONE_PAGE_LIMITS,
        "one_page_last_minute_review",
        "One-page review",
    )
    _check_rapid_rows(failures, summary.rapid_approach_table)
    _check_compare(failures, summary.compare_differential)

    glue = summary.supplemental_glue
    if len(glue) > GLUE_MAX_ITEMS:
        failures.append(GateFailure("TOO_MANY_BULLETS", "Supplemental glue has too many items.", "supplemental_glue"))
    for index, item in enumerate(glue):
        if word_count(item) > GLUE_MAX_WORDS:
            failures.append(
                GateFailure("BULLET_TOO_LONG", "Supplemental glue exceeds word limit.", f"supplemental_glue[{index}]")
            )

    synthesized = summary.iter_strings()
    _check_redundancy(failures, synthesized)

    atoms = list(selected_atoms) if selected_atoms else derived.exam_atoms
    synthesized_tokens = _token_set(synthesized)
    atom_tokens = [tokens for tokens in (coverage_tokens(atom) for atom in atoms) if tokens]
    if atom_tokens:
        covered = sum(1 for tokens in atom_tokens if _atom_is_covered(tokens, synthesized_tokens))
        coverage = covered / len(atom_tokens)
        if coverage < COVERAGE_MIN_RATIO:
            failures.append(
                GateFailure(
                    "LOW_COVERAGE",
                    f"Exam atom coverage {round(coverage * 100)}% is below target.",
                    "coverage",
                    details={"covered": covered, "atoms": len(atom_tokens)},
                )
            )

    source_tokens = _token_set(_source_strings(derived, extract))
    for index, item in enumerate(glue):
        if not item:
            continue
        tokens = coverage_tokens(item)
        overlap = sum(1 for token in tokens if token in source_tokens) / len(tokens) if tokens else 0.0
        if overlap < ATOM_TOKEN_OVERLAP and not _mentions_abbreviation(item, derived.abbrev_map):
            failures.append(
                GateFailure(
                    "GLUE_RULE_VIOLATION",
                    "Supplemental glue contains content not supported by the source.",
                    f"supplemental_glue[{index}]",
                )
            )

    return failures


def _nonempty_ratio(total: int, nonempty: int) -> float:
    return nonempty / total if total else 0.0


def _is_usable(item: str | RapidApproachRow) -> bool:
    return item.is_complete if isinstance(item, RapidApproachRow) else bool(item)


def validate_synthesis(summary: SynthesisSummary) -> list[GateFailure]:
    """Minimum completeness of the core summary lists."""

    failures: list[GateFailure] = []
    core_lists = (
        ("high_yield_summary", "High-yield summary", HIGH_YIELD_LIMITS.min_items, summary.high_yield_summary),
        ("one_page_last_minute_review", "One-page review", ONE_PAGE_LIMITS.min_items, summary.one_page_last_minute_review),
        ("rapid_approach_table", "Rapid-approach table", RAPID_MIN_ROWS, summary.rapid_approach_table),
    )
    for path, label, minimum, items in core_lists:
        usable = sum(1 for item in items if _is_usable(item))
        if path in summary.missing_lists:
            failures.append(GateFailure("SYNTHESIS_MISSING", f"{label} is missing.", path))
        elif len(items) < minimum:
            failures.append(GateFailure("SYNTHESIS_TOO_FEW", f"{label} below minimum count.", path))
        if items and _nonempty_ratio(len(items), usable) < NONEMPTY_MIN_RATIO:
            failures.append(GateFailure("SYNTHESIS_EMPTY", f"{label} has mostly empty items.", path))
        if usable and usable < minimum:
            failures.append(GateFailure("SYNTHESIS_TOO_FEW", f"{label} has too few usable items.", path))
    return failures


def ensure_synthesis(
    derived: DerivedFacts,
    summary: SynthesisSummary,
    *,
    extract: DocumentExtract | None = None,
) -> None:
    failures = [*validate_synthesis(summary), *validate_step_b(derived, summary, extract=extract)]
    raise_for_failures(SynthesisGateError, "synthesis", failures)
