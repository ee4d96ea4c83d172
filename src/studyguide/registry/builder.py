"""Build a span-grounded fact registry from extraction output and slide text."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from typing import Sequence

from studyguide.extraction.models import DerivedFacts, DocumentExtract
from studyguide.ingestion.models import SlideBlock
from studyguide.registry.models import FactRegistry, FactRegistryFact, FactRegistryFields, FactRegistrySpan, FactRegistryTopic
from studyguide.topics.inventory import TopicInventory, classify_topic_label, is_garbage_topic_label
from studyguide.topics.normalize import normalize_for_comparison, normalize_tokens, normalize_whitespace


logger = logging.getLogger(__name__)

MAX_FACT_LENGTH = 280

_MECHANISM_FACT_HINTS = re.compile(
    r"(mechanism|inhibit|block|bind|calcineurin|nfat|mTOR|il-2|cd28|cd80|cd86|signal|transcription|t[- ]cell|b[- ]cell)",
    re.IGNORECASE,
)
_CLINICAL_USE_HINTS = re.compile(
    r"(induction|maintenance|rescue|used for|use for|used in|prophylaxis|prevention|treat(ment)? of"
    r"|first[- ]line|second[- ]line|transplant)",
    re.IGNORECASE,
)
_TOXICITY_HINTS = re.compile(
    r"(tox|adverse|side effect|nephrotox|neurotox|infection|malignan|hypertension|hyperlipid|myelosuppression"
    r"|leukopenia|anemia|diarrhea|teratogen|pregnan|pml|ptld)",
    re.IGNORECASE,
)
_SERIOUS_TOX_HINTS = re.compile(
    r"(black box|boxed|fatal|life[- ]threatening|pml|ptld|lymphoma|malignan|contraindicat|avoid.*pregnan|teratogen)",
    re.IGNORECASE,
)
_PK_HINTS = re.compile(
    r"(half[- ]?life|t1/2|cyp|auc|bioavailability|metabolized|clearance|trough|xr|xl|extended[- ]release|p[- ]gp)",
    re.IGNORECASE,
)
_CONTRA_HINTS = re.compile(
    r"(contraindicat|avoid|warning|boxed|ebv seronegative|pregnan|lactation|do not use)",
    re.IGNORECASE,
)
_MONITOR_HINTS = re.compile(
    r"(monitor|trough|level|cbc|lft|renal|creatinine|infection|blood pressure|bp)",
    re.IGNORECASE,
)
_DOSING_HINTS = re.compile(
    r"(dose|dosing|mg/kg|mg\b|q\d|daily|weekly|monthly|day\s*\d|week\s*\d|schedule|timing|loading)",
    re.IGNORECASE,
)
_INTERACTION_HINTS = re.compile(
    r"(cyp3a5|cyp3a4|tpmt|nudt15|hla|genotype|polymorphism|expressor|grapefruit|drug interaction)",
    re.IGNORECASE,
)
_DASH_ONLY_RE = re.compile(r"^[-*]+\s*$")

# (pattern, field) in assignment order; a fact may land in several fields.
_FIELD_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (_DOSING_HINTS, "dosing_regimens_if_given"),
    (_INTERACTION_HINTS, "interactions_genetics"),
    (_PK_HINTS, "pk_pearls"),
    (_MONITOR_HINTS, "monitoring"),
    (_CONTRA_HINTS, "contraindications_warnings"),
    (_TOXICITY_HINTS, "toxicity_adverse_effects"),
    (_MECHANISM_FACT_HINTS, "mechanism"),
    (_CLINICAL_USE_HINTS, "clinical_use_indications"),
)


@dataclass(slots=True)
class FactCandidate:
    text: str
    slides: list[int] = field(default_factory=list)
    pages: list[int] = field(default_factory=list)


def build_topic_id(label: str) -> str:
    normalized = normalize_for_comparison(label)
    if normalized:
        return normalized.replace(" ", "_")
    return re.sub(r"\s+", "_", label.lower())[:80]


def matches_topic(text: str, topic: str) -> bool:
    """Normalized substring match, or every significant topic token present."""

    normalized_topic = normalize_for_comparison(topic)
    normalized_text = normalize_for_comparison(text)
    if not normalized_text or not normalized_topic:
        return False
    if normalized_topic in normalized_text:
        return True
    topic_tokens = normalize_tokens(topic)
    if not topic_tokens:
        return False
    text_tokens = set(normalize_tokens(text))
    return all(token in text_tokens for token in topic_tokens)


def categorize_fact_text(text: str) -> list[tuple[str, str | None]]:
    """Fields a fact belongs to; toxicity carries a ``common``/``serious`` sub-key."""

    categories: list[tuple[str, str | None]] = []
    for pattern, field_name in _FIELD_RULES:
        if not pattern.search(text):
            continue
        if field_name == "toxicity_adverse_effects":
            categories.append((field_name, "serious" if _SERIOUS_TOX_HINTS.search(text) else "common"))
        else:
            categories.append((field_name, None))
    return categories


def _should_use_fact(text: str) -> bool:
    cleaned = normalize_whitespace(text)
    if len(cleaned) < 3 or len(cleaned) > MAX_FACT_LENGTH:
        return False
    return not _DASH_ONLY_RE.match(cleaned)


def _fact_key(text: str) -> str:
    cleaned = normalize_whitespace(text)
    return normalize_for_comparison(cleaned) or cleaned.lower()


class _ProvenanceIndex:
    """Slide/page provenance for texts that came straight from slides."""

    def __init__(self) -> None:
        self._exact: dict[str, tuple[list[int], list[int]]] = {}
        self._entries: list[tuple[str, list[int], list[int]]] = []

    def add(self, text: str, slides: list[int], pages: list[int]) -> None:
        key = normalize_for_comparison(text)
        if not key or not slides:
            return
        self._exact.setdefault(key, (slides, pages))
        self._entries.append((key, slides, pages))

    def lookup(self, text: str) -> tuple[list[int], list[int]] | None:
        key = normalize_for_comparison(text)
        if not key:
            return None
        if key in self._exact:
            return self._exact[key]
        for entry_key, slides, pages in self._entries:
            if key in entry_key:
                return slides, pages
        return None


def _build_provenance(extract: DocumentExtract, derived: DerivedFacts, slides: Sequence[SlideBlock]) -> _ProvenanceIndex:
    index = _ProvenanceIndex()
    for slide in extract.slides:
        for text in slide.iter_fact_texts():
            index.add(text, [slide.n], [slide.page])
    for span in derived.source_spans:
        index.add(span.text, span.slides, span.pages)
    for block in slides:
        for line in block.text.split("\n"):
            index.add(line, [block.index], [block.page])
    return index


class _SpanRegistry:
    def __init__(self) -> None:
        self.spans: list[FactRegistrySpan] = []
        self._by_key: dict[str, FactRegistrySpan] = {}

    def register(self, candidate: FactCandidate) -> str:
        key = _fact_key(candidate.text)
        existing = self._by_key.get(key)
        if existing is not None:
            existing.slides = sorted({*existing.slides, *candidate.slides})
            existing.pages = sorted({*existing.pages, *candidate.pages})
            return existing.id

        span = FactRegistrySpan(
            id=f"S{len(self.spans) + 1}",
            text=normalize_whitespace(candidate.text),
            slides=sorted(set(candidate.slides)),
            pages=sorted(set(candidate.pages)),
        )
        self.spans.append(span)
        self._by_key[key] = span
        return span.id


def gather_topic_facts(
    topic: str,
    extract: DocumentExtract,
    derived: DerivedFacts,
    slides: Sequence[SlideBlock],
    provenance: _ProvenanceIndex,
) -> list[FactCandidate]:
    """Collect grounded, de-duplicated fact candidates relevant to ``topic``.

    Sources in order: extracted slide sections, derived raw facts, exam atoms,
    derived source spans, then raw slide lines. Candidates without slide
    provenance are dropped.
    """

    candidates: list[FactCandidate] = []
    seen: set[str] = set()
    matching_slides: set[int] = set()

    def add_candidate(text: str, slide_numbers: list[int], page_numbers: list[int]) -> None:
        cleaned = normalize_whitespace(text)
        if not _should_use_fact(cleaned):
            return
        if not slide_numbers:
            grounded = provenance.lookup(cleaned)
            if grounded is None:
                logger.debug("Dropping ungrounded fact for %s: %s", topic, cleaned)
                return
            slide_numbers, page_numbers = grounded
        key = _fact_key(cleaned)
        if key in seen:
            return
        seen.add(key)
        candidates.append(FactCandidate(text=cleaned, slides=list(slide_numbers), pages=list(page_numbers)))

    for slide in extract.slides:
        for section in slide.sections:
            heading_matches = bool(section.heading) and matches_topic(section.heading, topic)
            for fact in section.facts:
                if heading_matches or matches_topic(fact.text, topic):
                    matching_slides.add(slide.n)
                    add_candidate(fact.text, [slide.n], [slide.page])

    for text in derived.raw_facts:
        if matches_topic(text, topic):
            add_candidate(text, [], [])
    for text in derived.exam_atoms:
        if matches_topic(text, topic):
            add_candidate(text, [], [])
    for span in derived.source_spans:
        if matches_topic(span.text, topic):
            add_candidate(span.text, span.slides, span.pages)

    for block in slides:
        lines = block.text.split("\n")
        if block.index in matching_slides or any(matches_topic(line, topic) for line in lines):
            for line in lines:
                cleaned = normalize_whitespace(line)
                if not _should_use_fact(cleaned) or is_garbage_topic_label(cleaned):
                    continue
                add_candidate(cleaned, [block.index], [block.page])

    return candidates


def _add_fact(target: list[FactRegistryFact], fact: FactRegistryFact) -> None:
    if fact not in target:
        target.append(fact)


def _assign_fact(fields: FactRegistryFields, fact: FactRegistryFact) -> None:
    categories = categorize_fact_text(fact.text)
    if not categories:
        _add_fact(fields.definition_or_role, fact)
        return
    for field_name, sub_key in categories:
        if field_name == "toxicity_adverse_effects":
            toxicity = fields.toxicity_adverse_effects
            _add_fact(toxicity.serious if sub_key == "serious" else toxicity.common, fact)
        else:
            _add_fact(fields.list_field(field_name), fact)


def build_fact_registry(
    *,
    extract: DocumentExtract,
    derived: DerivedFacts,
    inventory: TopicInventory,
    slides: Sequence[SlideBlock],
) -> FactRegistry:
    """Build one registry topic per non-garbage condition or process label."""

    provenance = _build_provenance(extract, derived, slides)
    span_registry = _SpanRegistry()
    topics: list[FactRegistryTopic] = []
    seen_topics: set[str] = set()

    for label in [*inventory.conditions, *inventory.processes]:
        cleaned = normalize_whitespace(label)
        normalized = normalize_for_comparison(cleaned)
        if not normalized or normalized in seen_topics:
            continue
        seen_topics.add(normalized)

        kind = classify_topic_label(cleaned)
        if kind == "garbage":
            continue

        fields = FactRegistryFields()
        for candidate in gather_topic_facts(cleaned, extract, derived, slides, provenance):
            span_id = span_registry.register(candidate)
            _assign_fact(fields, FactRegistryFact(text=candidate.text, span_id=span_id))

        topics.append(FactRegistryTopic(topic_id=build_topic_id(cleaned), label=cleaned, kind=kind, fields=fields))

    logger.info("Built fact registry with %d topic(s) and %d span(s)", len(topics), len(span_registry.spans))
    return FactRegistry(topics=topics, spans=span_registry.spans)
