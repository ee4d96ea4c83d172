"""Heuristic topic classification and per-document topic inventory.

Candidate labels come from slide headings (the first line of each slide plus any
of the next nine lines that look topical). Each label is classified into exactly
one kind by an ordered list of ``(predicate, kind)`` rules; garbage labels are
recorded but never enter a kind bucket.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
import re
from typing import Callable, Iterable, Literal

from studyguide.ingestion.models import SlideBlock
from studyguide.topics.normalize import normalize_for_comparison, normalize_whitespace, strip_leading_numbering


TopicKind = Literal["drug", "drug_class", "condition", "process", "garbage"]
InventoryCategory = Literal["tests", "treatments", "formulas_cutoffs", "mechanisms"]

MAX_LABEL_CHARS = 140
MAX_HEADING_SCAN_LINES = 10


# ---------------------------------------------------------------------------
# Heading cleanup
# ---------------------------------------------------------------------------

_HEADING_SUFFIXES = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"overview$",
        r"causes?$",
        r"differential diagnosis$",
        r"differential$",
        r"diagnosis$",
        r"classification$",
        r"pathophysiology$",
        r"pathophys$",
        r"presentation$",
        r"management$",
        r"treatment$",
        r"practice quiz.*$",
        r"case.*$",
        r"learning objectives$",
        r"introduction.*$",
    )
)

_HEADING_PREFIXES = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^practice quiz\s*[-:]\s*",
        r"^case\s*\d*\s*[-:]\s*",
        r"^slide\s*\d+\s*[-:]\s*",
    )
)

_TRAILING_SEPARATOR_RE = re.compile(r"\s*[-:]\s*$")
_ARROW_RE = re.compile("->|\u2192")
_CODE_FENCE_RE = re.compile(r"```|'''")
_DASH_ONLY_RE = re.compile(r"^[-*]+\s*$")
_DIGITS_ONLY_RE = re.compile(r"^\d+$")


# ---------------------------------------------------------------------------
# Keyword hints
# ---------------------------------------------------------------------------

_MECHANISM_HINTS = re.compile(
    r"(mechanism|pathophys|pathophysiology|compensation|buffer|regulation|axis|pathway|signal|signaling)",
    re.IGNORECASE,
)
_TEST_HINTS = re.compile(r"(diagnosis|diagnostic|test|lab|abg|pco2|hco3|ph|anion gap|imaging|workup)", re.IGNORECASE)
_TREATMENT_HINTS = re.compile(r"(treatment|therapy|management|antidote|insulin|fluids|dialysis)", re.IGNORECASE)
_FORMULA_HINTS = re.compile(
    r"(formula|equation|calculation|cutoff|ratio|gap|delta|winter|normal range)",
    re.IGNORECASE,
)
_PATHWAY_WORD_RE = re.compile(r"(axis|pathway|signal|signaling)", re.IGNORECASE)

_GENERIC_HEADING_HINT = re.compile(
    r"(syndrome|disease|disorder|acidosis|alkalosis|toxicity|overdose|rta|tubular|hyper|hypo|rejection|gvhd)",
    re.IGNORECASE,
)
_CONDITION_HINT = re.compile(r"(rejection|gvhd|syndrome|disease|disorder)", re.IGNORECASE)

_DRUG_CLASS_HINTS = re.compile(
    r"(inhibitors?|blockers?|antagonists?|agonists?|antimetabolites?|immunosuppressants?|steroids?"
    r"|antibodies?|analogs?|co-?stim(ulation)? blockers?|calcineurin|mTOR|IL-2R)",
    re.IGNORECASE,
)

DRUG_SUFFIXES = (
    "mab",
    "nib",
    "tinib",
    "statin",
    "pril",
    "sartan",
    "olol",
    "prazole",
    "azole",
    "cillin",
    "caine",
    "vir",
    "avir",
    "vudine",
    "mycin",
    "floxacin",
    "tacrolimus",
    "porine",
    "imus",
    "cept",
    "azine",
)

DRUG_EXACT_MATCHES = frozenset(
    {
        "tacrolimus",
        "cyclosporine",
        "sirolimus",
        "everolimus",
        "mycophenolate",
        "mycophenolate mofetil",
        "basiliximab",
        "belatacept",
        "alemtuzumab",
        "ratg",
        "antithymocyte globulin",
        "prednisone",
        "prednisolone",
        "methylprednisolone",
    }
)


# ---------------------------------------------------------------------------
# Garbage detection
# ---------------------------------------------------------------------------

_GARBAGE_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"'''|```",
        r"\bplaintext\b",
        r"\bobjectives?\b",
        r"\bsummary\b",
        r"\boverview\b",
        r"\bintroduction\b",
        r"\btimeline\b",
        r"\bagenda\b",
        r"\boutline\b",
        r"\btable of contents\b",
        r"\blearning objectives\b",
        r"\bdisclosure\b",
        r"\bconflict(s)? of interest\b",
        r"\breferences?\b",
        r"\backnowledg",
        r"\bappendix\b",
        r"^mechanism(s)?$",
        r"^pathway(s)?$",
        r"^signal(ing)?$",
        r"^axis(es)?$",
        r"\bslide\s*\d+\b",
        r"\bmanagement of\b",
        r"\btreatment of\b",
        r"\bdiagnosis of\b",
        r"\bworkup of\b",
        r"\bpathophysiology of\b",
        r"\bmechanism of\b",
        r"\bapproach to\b",
        r"\bcase study\b",
        r"\bcase presentation\b",
        r"\bkey points\b",
        "\u2014\\s*end\\s*\u2014",
        r"--\s*end\s*--",
        r"\bend\b\s*$",
    )
)

_SPEAKER_HINTS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\b(md|do|phd|mph|msc|mba|rn|np|pa)\b",
        r"\bprofessor\b",
        r"\bdepartment\b",
        r"\buniversity\b",
        r"\bhospital\b",
        r"\bmedical center\b",
    )
)


def _token_count(label: str) -> int:
    normalized = normalize_for_comparison(label)
    return len(normalized.split(" ")) if normalized else 0


def normalize_topic_label(line: str) -> str:
    """Strip numbering, heading prefixes and generic heading suffixes."""

    cleaned = normalize_whitespace(strip_leading_numbering(line))
    for prefix in _HEADING_PREFIXES:
        cleaned = prefix.sub("", cleaned)
    for suffix in _HEADING_SUFFIXES:
        cleaned = suffix.sub("", cleaned)
    cleaned = _TRAILING_SEPARATOR_RE.sub("", cleaned)
    return normalize_whitespace(cleaned)


def is_garbage_topic_label(label: str) -> bool:
    """Boilerplate headings, speaker lines and code-fence artifacts."""

    trimmed = normalize_whitespace(label)
    if not trimmed or len(trimmed) > MAX_LABEL_CHARS:
        return True
    if _DASH_ONLY_RE.match(trimmed) or _DIGITS_ONLY_RE.match(trimmed):
        return True

    for pattern in _GARBAGE_PATTERNS:
        if pattern.search(trimmed):
            if _ARROW_RE.search(trimmed):
                return False
            if _PATHWAY_WORD_RE.search(trimmed) and _token_count(trimmed) >= 2:
                return False
            return True

    return any(pattern.search(trimmed) for pattern in _SPEAKER_HINTS)


def looks_like_drug_class(label: str) -> bool:
    return bool(_DRUG_CLASS_HINTS.search(label))


def looks_like_drug(label: str) -> bool:
    cleaned = normalize_whitespace(label).lower()
    if not cleaned:
        return False
    if cleaned in DRUG_EXACT_MATCHES:
        return True
    words = cleaned.split(" ")
    if len(words) > 3:
        return False
    return any(word.endswith(suffix) for word in words for suffix in DRUG_SUFFIXES)


def looks_like_process(label: str) -> bool:
    if _ARROW_RE.search(label):
        return True
    if not _MECHANISM_HINTS.search(label):
        return False
    tokens = _token_count(label)
    return tokens >= 3 or (tokens >= 2 and bool(_PATHWAY_WORD_RE.search(label)))


def looks_like_condition(label: str) -> bool:
    return bool(_GENERIC_HEADING_HINT.search(label) or _CONDITION_HINT.search(label))


# Evaluated in order; the first matching predicate decides the kind.
KIND_RULES: tuple[tuple[Callable[[str], bool], TopicKind], ...] = (
    (is_garbage_topic_label, "garbage"),
    (looks_like_drug_class, "drug_class"),
    (looks_like_drug, "drug"),
    (looks_like_process, "process"),
    (looks_like_condition, "condition"),
)

CATEGORY_RULES: tuple[tuple[re.Pattern[str], InventoryCategory], ...] = (
    (_FORMULA_HINTS, "formulas_cutoffs"),
    (_TEST_HINTS, "tests"),
    (_TREATMENT_HINTS, "treatments"),
    (_MECHANISM_HINTS, "mechanisms"),
)


def classify_topic_label(label: str) -> TopicKind:
    for predicate, kind in KIND_RULES:
        if predicate(label):
            return kind
    return "condition"


def classify_inventory_category(label: str) -> InventoryCategory | None:
    for pattern, category in CATEGORY_RULES:
        if pattern.search(label):
            return category
    return None


@dataclass(slots=True)
class TopicInventory:
    """Typed topic buckets for one document; entries are unique per bucket."""

    conditions: list[str] = field(default_factory=list)
    drugs: list[str] = field(default_factory=list)
    drug_classes: list[str] = field(default_factory=list)
    phenotypes: list[str] = field(default_factory=list)
    processes: list[str] = field(default_factory=list)
    garbage: list[str] = field(default_factory=list)
    tests: list[str] = field(default_factory=list)
    treatments: list[str] = field(default_factory=list)
    formulas_cutoffs: list[str] = field(default_factory=list)
    mechanisms: list[str] = field(default_factory=list)

    def bucket(self, name: str) -> list[str]:
        if name not in self.bucket_names():
            raise KeyError(name)
        return getattr(self, name)

    @classmethod
    def bucket_names(cls) -> tuple[str, ...]:
        return tuple(item.name for item in fields(cls))

    def add(self, name: str, value: str) -> bool:
        """Insert ``value`` unless an equivalent label is already present."""

        cleaned = normalize_whitespace(value)
        if not cleaned:
            return False
        key = normalize_for_comparison(cleaned) or cleaned.lower()
        bucket = self.bucket(name)
        if any((normalize_for_comparison(item) or item.lower()) == key for item in bucket):
            return False
        bucket.append(cleaned)
        return True

    def to_dict(self) -> dict[str, list[str]]:
        return {name: list(self.bucket(name)) for name in self.bucket_names()}


_KIND_BUCKETS: dict[TopicKind, tuple[str, ...]] = {
    "drug": ("drugs", "conditions"),
    "drug_class": ("drug_classes", "conditions"),
    "condition": ("phenotypes", "conditions"),
    "process": ("processes", "mechanisms"),
    "garbage": ("garbage",),
}

# Buckets that must never contain a garbage label.
KIND_BUCKET_NAMES = ("conditions", "drugs", "drug_classes", "phenotypes", "processes")


def _should_consider_line(line: str) -> bool:
    trimmed = normalize_whitespace(line)
    if not trimmed or len(trimmed) > MAX_LABEL_CHARS:
        return False
    return not (_DASH_ONLY_RE.match(trimmed) or _DIGITS_ONLY_RE.match(trimmed))


def _collect_slide_lines(text: str) -> list[str]:
    lines: list[str] = []
    in_code_block = False
    for raw in (text or "").split("\n"):
        line = raw.strip()
        if _CODE_FENCE_RE.search(line):
            in_code_block = not in_code_block
            continue
        if in_code_block or not _should_consider_line(line):
            continue
        lines.append(line)
    return lines


def _is_topical_line(line: str) -> bool:
    return bool(
        _GENERIC_HEADING_HINT.search(line)
        or looks_like_drug(line)
        or looks_like_drug_class(line)
        or looks_like_process(line)
    )


def candidate_labels(slide: SlideBlock) -> list[str]:
    """First line unconditionally plus topical lines among the next nine."""

    lines = _collect_slide_lines(slide.text)
    if not lines:
        return []
    return [lines[0], *(line for line in lines[1:MAX_HEADING_SCAN_LINES] if _is_topical_line(line))]


def build_topic_inventory(slides: Iterable[SlideBlock]) -> TopicInventory:
    """Classify candidate heading labels from every slide into typed buckets."""

    inventory = TopicInventory()
    for slide in slides:
        for raw in candidate_labels(slide):
            label = normalize_topic_label(raw)
            if not label:
                continue
            for bucket_name in _KIND_BUCKETS[classify_topic_label(label)]:
                inventory.add(bucket_name, label)
            category = classify_inventory_category(label)
            if category is not None:
                inventory.add(category, label)
    return inventory


def summarize_inventory(inventory: TopicInventory) -> dict[str, int]:
    return {
        "conditions": len(inventory.conditions),
        "drugs": len(inventory.drugs),
        "drug_classes": len(inventory.drug_classes),
        "tests": len(inventory.tests),
        "treatments": len(inventory.treatments),
        "formulas_cutoffs": len(inventory.formulas_cutoffs),
        "mechanisms": len(inventory.mechanisms),
    }
