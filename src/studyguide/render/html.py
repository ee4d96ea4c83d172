"""Deterministic HTML renderer for a gated fact registry.

Rendering is a pure function of its inputs: the build timestamp is passed in and
every collection is walked in its given order, so identical inputs give
byte-identical documents.
"""

from __future__ import annotations

from dataclasses import dataclass
from html import escape
import re
from typing import Callable, Iterable, Sequence

from studyguide.extraction.models import DerivedFacts
from studyguide.ingestion.models import SlideBlock
from studyguide.quality.synthesis import SynthesisSummary
from studyguide.quality.table_schemas import RAPID_APPROACH_SCHEMA, TREATMENTS_SCHEMA, TableSchema
from studyguide.registry.models import FactRegistry, FactRegistryFact, FactRegistryTopic
from studyguide.registry.policy import DEFAULT_MIN_FACTS_PER_TOPIC, PLACEHOLDER_FACT_RE, OmittedTopic, select_fact_text
from studyguide.render.contracts import render_legend, render_style_block
from studyguide.topics.inventory import TopicInventory
from studyguide.topics.normalize import normalize_for_comparison


MAX_FACT_WORDS = 20
DEFAULT_BUILD_UTC = "1970-01-01T00:00:00Z"
PARTIAL_FALLBACK_MESSAGE = "Content missing due to partial extraction; see Coverage & QA."

TOPIC_HIGHLIGHT = {
    "drug": "treatment",
    "drug_class": "treatment",
    "condition": "disease",
    "process": "mechanism",
}

FIELD_HIGHLIGHT = {
    "mechanism": "mechanism",
    "clinical_use_indications": "treatment",
    "toxicity": "symptom",
    "monitoring": "diagnostic",
    "dosing": "treatment",
    "interactions_genetics": "gene",
    "pk": "mechanism",
    "contraindications": "symptom",
}

TIMING_HINTS = re.compile(r"(minute|hour|day|week|month|year|immediate|delayed|early|late|rapid|within)", re.IGNORECASE)
REJECTION_HINTS = re.compile(r"(rejection|gvhd)", re.IGNORECASE)
_MNEMONIC_RE = re.compile(r"mnemonic", re.IGNORECASE)

REJECTION_TYPES = ("hyperacute", "accelerated", "acute", "chronic")
SIGNATURE_TOXICITY_DRUGS = ("cyclosporine", "tacrolimus", "sirolimus", "mycophenolate")

SECTION_TITLES = (
    ("output-identity", "Output Identity"),
    ("highlight-legend", "Highlight Legend"),
    ("core-conditions", "Core Conditions & Patterns"),
    ("condition-coverage", "Condition Coverage Table"),
    ("rapid-approach-summary", "Rapid-Approach Summary (Global)"),
    ("differential-diagnosis", "Differential Diagnosis"),
    ("cutoffs-formulas", "Cutoffs & Formulas"),
    ("diagnostics-labs", "Diagnostics & Labs"),
    ("treatments-management", "Treatments & Management"),
    ("pitfalls-red-flags", "Pitfalls & Red Flags"),
    ("mnemonics", "Mnemonics"),
    ("slide-by-slide-appendix", "Slide-by-Slide Appendix"),
    ("coverage-qa", "Coverage & QA"),
)

_PAGE_CSS = (
    "body { margin: 0; }",
    ".sticky-header { z-index: 5; }",
    "main.content { padding: 16px 20px 32px; }",
    "section { margin-bottom: 28px; }",
    "h1 { font-size: 1.35em; margin: 14px 0 8px; }",
    "h2 { font-size: 1.1em; margin: 12px 0 6px; }",
    ".section-card { background: var(--bg-surface); border: 1px solid var(--border-subtle); "
    "border-radius: 10px; padding: 14px; }",
)

CellRenderer = Callable[[str], str]


@dataclass(slots=True)
class RenderInput:
    """Everything the renderer reads; ``registry`` holds only gated topics."""

    lecture_title: str
    slides: Sequence[SlideBlock]
    inventory: TopicInventory
    registry: FactRegistry
    derived: DerivedFacts | None = None
    omitted: Sequence[OmittedTopic] = ()
    min_facts: int = DEFAULT_MIN_FACTS_PER_TOPIC
    synthesis: SynthesisSummary | None = None
    qa_notes: Sequence[str] = ()
    partial: bool = False
    build_utc: str = DEFAULT_BUILD_UTC


# ---------------------------------------------------------------------------
# Cell helpers
# ---------------------------------------------------------------------------


def _is_placeholder(text: str) -> bool:
    return bool(PLACEHOLDER_FACT_RE.search(text or ""))


def clamp_words(text: str, max_words: int = MAX_FACT_WORDS) -> str:
    return " ".join((text or "").split()[:max_words])


def render_text(text: str) -> str:
    """Escaped free text, clamped like every displayed fact."""

    return escape(clamp_words(text))


def render_fact(text: str, highlight: str) -> str:
    return f'<span class="hl {highlight}">{render_text(text)}</span>'


def render_topic_label(topic: FactRegistryTopic) -> str:
    return f'<span class="hl {TOPIC_HIGHLIGHT.get(topic.kind, "disease")}">{escape(topic.label)}</span>'


def highlight_for(field_name: str, topic: FactRegistryTopic) -> str:
    return FIELD_HIGHLIGHT.get(field_name, TOPIC_HIGHLIGHT.get(topic.kind, "disease"))


def pick_fact(*sources: Sequence[FactRegistryFact]) -> str:
    """First usable fact across ``sources``, tried in order."""

    for items in sources:
        text = select_fact_text(items)
        if text:
            return text
    return ""


def _serious_then_common(topic: FactRegistryTopic) -> tuple[list[FactRegistryFact], list[FactRegistryFact]]:
    toxicity = topic.fields.toxicity_adverse_effects
    return toxicity.serious, toxicity.common


def _all_facts(topic: FactRegistryTopic) -> list[FactRegistryFact]:
    fields = topic.fields
    return [
        *fields.definition_or_role,
        *fields.clinical_use_indications,
        *fields.mechanism,
        *fields.toxicity_adverse_effects.serious,
        *fields.toxicity_adverse_effects.common,
        *fields.pk_pearls,
        *fields.monitoring,
        *fields.dosing_regimens_if_given,
        *fields.contraindications_warnings,
        *fields.interactions_genetics,
    ]


def _cycle_fill(rows: list[list[str]], min_rows: int) -> list[list[str]]:
    """Repeat existing rows up to ``min_rows``; an empty table stays empty."""

    if not rows or len(rows) >= min_rows:
        return rows
    filled = list(rows)
    index = 0
    while len(filled) < min_rows:
        filled.append(rows[index % len(rows)])
        index += 1
    return filled


def _topic_key(topic: FactRegistryTopic) -> str:
    return normalize_for_comparison(topic.label) or topic.topic_id


# ---------------------------------------------------------------------------
# Row builders
# ---------------------------------------------------------------------------


def build_core_topic_bullets(topic: FactRegistryTopic) -> list[str]:
    """Up to four labelled bullets, padded with detail facts to at least three."""

    fields = topic.fields
    bullets: list[str] = []
    used: set[str] = set()

    def add(label: str, text: str, highlight: str) -> None:
        if not text or _is_placeholder(text) or f"{label}:{text}" in used:
            return
        used.add(f"{label}:{text}")
        bullets.append(f"{escape(label)}: {render_fact(text, highlight)}")

    add("Context", pick_fact(fields.definition_or_role, fields.clinical_use_indications), highlight_for("definition", topic))
    add(
        "Key clue",
        pick_fact(*_serious_then_common(topic), fields.mechanism),
        highlight_for("toxicity", topic),
    )
    add(
        "Confirm/Monitor",
        pick_fact(fields.monitoring, fields.pk_pearls, fields.interactions_genetics),
        highlight_for("monitoring", topic),
    )
    add("Treat/Next", pick_fact(fields.dosing_regimens_if_given, fields.clinical_use_indications), highlight_for("dosing", topic))

    if len(bullets) < 3:
        filler = [
            *fields.mechanism,
            *fields.pk_pearls,
            *fields.toxicity_adverse_effects.serious,
            *fields.toxicity_adverse_effects.common,
            *fields.interactions_genetics,
            *fields.contraindications_warnings,
        ]
        for fact in filler:
            if len(bullets) >= 3:
                break
            add("Detail", fact.text, highlight_for("mechanism", topic))

    return bullets[:4]


def build_rapid_approach_rows(topics: Sequence[FactRegistryTopic], min_rows: int = 3) -> list[list[str]]:
    """Rows ordered rejection conditions, drug classes, drugs, conditions; best-filled first."""

    prioritized = [
        *(topic for topic in topics if topic.kind == "condition" and REJECTION_HINTS.search(topic.label)),
        *(topic for topic in topics if topic.kind == "drug_class"),
        *(topic for topic in topics if topic.kind == "drug"),
        *(topic for topic in topics if topic.kind == "condition"),
    ]
    scored: list[tuple[int, list[str]]] = []
    seen: set[str] = set()
    for topic in prioritized:
        key = _topic_key(topic)
        if key in seen:
            continue
        seen.add(key)
        fields = topic.fields
        clue = select_fact_text(_all_facts(topic), match=TIMING_HINTS)
        if not TIMING_HINTS.search(clue):
            clue = pick_fact(*_serious_then_common(topic), fields.definition_or_role)
        why = pick_fact(fields.mechanism, fields.definition_or_role)
        confirm = pick_fact(fields.monitoring, fields.pk_pearls, fields.interactions_genetics)
        treat = pick_fact(fields.dosing_regimens_if_given, fields.clinical_use_indications)
        score = sum(1 for value in (clue, why, confirm, treat) if value)
        scored.append(
            (
                score,
                [
                    render_fact(clue, highlight_for("toxicity", topic)) if clue else "",
                    render_topic_label(topic),
                    render_fact(why, highlight_for("mechanism", topic)) if why else "",
                    render_fact(confirm, highlight_for("monitoring", topic)) if confirm else "",
                    render_fact(treat, highlight_for("dosing", topic)) if treat else "",
                ],
            )
        )

    # Stable sort keeps priority order among equal scores.
    scored.sort(key=lambda item: -item[0])
    return _cycle_fill([row for _, row in scored], min_rows)


def build_treatment_rows(topics: Sequence[FactRegistryTopic], min_rows: int) -> list[list[str]]:
    scored: list[tuple[int, list[str]]] = []
    seen: set[str] = set()
    for topic in topics:
        if topic.kind not in ("drug", "drug_class"):
            continue
        key = _topic_key(topic)
        if key in seen:
            continue
        seen.add(key)

        fields = topic.fields
        mechanism = select_fact_text(fields.mechanism)
        toxicity = pick_fact(*_serious_then_common(topic))
        monitor = select_fact_text(fields.monitoring)
        interaction = select_fact_text(fields.interactions_genetics)
        pk = select_fact_text(fields.pk_pearls)
        use = select_fact_text(fields.clinical_use_indications)
        warning = select_fact_text(fields.contraindications_warnings)

        monitoring, monitoring_field = next(
            ((text, name) for text, name in ((monitor, "monitoring"), (interaction, "interactions_genetics"), (pk, "pk")) if text),
            ("", "monitoring"),
        )
        pearls, pearls_field = next(
            (
                (text, name)
                for text, name in (
                    (pk, "pk"),
                    (interaction, "interactions_genetics"),
                    (use, "clinical_use_indications"),
                    (warning, "contraindications"),
                )
                if text
            ),
            ("", "mechanism"),
        )
        score = sum(1 for value in (mechanism, toxicity, monitoring, pearls) if value)
        if not score:
            continue
        scored.append(
            (
                score,
                [
                    render_topic_label(topic),
                    render_fact(mechanism, highlight_for("mechanism", topic)) if mechanism else "",
                    render_fact(toxicity, highlight_for("toxicity", topic)) if toxicity else "",
                    render_fact(monitoring, highlight_for(monitoring_field, topic)) if monitoring else "",
                    render_fact(pearls, highlight_for(pearls_field, topic)) if pearls else "",
                ],
            )
        )

    scored.sort(key=lambda item: -item[0])
    return _cycle_fill([row for _, row in scored], min_rows)


def build_condition_coverage_rows(topics: Sequence[FactRegistryTopic]) -> list[list[str]]:
    """Only topics with a clue, discriminator, confirm step and next step."""

    rows: list[list[str]] = []
    for topic in topics:
        fields = topic.fields
        clue = pick_fact(*_serious_then_common(topic), fields.definition_or_role)
        why = pick_fact(fields.mechanism, fields.definition_or_role)
        confirm = pick_fact(fields.monitoring, fields.pk_pearls, fields.interactions_genetics)
        treat = pick_fact(fields.clinical_use_indications, fields.dosing_regimens_if_given)
        if not (clue and why and confirm and treat):
            continue
        rows.append(
            [
                render_topic_label(topic),
                render_fact(clue, highlight_for("toxicity", topic)),
                render_fact(why, highlight_for("mechanism", topic)),
                render_fact(confirm, highlight_for("monitoring", topic)),
                render_fact(treat, highlight_for("dosing", topic)),
            ]
        )
    return rows


def build_rejection_rows(topics: Sequence[FactRegistryTopic]) -> list[list[str]]:
    rows: list[list[str]] = []
    for target in REJECTION_TYPES:
        topic = next((item for item in topics if target in normalize_for_comparison(item.label)), None)
        if topic is None:
            continue
        fields = topic.fields
        timing = select_fact_text(_all_facts(topic), match=TIMING_HINTS)
        mechanism = pick_fact(fields.mechanism, fields.definition_or_role)
        implication = pick_fact(fields.clinical_use_indications, fields.toxicity_adverse_effects.serious)
        if timing and mechanism and implication:
            rows.append(
                [
                    render_topic_label(topic),
                    render_fact(timing, highlight_for("definition", topic)),
                    render_fact(mechanism, highlight_for("mechanism", topic)),
                    render_fact(implication, highlight_for("clinical_use_indications", topic)),
                ]
            )
    return rows


def build_drug_class_rows(topics: Sequence[FactRegistryTopic]) -> list[list[str]]:
    rows: list[list[str]] = []
    for topic in topics:
        if topic.kind != "drug_class":
            continue
        fields = topic.fields
        moa = select_fact_text(fields.mechanism)
        toxicity = pick_fact(*_serious_then_common(topic))
        pk = select_fact_text(fields.pk_pearls)
        use = select_fact_text(fields.clinical_use_indications)
        if moa and toxicity and pk and use:
            rows.append(
                [
                    render_topic_label(topic),
                    render_fact(moa, highlight_for("mechanism", topic)),
                    render_fact(toxicity, highlight_for("toxicity", topic)),
                    render_fact(pk, highlight_for("pk", topic)),
                    render_fact(use, highlight_for("clinical_use_indications", topic)),
                ]
            )
    return rows


def build_signature_toxicity_rows(topics: Sequence[FactRegistryTopic]) -> list[list[str]]:
    by_label = {normalize_for_comparison(topic.label): topic for topic in reversed(topics)}
    rows: list[list[str]] = []
    for name in SIGNATURE_TOXICITY_DRUGS:
        topic = by_label.get(name)
        if topic is None:
            continue
        fields = topic.fields
        toxicity = pick_fact(*_serious_then_common(topic))
        why = pick_fact(fields.mechanism, fields.pk_pearls)
        monitor = pick_fact(fields.monitoring, fields.pk_pearls)
        if toxicity and why and monitor:
            rows.append(
                [
                    render_topic_label(topic),
                    render_fact(toxicity, highlight_for("toxicity", topic)),
                    render_fact(why, highlight_for("mechanism", topic)),
                    render_fact(monitor, highlight_for("monitoring", topic)),
                ]
            )
    return rows


def build_dosing_rows(topics: Sequence[FactRegistryTopic]) -> list[list[str]]:
    rows: list[list[str]] = []
    for topic in topics:
        if topic.kind != "drug":
            continue
        dosing = select_fact_text(topic.fields.dosing_regimens_if_given)
        note = pick_fact(topic.fields.clinical_use_indications, topic.fields.contraindications_warnings)
        if dosing and note:
            rows.append(
                [
                    render_topic_label(topic),
                    render_fact(dosing, highlight_for("dosing", topic)),
                    render_fact(note, highlight_for("clinical_use_indications", topic)),
                ]
            )
    return rows


# ---------------------------------------------------------------------------
# Markup helpers
# ---------------------------------------------------------------------------


def render_table(
    headers: Sequence[str],
    rows: Sequence[Sequence[str]],
    *,
    table_class: str = "",
    table_id: str = "",
    cell: CellRenderer | None = None,
) -> list[str]:
    """Table markup; cells go through :func:`render_text` unless a ``cell`` renderer is given."""

    render_cell = cell or render_text
    class_attr = f' class="{table_class}"' if table_class else ""
    id_attr = f' data-table-id="{escape(table_id)}"' if table_id else ""
    lines = [f"<table{class_attr}{id_attr}>"]
    if headers:
        lines.extend(["  <thead>", "    <tr>"])
        lines.extend(f"      <th>{escape(header)}</th>" for header in headers)
        lines.extend(["    </tr>", "  </thead>"])
    lines.append("  <tbody>")
    for row in rows:
        lines.append("    <tr>")
        lines.extend(f"      <td>{render_cell(value or '')}</td>" for value in row)
        lines.append("    </tr>")
    lines.extend(["  </tbody>", "</table>"])
    return lines


def _markup(value: str) -> str:
    return value


def _render_schema_table(schema: TableSchema, rows: list[list[str]], table_class: str, fallback: str) -> list[str]:
    width = len(schema.required_headers)
    normalized = [[*row[:width], *([""] * (width - len(row[:width])))] for row in rows]
    if not normalized and fallback:
        normalized = [[escape(fallback), *([""] * (width - 1))]]
    return render_table(schema.required_headers, normalized, table_class=table_class, table_id=schema.id, cell=_markup)


def render_list(items: Iterable[str], render_item: CellRenderer = render_text) -> list[str]:
    usable = [item for item in items if item and not _is_placeholder(item)]
    if not usable:
        return []
    return ["<ul>", *(f"  <li>{render_item(item)}</li>" for item in usable), "</ul>"]


def _render_topic_list(topics: Sequence[FactRegistryTopic]) -> list[str]:
    lines = ["  <ul>"]
    for topic in topics:
        bullets = build_core_topic_bullets(topic)
        lines.append("    <li>")
        lines.append(f"      <strong>{render_topic_label(topic)}</strong>")
        if bullets:
            lines.append("      <ul>")
            lines.extend(f"        <li>{bullet}</li>" for bullet in bullets)
            lines.append("      </ul>")
        lines.append("    </li>")
    lines.append("  </ul>")
    return lines


def _section(section_id: str, title: str, body: Iterable[str]) -> list[str]:
    return [f'<section id="{section_id}" class="section-card">', f"  <h1>{escape(title)}</h1>", *body, "</section>"]


def _omission_label(topic: OmittedTopic, min_facts: int) -> str:
    if topic.reason == "missing_drug_fields" and topic.missing_fields:
        return f"{topic.label} (missing {', '.join(topic.missing_fields)})"
    return f"{topic.label} ({topic.fact_count}/{min_facts})"


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


def _high_yield_section(summary: SynthesisSummary) -> list[str]:
    body = [*render_list(summary.high_yield_summary, lambda item: render_fact(item, "buzz"))]
    if summary.one_page_last_minute_review:
        body.append("  <h2>One-Page Last-Minute Review</h2>")
        body.extend(render_list(summary.one_page_last_minute_review))
    if summary.glossary:
        body.append("  <h2>Glossary</h2>")
        body.extend(
            render_table(
                ("Term", "Definition"),
                [[entry.term, entry.definition] for entry in summary.glossary if entry.term],
                table_class="compare",
                table_id="glossary",
            )
        )
    return _section("high-yield-summary", "High-Yield Summary", body)


def _differential_section(topics: Sequence[FactRegistryTopic], summary: SynthesisSummary | None) -> list[str]:
    body: list[str] = []
    rejection_rows = build_rejection_rows(topics)
    if rejection_rows:
        body.append("  <h2>Rejection Types</h2>")
        body.extend(
            render_table(
                ("Type", "Timing", "Why (discriminator)", "Key implication"),
                rejection_rows,
                table_class="compare",
                table_id="differential-diagnosis",
                cell=_markup,
            )
        )
    if summary is not None:
        for index, compare in enumerate(summary.compare_differential, start=1):
            if not compare.topic or not compare.rows:
                continue
            body.append(f"  <h2>{render_text(compare.topic)}</h2>")
            body.extend(
                render_table(
                    ("Diagnosis", "Versus", "How to tell"),
                    [[row.dx1, row.dx2, row.how_to_tell] for row in compare.rows],
                    table_class="compare",
                    table_id=f"compare-differential-{index}",
                )
            )
    return _section("differential-diagnosis", "Differential Diagnosis", body)


def _cutoffs_section(summary: SynthesisSummary | None) -> list[str]:
    rows = []
    if summary is not None:
        rows = [[cutoff.item, cutoff.value, cutoff.note] for cutoff in summary.quant_cutoffs if cutoff.item]
    return _section(
        "cutoffs-formulas",
        "Cutoffs & Formulas",
        render_table(("Item", "Value", "Note"), rows, table_class="cutoff", table_id="cutoffs-formulas"),
    )


def _treatments_section(
    topics: Sequence[FactRegistryTopic],
    treatments_table: list[str],
    derived: DerivedFacts | None,
) -> list[str]:
    body: list[str] = []
    if derived is not None:
        body.extend(render_list(derived.bucket("treatment"), lambda item: render_fact(item, "treatment")))
    body.extend(treatments_table)

    optional_tables = (
        (
            "Drug Class Comparison",
            ("Class", "MOA", "Why (discriminator)", "Key PK pearl", "Best use"),
            build_drug_class_rows(topics),
            "drug-class-comparison",
        ),
        (
            "Signature Toxicities",
            ("Drug", "Signature toxicity", "Why (discriminator)", "Confirm/Monitor"),
            build_signature_toxicity_rows(topics),
            "signature-toxicities",
        ),
        ("Dosing / Regimens", ("Drug", "Regimen / timing", "Notes"), build_dosing_rows(topics), "dosing-regimens"),
    )
    for title, headers, rows, table_id in optional_tables:
        if not rows:
            continue
        body.append(f"  <h2>{escape(title)}</h2>")
        body.extend(render_table(headers, rows, table_class="compare", table_id=table_id, cell=_markup))
    return _section("treatments-management", "Treatments & Management", body)


def _appendix_section(slides: Sequence[SlideBlock]) -> list[str]:
    body = ["  <ul>"]
    for slide in slides:
        first_line = slide.first_line
        suffix = f": {render_text(first_line)}" if first_line and not _is_placeholder(first_line) else ""
        body.append(f"    <li>Slide {slide.index}{suffix}</li>")
    body.append("  </ul>")
    return _section("slide-by-slide-appendix", "Slide-by-Slide Appendix", body)


def _coverage_section(
    data: RenderInput,
    core_topics: Sequence[FactRegistryTopic],
    mechanism_topics: Sequence[FactRegistryTopic],
) -> list[str]:
    drugs = [topic.label for topic in core_topics if topic.kind == "drug"]
    counts = (
        ("Topics (included)", len(core_topics) + len(mechanism_topics)),
        ("Drugs", len(drugs)),
        ("Drug classes", sum(1 for topic in core_topics if topic.kind == "drug_class")),
        ("Tests", len(data.inventory.tests)),
        ("Treatments", len(data.inventory.treatments)),
        ("Formulas/Cutoffs", len(data.inventory.formulas_cutoffs)),
        ("Mechanisms", len(mechanism_topics)),
    )
    body = render_table(
        ("Inventory", "Count"),
        [[label, str(count)] for label, count in counts],
        table_class="cutoff",
        table_id="coverage-qa",
    )
    if drugs:
        body.append(f"  <p>Drugs discussed: {escape(', '.join(drugs))}</p>")
    if data.omitted:
        labels = ", ".join(_omission_label(topic, data.min_facts) for topic in data.omitted)
        body.append(f"  <p>Omitted topics (quality gate): {escape(labels)}</p>")
    else:
        body.append("  <p>Missing items: none</p>")
    if data.qa_notes:
        body.append("  <h2>QA Notes</h2>")
        body.extend(render_list(data.qa_notes))
    return _section("coverage-qa", "Coverage & QA", body)


def render_study_guide_html(data: RenderInput) -> str:
    """Render one self-contained study guide document."""

    lecture_title = data.lecture_title or "Lecture"
    topics = data.registry.topics
    core_topics = [topic for topic in topics if topic.kind in ("drug", "drug_class", "condition")]
    mechanism_topics = [topic for topic in topics if topic.kind == "process"]
    fallback = PARTIAL_FALLBACK_MESSAGE if data.partial else ""

    candidate_count = max(
        len(data.inventory.drugs),
        len(data.inventory.drug_classes),
        sum(1 for topic in topics if topic.kind in ("drug", "drug_class")),
    )
    rapid_table = _render_schema_table(RAPID_APPROACH_SCHEMA, build_rapid_approach_rows(topics, 3), "tri", fallback)
    treatments_table = _render_schema_table(
        TREATMENTS_SCHEMA,
        build_treatment_rows(topics, min(5, candidate_count)),
        "compare",
        fallback,
    )

    lines = [
        "<!doctype html>",
        "<html>",
        "<head>",
        '<meta charset="utf-8" />',
        '<meta name="viewport" content="width=device-width, initial-scale=1" />',
        f"<title>{escape(lecture_title)} Study Guide</title>",
        render_style_block("\n".join(_PAGE_CSS)),
        "</head>",
        "<body>",
        '<header class="sticky-header">Study Guide</header>',
        '<nav class="toc">',
    ]
    toc = list(SECTION_TITLES)
    if data.synthesis is not None:
        toc.insert(2, ("high-yield-summary", "High-Yield Summary"))
    lines.extend(f'  <a href="#{section_id}">{escape(title)}</a>' for section_id, title in toc)
    lines.extend(["</nav>", '<main class="content">'])

    lines.extend(
        _section(
            "output-identity",
            "Output Identity",
            [
                f"  <p>Lecture title: {escape(lecture_title)}</p>",
                f"  <p>Timestamp (UTC): {escape(data.build_utc)}</p>",
                f"  <p>Slide count: {len(data.slides)}</p>",
            ],
        )
    )
    lines.extend(_section("highlight-legend", "Highlight Legend", [f"  {render_legend()}"]))
    if data.synthesis is not None:
        lines.extend(_high_yield_section(data.synthesis))

    core_body = _render_topic_list(core_topics)
    if mechanism_topics:
        core_body.append("  <h2>Named Mechanisms</h2>")
        core_body.extend(_render_topic_list(mechanism_topics))
    lines.extend(_section("core-conditions", "Core Conditions & Patterns", core_body))

    lines.extend(
        _section(
            "condition-coverage",
            "Condition Coverage Table",
            render_table(
                ("Condition", "Key clue", "Why (discriminator)", "Confirm/Monitor", "Treat/Next step"),
                build_condition_coverage_rows(core_topics),
                table_class="compare",
                table_id="condition-coverage",
                cell=_markup,
            ),
        )
    )
    lines.extend(_section("rapid-approach-summary", "Rapid-Approach Summary (Global)", rapid_table))
    lines.extend(_differential_section(core_topics, data.synthesis))
    lines.extend(_cutoffs_section(data.synthesis))

    derived = data.derived
    lab_items = [*derived.bucket("labs"), *derived.bucket("imaging")] if derived is not None else []
    lines.extend(
        _section("diagnostics-labs", "Diagnostics & Labs", render_list(lab_items, lambda item: render_fact(item, "diagnostic")))
    )
    lines.extend(_treatments_section(core_topics, treatments_table, derived))

    pitfalls = derived.bucket("red_flags") if derived is not None else []
    if data.synthesis is not None:
        pitfalls = [*pitfalls, *data.synthesis.pitfalls]
    lines.extend(
        _section("pitfalls-red-flags", "Pitfalls & Red Flags", render_list(pitfalls, lambda item: render_fact(item, "symptom")))
    )
    mnemonics = [item for item in derived.raw_facts if _MNEMONIC_RE.search(item)] if derived is not None else []
    lines.extend(_section("mnemonics", "Mnemonics", render_list(mnemonics, lambda item: render_fact(item, "buzz"))))
    lines.extend(_appendix_section(data.slides))
    lines.extend(_coverage_section(data, core_topics, mechanism_topics))

    lines.extend(["</main>", "</body>", "</html>"])
    return "\n".join(lines)
