"""Quality gates over the registry, the inventory and the rendered document.

Every ``check_*`` function is pure and returns a list of ``GateFailure``; an
empty list means the gate passes. The matching ``ensure_*`` wrapper raises the
gate's exception instead.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Sequence

from bs4 import BeautifulSoup

from studyguide.quality.failures import (
    BodyCoverageGateError,
    DrugCoverageGateError,
    GateFailure,
    PlaceholderGateError,
    StructureGateError,
    TableSchemaGateError,
    TopicClassificationGateError,
    TopicDensityGateError,
    TopicKindGateError,
    raise_for_failures,
)
from studyguide.quality.table_schemas import TABLE_SCHEMAS, TableSchema, missing_headers
from studyguide.registry.models import ALLOWED_TOPIC_KINDS, FactRegistry, FactRegistryTopic
from studyguide.registry.policy import DEFAULT_MIN_FACTS_PER_TOPIC, count_topic_facts, missing_drug_coverage_fields
from studyguide.render.contracts import (
    APPENDIX_SELECTORS,
    HIGHLIGHT_LEGEND_ITEMS,
    REQUIRED_HIGHLIGHT_CLASSES,
    REQUIRED_SECTION_IDS,
    REQUIRED_TABLE_CLASS_NAMES,
)
from studyguide.topics.inventory import KIND_BUCKET_NAMES, TopicInventory, is_garbage_topic_label
from studyguide.topics.normalize import normalize_for_comparison, normalize_tokens, normalize_whitespace


logger = logging.getLogger(__name__)

DEFAULT_PLACEHOLDERS = ("not stated", "not specified", "not provided", "not in lecture", "n/a")


def _parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def _topics(source: FactRegistry | Sequence[FactRegistryTopic]) -> Sequence[FactRegistryTopic]:
    return source.topics if isinstance(source, FactRegistry) else source


def document_text(html: str) -> str:
    """Visible text of a rendered document, without style and script blocks."""

    soup = _parse_html(html)
    for element in soup(["style", "script"]):
        element.decompose()
    return normalize_whitespace(soup.get_text(" "))


# ---------------------------------------------------------------------------
# Gate 1: placeholder rejection
# ---------------------------------------------------------------------------


def _placeholder_pattern(placeholder: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![a-z0-9]){re.escape(placeholder)}(?![a-z0-9])", re.IGNORECASE)


def check_placeholders(
    texts: str | Iterable[str],
    *,
    placeholders: Sequence[str] = DEFAULT_PLACEHOLDERS,
) -> list[GateFailure]:
    """Flag each banned filler phrase found in ``texts``."""

    values = [texts] if isinstance(texts, str) else list(texts)
    failures: list[GateFailure] = []
    for placeholder in placeholders:
        pattern = _placeholder_pattern(placeholder)
        hits = [index for index, value in enumerate(values) if value and pattern.search(value)]
        if not hits:
            continue
        failures.append(
            GateFailure(
                code="PLACEHOLDER_TEXT",
                message=f"placeholder '{placeholder}' found",
                path=None if isinstance(texts, str) else f"[{hits[0]}]",
                details={"placeholder": placeholder, "occurrences": len(hits)},
            )
        )
    return failures


def ensure_no_placeholders(texts: str | Iterable[str], **kwargs) -> None:
    raise_for_failures(PlaceholderGateError, "placeholder", check_placeholders(texts, **kwargs))


# ---------------------------------------------------------------------------
# Gate 2: topic kinds
# ---------------------------------------------------------------------------


def check_topic_kinds(
    source: FactRegistry | Sequence[FactRegistryTopic],
    *,
    allowed_kinds: Iterable[str] = ALLOWED_TOPIC_KINDS,
) -> list[GateFailure]:
    allowed = set(allowed_kinds)
    return [
        GateFailure(
            code="TOPIC_KIND_INVALID",
            message=f"{topic.label}: kind '{topic.kind}' is not allowed",
            path=f"topics[{index}]",
            details={"topic_id": topic.topic_id, "label": topic.label, "kind": topic.kind},
        )
        for index, topic in enumerate(_topics(source))
        if topic.kind not in allowed
    ]


def ensure_topic_kinds(source: FactRegistry | Sequence[FactRegistryTopic], **kwargs) -> None:
    raise_for_failures(TopicKindGateError, "topic-kind", check_topic_kinds(source, **kwargs))


def check_topic_classification(inventory: TopicInventory) -> list[GateFailure]:
    """No garbage heading may survive in a kind bucket."""

    failures: list[GateFailure] = []
    for bucket_name in KIND_BUCKET_NAMES:
        for index, label in enumerate(inventory.bucket(bucket_name)):
            if is_garbage_topic_label(label):
                failures.append(
                    GateFailure(
                        code="TOPIC_CLASSIFICATION_GARBAGE",
                        message=f"garbage label '{label}' in {bucket_name}",
                        path=f"{bucket_name}[{index}]",
                        details={"bucket": bucket_name, "label": label},
                    )
                )
    return failures


def ensure_topic_classification(inventory: TopicInventory) -> None:
    raise_for_failures(TopicClassificationGateError, "topic-classification", check_topic_classification(inventory))


# ---------------------------------------------------------------------------
# Gates 3 and 4: density and drug coverage
# ---------------------------------------------------------------------------


def check_topic_density(
    source: FactRegistry | Sequence[FactRegistryTopic],
    *,
    min_facts: int = DEFAULT_MIN_FACTS_PER_TOPIC,
) -> list[GateFailure]:
    failures: list[GateFailure] = []
    for index, topic in enumerate(_topics(source)):
        fact_count = count_topic_facts(topic)
        if fact_count >= min_facts:
            continue
        failures.append(
            GateFailure(
                code="TOPIC_DENSITY_LOW",
                message=f"{topic.label}({fact_count})",
                path=f"topics[{index}]",
                details={
                    "topic_id": topic.topic_id,
                    "label": topic.label,
                    "fact_count": fact_count,
                    "min_facts": min_facts,
                },
            )
        )
    return failures


def ensure_topic_density(source: FactRegistry | Sequence[FactRegistryTopic], **kwargs) -> None:
    raise_for_failures(TopicDensityGateError, "topic-density", check_topic_density(source, **kwargs))


def check_drug_coverage(source: FactRegistry | Sequence[FactRegistryTopic]) -> list[GateFailure]:
    failures: list[GateFailure] = []
    for index, topic in enumerate(_topics(source)):
        missing = missing_drug_coverage_fields(topic)
        if not missing:
            continue
        failures.append(
            GateFailure(
                code="DRUG_COVERAGE_MISSING",
                message=f"{topic.label}: {'|'.join(missing)}",
                path=f"topics[{index}]",
                details={"drug": topic.label, "missing": missing},
            )
        )
    return failures


def ensure_drug_coverage(source: FactRegistry | Sequence[FactRegistryTopic]) -> None:
    raise_for_failures(DrugCoverageGateError, "drug-coverage", check_drug_coverage(source))


def check_registry(
    registry: FactRegistry,
    *,
    min_facts: int = DEFAULT_MIN_FACTS_PER_TOPIC,
) -> list[GateFailure]:
    """Kind, density and drug-coverage failures combined."""

    return [
        *check_topic_kinds(registry),
        *check_topic_density(registry, min_facts=min_facts),
        *check_drug_coverage(registry),
    ]


def ensure_registry_gates(registry: FactRegistry, *, min_facts: int = DEFAULT_MIN_FACTS_PER_TOPIC) -> None:
    """Run the registry gates in order, raising on the first that fails.

    Placeholder rejection needs rendered text, so it leads :func:`ensure_document_gates`
    instead of running here.
    """

    ensure_topic_kinds(registry)
    ensure_topic_density(registry, min_facts=min_facts)
    ensure_drug_coverage(registry)


# ---------------------------------------------------------------------------
# Gate 5: required tables and header schemas
# ---------------------------------------------------------------------------


def _table_headers(table) -> list[str]:
    headers: list[str] = []
    for cell in table.find_all("th"):
        text = normalize_whitespace(cell.get_text(" "))
        if text:
            headers.append(text)
    return headers


def check_table_schemas(
    html: str,
    *,
    schemas: Iterable[TableSchema] = TABLE_SCHEMAS.values(),
) -> list[GateFailure]:
    """Missing tables and header mismatches, each with detected vs expected."""

    soup = _parse_html(html)
    failures: list[GateFailure] = []
    for schema in schemas:
        if not schema.must_exist:
            continue
        table = soup.find("table", attrs={"data-table-id": schema.id})
        if table is None:
            failures.append(
                GateFailure(
                    code="TABLE_MISSING",
                    message=f"required table '{schema.id}' not found",
                    path=f"table:{schema.id}",
                    details={"table_id": schema.id},
                )
            )
            continue

        detected = _table_headers(table)
        missing = missing_headers(schema, detected)
        if missing:
            failures.append(
                GateFailure(
                    code="TABLE_HEADERS_MISSING",
                    message=(
                        f"{schema.id} missing={'|'.join(missing)} detected={'|'.join(detected)} "
                        f"expected={'|'.join(schema.required_headers)}"
                    ),
                    path=f"table:{schema.id}",
                    details={
                        "table_id": schema.id,
                        "missing": missing,
                        "detected": detected,
                        "expected": list(schema.required_headers),
                    },
                )
            )
    return failures


def ensure_table_schemas(html: str, **kwargs) -> None:
    raise_for_failures(TableSchemaGateError, "table-schema", check_table_schemas(html, **kwargs))


# ---------------------------------------------------------------------------
# Gate 6: body coverage
# ---------------------------------------------------------------------------


def check_body_coverage(source: TopicInventory | Sequence[str], html: str) -> list[GateFailure]:
    """Every expected label must appear in ``<main>`` outside the appendix.

    A label matches as a normalized substring or when all its significant tokens
    occur in the body token set.
    """

    labels = source.conditions if isinstance(source, TopicInventory) else list(source)
    soup = _parse_html(html)
    main = soup.find("main")
    body = main if main is not None else soup
    for selector in APPENDIX_SELECTORS:
        for element in body.select(selector):
            element.decompose()
    for element in body(["style", "script"]):
        element.decompose()

    body_text = normalize_for_comparison(body.get_text(" "))
    body_tokens = set(normalize_tokens(body_text))

    missing: list[tuple[str, str]] = []
    for label in labels:
        normalized = normalize_for_comparison(label)
        if not normalized or normalized in body_text:
            continue
        tokens = normalize_tokens(label)
        if tokens and all(token in body_tokens for token in tokens):
            continue
        missing.append((label, normalized))

    if not missing:
        return []

    sections = [
        text
        for text in (normalize_whitespace(heading.get_text(" ")) for heading in body.find_all(["h1", "h2", "h3"]))
        if text
    ]
    return [
        GateFailure(
            code="BODY_COVERAGE_MISSING",
            message=f"topic '{label}' not found in main body",
            path=f"topic:{normalized}",
            details={"label": label, "normalized": normalized, "sections": sections, "main_found": main is not None},
        )
        for label, normalized in missing
    ]


def ensure_body_coverage(source: TopicInventory | Sequence[str], html: str) -> None:
    raise_for_failures(BodyCoverageGateError, "body-coverage", check_body_coverage(source, html))


# ---------------------------------------------------------------------------
# Structure and style contract
# ---------------------------------------------------------------------------


def check_structure(html: str) -> list[GateFailure]:
    soup = _parse_html(html)
    return [
        GateFailure(code="SECTION_MISSING", message=f"section '{section_id}' not found", path=f"section:{section_id}")
        for section_id in REQUIRED_SECTION_IDS
        if soup.find(id=section_id) is None
    ]


def check_style_contract(html: str) -> list[GateFailure]:
    """Highlight CSS, legend pills and styled table classes."""

    failures: list[GateFailure] = []
    lowered = (html or "").lower()
    for class_name in REQUIRED_HIGHLIGHT_CLASSES:
        selector = "." + class_name.replace(" ", ".")
        if selector not in lowered:
            failures.append(GateFailure(code="STYLE_MISSING", message=f"css rule {selector} missing", path=f"css:{selector}"))

    soup = _parse_html(html)
    legend = soup.find(class_="legend")
    if legend is None:
        failures.append(GateFailure(code="STYLE_MISSING", message="highlight legend missing", path="legend:container"))
    for item in HIGHLIGHT_LEGEND_ITEMS:
        if soup.select_one(f".pill.{item.class_name}") is None:
            failures.append(
                GateFailure(
                    code="STYLE_MISSING",
                    message=f"legend pill '{item.class_name}' missing",
                    path=f"legend:{item.class_name}",
                )
            )

    for table_class in REQUIRED_TABLE_CLASS_NAMES:
        if soup.select_one(f"table.{table_class}") is None:
            failures.append(
                GateFailure(code="STYLE_MISSING", message=f"table class '{table_class}' missing", path=f"table:{table_class}")
            )
    return failures


def ensure_structure(html: str) -> None:
    raise_for_failures(StructureGateError, "structure", [*check_structure(html), *check_style_contract(html)])


def ensure_document_gates(html: str, inventory: TopicInventory) -> None:
    """Run the rendered-document gates in order, raising on the first that fails."""

    ensure_no_placeholders(document_text(html))
    ensure_table_schemas(html)
    ensure_body_coverage(inventory, html)
    ensure_structure(html)
