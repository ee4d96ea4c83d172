"""Registry policies: fact counting, drug coverage, sparse-topic filtering, rewrites."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from typing import Any, Iterable, Literal, Mapping, Sequence

from studyguide.registry.models import (
    ALLOWED_TOPIC_KINDS,
    LIST_FIELD_NAMES,
    FactRegistry,
    FactRegistryFact,
    FactRegistryFields,
    FactRegistryTopic,
    ToxicityFacts,
)
from studyguide.topics.normalize import normalize_for_comparison, normalize_whitespace


logger = logging.getLogger(__name__)

DEFAULT_MIN_FACTS_PER_TOPIC = 3
MIN_DRUG_TOXICITY_FACTS = 2

PLACEHOLDER_FACT_RE = re.compile(r"\b(not stated|not specified|not provided|not in lecture|n/a)(?!\w)", re.IGNORECASE)

OmissionReason = Literal["insufficient_facts", "disallowed_kind", "missing_drug_fields"]


def _fact_key(text: str) -> str:
    return normalize_for_comparison(text) or normalize_whitespace(text).lower()


def select_fact_text(items: Sequence[FactRegistryFact], *, match: re.Pattern[str] | None = None) -> str:
    """First non-placeholder fact text, preferring one that matches ``match``."""

    usable = [item for item in items if item.text and not PLACEHOLDER_FACT_RE.search(item.text)]
    if not usable:
        return ""
    if match is not None:
        for item in usable:
            if match.search(item.text):
                return item.text
    return usable[0].text


def count_topic_facts(topic: FactRegistryTopic) -> int:
    """Unique normalized fact texts across every field, toxicity included."""

    return len({key for key in (_fact_key(fact.text) for fact in topic.fields.iter_facts()) if key})


def missing_drug_coverage_fields(topic: FactRegistryTopic) -> list[str]:
    """Field names a drug topic lacks; empty for non-drug topics."""

    if topic.kind != "drug":
        return []
    fields = topic.fields
    missing: list[str] = []
    if not fields.mechanism:
        missing.append("mechanism")
    if len(fields.toxicity_adverse_effects) < MIN_DRUG_TOXICITY_FACTS:
        missing.append("toxicity")
    if not fields.pk_pearls:
        missing.append("pk_pearls")
    if not fields.clinical_use_indications:
        missing.append("clinical_use_indications")
    return missing


@dataclass(slots=True)
class OmittedTopic:
    topic_id: str
    label: str
    kind: str
    fact_count: int
    reason: OmissionReason
    missing_fields: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "topic_id": self.topic_id,
            "label": self.label,
            "kind": self.kind,
            "fact_count": self.fact_count,
            "reason": self.reason,
        }
        if self.missing_fields:
            payload["missing_fields"] = list(self.missing_fields)
        return payload


@dataclass(slots=True)
class TopicFilterResult:
    kept: list[FactRegistryTopic]
    omitted: list[OmittedTopic]
    min_facts: int


def filter_topics(
    topics: Iterable[FactRegistryTopic],
    *,
    min_facts: int = DEFAULT_MIN_FACTS_PER_TOPIC,
    allowed_kinds: Iterable[str] = ALLOWED_TOPIC_KINDS,
    require_drug_coverage: bool = True,
) -> TopicFilterResult:
    """Split topics into publishable ones and omissions with a reason each.

    Checks run in order: kind, fact count, then drug field coverage.
    """

    allowed = set(allowed_kinds)
    kept: list[FactRegistryTopic] = []
    omitted: list[OmittedTopic] = []

    for topic in topics:
        fact_count = count_topic_facts(topic)
        reason: OmissionReason | None = None
        missing: list[str] = []
        if topic.kind not in allowed:
            reason = "disallowed_kind"
        elif fact_count < min_facts:
            reason = "insufficient_facts"
        elif require_drug_coverage:
            missing = missing_drug_coverage_fields(topic)
            if missing:
                reason = "missing_drug_fields"

        if reason is None:
            kept.append(topic)
            continue
        logger.info("Omitting topic %s (%s, %d facts)", topic.label, reason, fact_count)
        omitted.append(
            OmittedTopic(
                topic_id=topic.topic_id,
                label=topic.label,
                kind=topic.kind,
                fact_count=fact_count,
                reason=reason,
                missing_fields=missing,
            )
        )

    return TopicFilterResult(kept=kept, omitted=omitted, min_facts=min_facts)


# ---------------------------------------------------------------------------
# Rewrite coercion
# ---------------------------------------------------------------------------


def _sanitize_facts(items: Any, valid_span_ids: set[str]) -> list[FactRegistryFact]:
    safe: list[FactRegistryFact] = []
    if not isinstance(items, list):
        return safe
    for item in items:
        if not isinstance(item, Mapping):
            continue
        text = normalize_whitespace(str(item.get("text") or ""))
        span_id = str(item.get("span_id") or "")
        if not text or span_id not in valid_span_ids:
            continue
        fact = FactRegistryFact(text=text, span_id=span_id)
        if fact not in safe:
            safe.append(fact)
    return safe


def coerce_registry_rewrite(registry: FactRegistry, rewritten: Mapping[str, Any]) -> FactRegistry:
    """Align a rewritten registry payload with the original topics and spans.

    Facts citing unknown span ids are dropped. Topics the rewrite omits, or
    returns without fields, keep their original facts.
    """

    valid_span_ids = registry.span_ids()
    by_id: dict[str, Mapping[str, Any]] = {}
    raw_topics = rewritten.get("topics") if isinstance(rewritten, Mapping) else None
    for candidate in raw_topics if isinstance(raw_topics, list) else []:
        if isinstance(candidate, Mapping) and candidate.get("topic_id"):
            by_id[str(candidate["topic_id"])] = candidate

    topics: list[FactRegistryTopic] = []
    for topic in registry.topics:
        candidate = by_id.get(topic.topic_id)
        raw_fields = candidate.get("fields") if candidate is not None else None
        if not isinstance(raw_fields, Mapping) or not raw_fields:
            topics.append(topic)
            continue

        raw_toxicity = raw_fields.get("toxicity_adverse_effects")
        raw_toxicity = raw_toxicity if isinstance(raw_toxicity, Mapping) else {}
        fields = FactRegistryFields(
            toxicity_adverse_effects=ToxicityFacts(
                common=_sanitize_facts(raw_toxicity.get("common"), valid_span_ids),
                serious=_sanitize_facts(raw_toxicity.get("serious"), valid_span_ids),
            )
        )
        for name in LIST_FIELD_NAMES:
            fields.list_field(name).extend(_sanitize_facts(raw_fields.get(name), valid_span_ids))
        topics.append(FactRegistryTopic(topic_id=topic.topic_id, label=topic.label, kind=topic.kind, fields=fields))

    return FactRegistry(topics=topics, spans=list(registry.spans))
