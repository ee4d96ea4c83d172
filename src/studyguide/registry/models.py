"""Fact registry models: topics with span-grounded field lists."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

# List-valued fields in display order; toxicity is nested and handled separately.
LIST_FIELD_NAMES = (
    "definition_or_role",
    "mechanism",
    "clinical_use_indications",
    "pk_pearls",
    "contraindications_warnings",
    "monitoring",
    "dosing_regimens_if_given",
    "interactions_genetics",
)

ALLOWED_TOPIC_KINDS = ("drug", "drug_class", "condition", "process")


@dataclass(frozen=True, slots=True)
class FactRegistryFact:
    text: str
    span_id: str

    def to_dict(self) -> dict[str, str]:
        return {"text": self.text, "span_id": self.span_id}


@dataclass(slots=True)
class ToxicityFacts:
    common: list[FactRegistryFact] = field(default_factory=list)
    serious: list[FactRegistryFact] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.common) + len(self.serious)


@dataclass(slots=True)
class FactRegistryFields:
    """Fixed per-topic schema of grounded fact lists."""

    definition_or_role: list[FactRegistryFact] = field(default_factory=list)
    mechanism: list[FactRegistryFact] = field(default_factory=list)
    clinical_use_indications: list[FactRegistryFact] = field(default_factory=list)
    toxicity_adverse_effects: ToxicityFacts = field(default_factory=ToxicityFacts)
    pk_pearls: list[FactRegistryFact] = field(default_factory=list)
    contraindications_warnings: list[FactRegistryFact] = field(default_factory=list)
    monitoring: list[FactRegistryFact] = field(default_factory=list)
    dosing_regimens_if_given: list[FactRegistryFact] = field(default_factory=list)
    interactions_genetics: list[FactRegistryFact] = field(default_factory=list)

    def list_field(self, name: str) -> list[FactRegistryFact]:
        if name not in LIST_FIELD_NAMES:
            raise KeyError(name)
        return getattr(self, name)

    def iter_facts(self) -> Iterator[FactRegistryFact]:
        for name in LIST_FIELD_NAMES[:3]:
            yield from self.list_field(name)
        yield from self.toxicity_adverse_effects.common
        yield from self.toxicity_adverse_effects.serious
        for name in LIST_FIELD_NAMES[3:]:
            yield from self.list_field(name)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {name: [fact.to_dict() for fact in self.list_field(name)] for name in LIST_FIELD_NAMES}
        payload["toxicity_adverse_effects"] = {
            "common": [fact.to_dict() for fact in self.toxicity_adverse_effects.common],
            "serious": [fact.to_dict() for fact in self.toxicity_adverse_effects.serious],
        }
        return payload


@dataclass(slots=True)
class FactRegistryTopic:
    topic_id: str
    label: str
    kind: str
    fields: FactRegistryFields = field(default_factory=FactRegistryFields)

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic_id": self.topic_id,
            "label": self.label,
            "kind": self.kind,
            "fields": self.fields.to_dict(),
        }


@dataclass(slots=True)
class FactRegistrySpan:
    id: str
    text: str
    slides: list[int] = field(default_factory=list)
    pages: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "text": self.text, "slides": list(self.slides), "pages": list(self.pages)}


@dataclass(slots=True)
class FactRegistry:
    """Topics plus the source spans every fact must reference."""

    topics: list[FactRegistryTopic] = field(default_factory=list)
    spans: list[FactRegistrySpan] = field(default_factory=list)

    def span_ids(self) -> set[str]:
        return {span.id for span in self.spans}

    def ungrounded_facts(self) -> list[tuple[str, FactRegistryFact]]:
        """Facts whose span id does not resolve, paired with their topic id."""

        valid = self.span_ids()
        return [
            (topic.topic_id, fact)
            for topic in self.topics
            for fact in topic.fields.iter_facts()
            if fact.span_id not in valid
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "topics": [topic.to_dict() for topic in self.topics],
            "spans": [span.to_dict() for span in self.spans],
        }
