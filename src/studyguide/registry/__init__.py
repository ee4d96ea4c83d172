"""Span-grounded fact registry construction and policies."""

from .builder import build_fact_registry, build_topic_id, categorize_fact_text, matches_topic
from .models import (
    ALLOWED_TOPIC_KINDS,
    LIST_FIELD_NAMES,
    FactRegistry,
    FactRegistryFact,
    FactRegistryFields,
    FactRegistrySpan,
    FactRegistryTopic,
    ToxicityFacts,
)
from .policy import (
    PLACEHOLDER_FACT_RE,
    OmittedTopic,
    TopicFilterResult,
    coerce_registry_rewrite,
    count_topic_facts,
    filter_topics,
    missing_drug_coverage_fields,
    select_fact_text,
)

__all__ = [
    "ALLOWED_TOPIC_KINDS",
    "LIST_FIELD_NAMES",
    "PLACEHOLDER_FACT_RE",
    "FactRegistry",
    "FactRegistryFact",
    "FactRegistryFields",
    "FactRegistrySpan",
    "FactRegistryTopic",
    "OmittedTopic",
    "ToxicityFacts",
    "TopicFilterResult",
    "build_fact_registry",
    "build_topic_id",
    "categorize_fact_text",
    "coerce_registry_rewrite",
    "count_topic_facts",
    "filter_topics",
    "matches_topic",
    "missing_drug_coverage_fields",
    "select_fact_text",
]
