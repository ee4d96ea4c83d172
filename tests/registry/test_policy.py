from __future__ import annotations

import re

from studyguide.registry.models import (
    FactRegistry,
    FactRegistryFact,
    FactRegistryFields,
    FactRegistrySpan,
    FactRegistryTopic,
    ToxicityFacts,
)
from studyguide.registry.policy import (
    coerce_registry_rewrite,
    count_topic_facts,
    filter_topics,
    missing_drug_coverage_fields,
    select_fact_text,
)


def _fact(text: str, span_id: str = "S1") -> FactRegistryFact:
    return FactRegistryFact(text=text, span_id=span_id)


def _topic(label: str, kind: str, **fields: object) -> FactRegistryTopic:
    return FactRegistryTopic(topic_id=label.lower().replace(" ", "_"), label=label, kind=kind, fields=FactRegistryFields(**fields))


def _complete_drug() -> FactRegistryTopic:
    return _topic(
        "Tacrolimus",
        "drug",
        mechanism=[_fact("Inhibits calcineurin")],
        toxicity_adverse_effects=ToxicityFacts(common=[_fact("Nephrotoxicity"), _fact("Neurotoxicity")]),
        pk_pearls=[_fact("Metabolized by CYP3A")],
        clinical_use_indications=[_fact("Transplant maintenance")],
    )


def test_count_topic_facts_dedupes_normalized_text_across_fields() -> None:
    topic = _topic(
        "Acute rejection",
        "condition",
        definition_or_role=[_fact("T-cell mediated injury")],
        mechanism=[_fact("T cell mediated injury"), _fact("Tubulitis on biopsy")],
    )

    assert count_topic_facts(topic) == 2


def test_missing_drug_coverage_reports_only_toxicity() -> None:
    topic = _complete_drug()
    topic.fields.toxicity_adverse_effects = ToxicityFacts(common=[_fact("Nephrotoxicity")])

    assert missing_drug_coverage_fields(topic) == ["toxicity"]


def test_missing_drug_coverage_ignores_non_drugs() -> None:
    assert missing_drug_coverage_fields(_topic("Calcineurin inhibitors", "drug_class")) == []
    assert missing_drug_coverage_fields(_complete_drug()) == []


def test_filter_topics_orders_checks_and_records_reasons() -> None:
    sparse = _topic("Graft loss", "condition", definition_or_role=[_fact("Late outcome"), _fact("Chronic injury")])
    garbage = _topic("Summary", "garbage", definition_or_role=[_fact("a"), _fact("b"), _fact("c")])
    thin_drug = _topic(
        "Sirolimus",
        "drug",
        mechanism=[_fact("Inhibits mTOR")],
        pk_pearls=[_fact("Long half-life")],
        clinical_use_indications=[_fact("Transplant")],
    )

    result = filter_topics([_complete_drug(), sparse, garbage, thin_drug], min_facts=3)

    assert [topic.label for topic in result.kept] == ["Tacrolimus"]
    assert [(item.label, item.reason) for item in result.omitted] == [
        ("Graft loss", "insufficient_facts"),
        ("Summary", "disallowed_kind"),
        ("Sirolimus", "missing_drug_fields"),
    ]
    assert result.omitted[0].fact_count == 2
    assert result.omitted[2].missing_fields == ["toxicity"]
    assert result.omitted[2].to_dict()["missing_fields"] == ["toxicity"]
    assert "missing_fields" not in result.omitted[0].to_dict()


def test_select_fact_text_skips_placeholders_and_prefers_match() -> None:
    items = [_fact("Not stated in lecture"), _fact("Causes tremor"), _fact("Causes nephrotoxicity")]

    assert select_fact_text(items) == "Causes tremor"
    assert select_fact_text(items, match=re.compile("nephro")) == "Causes nephrotoxicity"
    assert select_fact_text([_fact("N/A")]) == ""


def test_coerce_registry_rewrite_drops_unknown_spans_and_keeps_untouched_topics() -> None:
    registry = FactRegistry(
        topics=[_complete_drug(), _topic("Acute rejection", "condition", definition_or_role=[_fact("T-cell injury", "S2")])],
        spans=[
            FactRegistrySpan(id="S1", text="Tacrolimus inhibits calcineurin", slides=[1], pages=[1]),
            FactRegistrySpan(id="S2", text="Acute rejection is T-cell injury", slides=[2], pages=[2]),
        ],
    )
    rewritten = {
        "topics": [
            {
                "topic_id": "tacrolimus",
                "fields": {
                    "mechanism": [{"text": "Calcineurin inhibitor", "span_id": "S1"}, {"text": "Invented", "span_id": "S9"}],
                    "toxicity_adverse_effects": {"common": [{"text": "Nephrotoxic", "span_id": "S1"}]},
                },
            },
            {"topic_id": "acute_rejection", "fields": {}},
        ]
    }

    coerced = coerce_registry_rewrite(registry, rewritten)

    tacrolimus, rejection = coerced.topics
    assert [fact.text for fact in tacrolimus.fields.mechanism] == ["Calcineurin inhibitor"]
    assert [fact.text for fact in tacrolimus.fields.toxicity_adverse_effects.common] == ["Nephrotoxic"]
    assert tacrolimus.fields.pk_pearls == []
    assert rejection is registry.topics[1]
    assert [span.id for span in coerced.spans] == ["S1", "S2"]
    assert coerced.ungrounded_facts() == []
