"""Prompt builders for extraction, derivation, repair and synthesis calls."""

from __future__ import annotations

import json
from typing import Any

from studyguide.extraction.models import BUCKET_NAMES
from studyguide.ingestion.models import ExtractionChunk


_STRICT_JSON_RULES = (
    "Output MUST be a single JSON object. No markdown. No explanation. No trailing commas. "
    "No extra keys. Do not wrap in backticks. End immediately after the final }. "
    "Do not repeat closing braces."
)

_FACT_TAGS = ["disease", "symptom", "histology", "diagnostic", "treatment", "gene", "enzyme", "buzz", "cutoff", "lab"]

_CHUNK_SCHEMA = {
    "lecture_title": "string",
    "chunk": {"start_slide": 1, "end_slide": 10},
    "slides": [
        {
            "n": 1,
            "page": 1,
            "sections": [
                {
                    "heading": "string",
                    "facts": [
                        {
                            "text": "string",
                            "tags": ["disease", "diagnostic"],
                            "numbers": [{"value": "string", "unit": "string"}],
                        }
                    ],
                }
            ],
            "tables": [{"caption": "string", "headers": ["string"], "rows": [["string"]]}],
        }
    ],
}

_DERIVED_SCHEMA = {
    "raw_facts": ["string"],
    "buckets": {name: ["string"] for name in BUCKET_NAMES},
    "discriminators": [{"topic": "string", "signals": ["string"], "pitfalls": ["string"]}],
    "exam_atoms": ["string"],
    "abbrev_map": {"string": "string"},
    "source_spans": [{"text": "string", "slides": [1], "pages": [1]}],
}

_FACT_LIST_SCHEMA = [{"text": "string", "span_id": "S1"}]

_REWRITE_SCHEMA = {
    "topics": [
        {
            "topic_id": "string",
            "label": "string",
            "kind": "drug|drug_class|condition|process",
            "fields": {
                "definition_or_role": _FACT_LIST_SCHEMA,
                "mechanism": _FACT_LIST_SCHEMA,
                "clinical_use_indications": _FACT_LIST_SCHEMA,
                "toxicity_adverse_effects": {"common": _FACT_LIST_SCHEMA, "serious": _FACT_LIST_SCHEMA},
                "pk_pearls": _FACT_LIST_SCHEMA,
                "contraindications_warnings": _FACT_LIST_SCHEMA,
                "monitoring": _FACT_LIST_SCHEMA,
                "dosing_regimens_if_given": _FACT_LIST_SCHEMA,
                "interactions_genetics": _FACT_LIST_SCHEMA,
            },
        }
    ]
}

_SYNTHESIS_SCHEMA = {
    "high_yield_summary": ["string"],
    "rapid_approach_table": [{"clue": "string", "think_of": "string", "why": "string", "confirm": "string"}],
    "one_page_last_minute_review": ["string"],
    "compare_differential": [
        {"topic": "string", "rows": [{"dx1": "string", "dx2": "string", "how_to_tell": "string"}]}
    ],
    "quant_cutoffs": [{"item": "string", "value": "string", "note": "string"}],
    "pitfalls": ["string"],
    "glossary": [{"term": "string", "definition": "string"}],
    "supplemental_glue": ["string"],
}

SCHEMA_SKELETONS: dict[str, Any] = {
    "chunk_extract": _CHUNK_SCHEMA,
    "derived_facts": _DERIVED_SCHEMA,
    "registry_rewrite": _REWRITE_SCHEMA,
    "synthesis": _SYNTHESIS_SCHEMA,
}


def _schema_block(schema: Any) -> str:
    return json.dumps(schema, indent=2, ensure_ascii=False)


def build_chunk_extract_prompt(chunk: ExtractionChunk, *, lecture_title: str = "") -> str:
    """Prompt for slide-by-slide structured fact extraction of one chunk."""

    minimal = {
        "lecture_title": "",
        "chunk": {"start_slide": chunk.start_slide, "end_slide": chunk.end_slide},
        "slides": [],
    }
    return (
        "You are a medical study-guide extraction engine.\n"
        f"{_STRICT_JSON_RULES}\n\n"
        f"Produce JSON with this schema:\n{_schema_block(_CHUNK_SCHEMA)}\n\n"
        "Rules:\n"
        "- Be exhaustive: capture all slide facts without summarizing.\n"
        f"- You are processing slides {chunk.start_slide}-{chunk.end_slide}. "
        "Set chunk.start_slide and chunk.end_slide to these values.\n"
        "- Preserve slide order strictly.\n"
        "- Do not invent facts. Use ONLY the lecture text below.\n"
        '- Use "General" as section heading if none is clear.\n'
        f"- tags must be an array of strings drawn from {json.dumps(_FACT_TAGS)}.\n"
        "- numbers can be empty if no numeric values are present.\n"
        "- Max 10 sections per slide. Max 36 facts per slide.\n"
        "- Tables only if clearly present; otherwise output [].\n"
        "- Never output: not stated, not in lecture, n/a, not specified. If absent, omit.\n"
        "- If a fact is a fragment and the subject is implied by the section heading, "
        "rewrite it as a complete atomic statement that includes the subject.\n"
        "- No paragraphs. No semicolons.\n\n"
        f"LECTURE_TITLE:\n{lecture_title}\n\n"
        f"CHUNK_TEXT:\n{chunk.render_text()}\n\n"
        "If you cannot complete the JSON, output this minimal object instead:\n"
        f"{json.dumps(minimal)}"
    )


def build_derive_prompt(extract_payload: dict[str, Any]) -> str:
    """Prompt for document-level buckets, atoms and spans from merged extraction."""

    return (
        "You are a medical study-guide derivation engine.\n"
        f"Input is extracted slide JSON only. {_STRICT_JSON_RULES}\n\n"
        f"Produce JSON with this schema:\n{_schema_block(_DERIVED_SCHEMA)}\n\n"
        "Rules:\n"
        "- Use only facts present in the input JSON. Do not invent facts.\n"
        "- raw_facts: short, de-duplicated atomic facts derived from slides/tables only.\n"
        "- buckets: populate with short items, no sentences; leave empty arrays if none.\n"
        '- discriminators: phrased like "X vs Y: key separator is Z", single-claim.\n'
        "- exam_atoms: 12-40 short atomic statements, each <= 16 words, single-claim.\n"
        "- abbrev_map: only abbreviations explicitly defined in the lecture text.\n"
        "- source_spans: verbatim excerpts with slide/page numbers; if unknown, output [].\n"
        "- No paragraphs. No semicolons.\n\n"
        f"EXTRACT_JSON:\n{json.dumps(extract_payload, ensure_ascii=False)}"
    )


def build_json_repair_prompt(schema_tag: str, broken_output: str) -> str:
    """Prompt asking the service to complete or fix malformed JSON."""

    schema = SCHEMA_SKELETONS.get(schema_tag)
    if schema is None:
        raise ValueError(f"Unknown schema tag: {schema_tag}")
    return (
        "You are a JSON repair engine.\n"
        "The text below was meant to be a single JSON object but is malformed or truncated. "
        "Return the corrected JSON object only. Keep every value that is present; "
        "close any unterminated strings, arrays and objects; drop any trailing prose.\n"
        f"{_STRICT_JSON_RULES}\n\n"
        f"Expected schema:\n{_schema_block(schema)}\n\n"
        f"BROKEN_OUTPUT:\n{broken_output}"
    )


def build_registry_rewrite_prompt(registry_payload: dict[str, Any]) -> str:
    """Prompt rewriting registry facts into short exam-forward bullets."""

    return (
        "You are a medical study guide editor.\n"
        "Rewrite the provided FactRegistry into exam-forward bullets while preserving grounding.\n\n"
        "Rules:\n"
        "- Use ONLY the facts provided; do not add new knowledge.\n"
        "- Every bullet MUST include a valid span_id from the input.\n"
        "- Keep bullets short (<= 18 words), single-claim, exam-forward.\n"
        "- If a fact cannot be rewritten without adding info, omit it.\n"
        '- Do NOT output "Not stated in lecture".\n'
        "- Preserve topic order and field keys exactly.\n"
        "- Output MUST be valid JSON and nothing else.\n\n"
        f"Output schema:\n{_schema_block(_REWRITE_SCHEMA)}\n\n"
        f"INPUT FACT REGISTRY:\n{json.dumps(registry_payload, ensure_ascii=False)}"
    )


def build_synthesis_prompt(lecture_title: str, derived_payload: dict[str, Any]) -> str:
    """Prompt for the condensed summary layer checked by the synthesis validators."""

    return (
        "You are a medical study-guide synthesis engine.\n"
        f"{_STRICT_JSON_RULES}\n\n"
        "Use ONLY the provided derived facts. Do not add external knowledge.\n\n"
        f"Schema:\n{_schema_block(_SYNTHESIS_SCHEMA)}\n\n"
        "Constraints:\n"
        "- high_yield_summary: 8-12 bullets, each <= 16 words.\n"
        "- one_page_last_minute_review: 12-18 bullets, each <= 14 words.\n"
        "- rapid_approach_table: 10-18 rows; clue <= 10 words; think_of <= 6 words; "
        "why <= 14 words; confirm <= 10 words.\n"
        "- compare_differential: 2-4 topics; each topic has 4-7 rows; how_to_tell <= 18 words.\n"
        "- supplemental_glue: max 10 items, each <= 14 words.\n"
        "- Never repeat a bullet. Cover every exam atom.\n\n"
        f"LECTURE_TITLE:\n{lecture_title}\n\n"
        f"DERIVED_JSON:\n{json.dumps(derived_payload, ensure_ascii=False)}"
    )
