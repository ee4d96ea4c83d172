"""Second extraction pass producing document-level derived facts."""

from __future__ import annotations

import logging

from studyguide.extraction.client import CompletionService
from studyguide.extraction.json_repair import parse_json_with_repair
from studyguide.extraction.models import DerivedFacts, DocumentExtract
from studyguide.extraction.prompts import build_derive_prompt, build_json_repair_prompt


logger = logging.getLogger(__name__)

DEFAULT_DERIVE_OUTPUT_TOKENS = 6000


def derive_facts(
    service: CompletionService,
    extract: DocumentExtract,
    *,
    max_output_tokens: int = DEFAULT_DERIVE_OUTPUT_TOKENS,
) -> DerivedFacts:
    """Ask the service for buckets, exam atoms and spans over the merged extract."""

    if max_output_tokens < 1:
        raise ValueError("max_output_tokens must be >= 1")

    raw = service.send(build_derive_prompt(extract.to_dict()), max_output_tokens, True)
    payload = parse_json_with_repair(
        raw,
        "derived_facts",
        lambda broken: service.send(build_json_repair_prompt("derived_facts", broken), max_output_tokens, True),
    )
    derived = DerivedFacts.from_dict(payload)
    logger.info(
        "Derived %d raw facts, %d exam atoms, %d source spans",
        len(derived.raw_facts),
        len(derived.exam_atoms),
        len(derived.source_spans),
    )
    return derived
