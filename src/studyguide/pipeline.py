"""End-to-end study guide pipeline from slide text to a gated, stored document."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import time
from typing import Any, Callable

from studyguide.config import PipelineSettings
from studyguide.extraction import (
    CheckpointStore,
    CompletionService,
    DerivedFacts,
    DocumentExtract,
    ExtractionOrchestrator,
    ExtractionRun,
    derive_facts,
    merge_chunk_results,
    parse_json_with_repair,
    study_guide_key,
)
from studyguide.extraction.prompts import (
    build_json_repair_prompt,
    build_registry_rewrite_prompt,
    build_synthesis_prompt,
)
from studyguide.ingestion import SlideBlock, parse_slide_text, plan_chunks
from studyguide.quality import (
    SynthesisSummary,
    ensure_document_gates,
    ensure_registry_gates,
    ensure_synthesis,
    ensure_topic_classification,
)
from studyguide.registry import (
    FactRegistry,
    OmittedTopic,
    build_fact_registry,
    coerce_registry_rewrite,
    filter_topics,
)
from studyguide.render import RenderInput, render_study_guide_html
from studyguide.storage import ObjectStore
from studyguide.topics import TopicInventory, build_topic_inventory, summarize_inventory


logger = logging.getLogger(__name__)

REWRITE_OUTPUT_TOKENS = 6000
SYNTHESIS_OUTPUT_TOKENS = 4000


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(slots=True)
class StudyGuideResult:
    """Outcome of one pipeline run.

    A partial run carries only the extraction state; nothing is rendered or stored.
    """

    document_id: str
    lecture_title: str
    extraction: ExtractionRun
    partial: bool = False
    html: str | None = None
    storage_key: str | None = None
    inventory: TopicInventory | None = None
    registry: FactRegistry | None = None
    omitted: list[OmittedTopic] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "lecture_title": self.lecture_title,
            "partial": self.partial,
            "storage_key": self.storage_key,
            "extraction": self.extraction.to_dict(),
            "inventory": summarize_inventory(self.inventory) if self.inventory is not None else None,
            "topics": [topic.label for topic in self.registry.topics] if self.registry is not None else [],
            "omitted": [item.to_dict() for item in self.omitted],
        }


class StudyGuidePipeline:
    """Wire parsing, extraction, registry, gates and rendering together.

    Gate failures propagate as :class:`studyguide.quality.QualityGateError`
    subclasses; the document is written to the store only after every gate passes.
    """

    def __init__(
        self,
        service: CompletionService,
        store: ObjectStore,
        settings: PipelineSettings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        build_utc: Callable[[], str] = _utc_timestamp,
    ) -> None:
        self._service = service
        self._store = store
        self._settings = settings or PipelineSettings()
        self._clock = clock
        self._build_utc = build_utc
        self._orchestrator = ExtractionOrchestrator(
            service,
            CheckpointStore(store),
            time_budget_seconds=self._settings.time_budget_seconds,
            clock=clock,
        )

    @property
    def settings(self) -> PipelineSettings:
        return self._settings

    def run(self, document_id: str, raw_text: str, lecture_title: str | None = None) -> StudyGuideResult:
        """Extract, gate, render and store the guide for one slide deck.

        Gates run as soon as their input exists: topic classification on the
        inventory, the registry gates on the filtered registry, then placeholder
        rejection and the other document gates on the rendered HTML. Placeholder
        facts in the registry are skipped by fact selection rather than failing.
        """

        slides = parse_slide_text(raw_text)
        if not slides:
            raise ValueError("No slide markers found in input text")

        chunks = plan_chunks(
            slides,
            max_slides=self._settings.chunk_max_slides,
            max_chars=self._settings.chunk_max_chars,
        )
        logger.info("Planned %d chunk(s) over %d slide(s) for %s", len(chunks), len(slides), document_id)

        extraction = self._orchestrator.run(document_id, chunks, lecture_title=lecture_title or "")
        if extraction.partial:
            logger.warning(
                "Extraction for %s stopped by time budget with %d pending chunk(s)",
                document_id,
                len(extraction.pending_ranges),
            )
            return StudyGuideResult(
                document_id=document_id,
                lecture_title=lecture_title or "",
                extraction=extraction,
                partial=True,
            )

        extract = merge_chunk_results(sorted(extraction.results, key=lambda result: result.start_slide))
        title = _resolve_title(lecture_title, extract, slides)
        derived = derive_facts(self._service, extract)

        inventory = build_topic_inventory(slides)
        ensure_topic_classification(inventory)

        registry = build_fact_registry(extract=extract, derived=derived, inventory=inventory, slides=slides)
        if self._settings.rewrite_facts:
            registry = self._rewrite_registry(registry)

        filtered = filter_topics(registry.topics, min_facts=self._settings.min_facts_per_topic)
        gated = FactRegistry(topics=filtered.kept, spans=registry.spans)
        ensure_registry_gates(gated, min_facts=self._settings.min_facts_per_topic)

        synthesis = self._synthesize(title, derived, extract) if self._settings.synthesize else None

        html = render_study_guide_html(
            RenderInput(
                lecture_title=title,
                slides=slides,
                inventory=inventory,
                registry=gated,
                derived=derived,
                omitted=filtered.omitted,
                min_facts=filtered.min_facts,
                synthesis=synthesis,
                qa_notes=_qa_notes(extraction, extract, slides),
                build_utc=self._build_utc(),
            )
        )
        ensure_document_gates(html, inventory)

        key = study_guide_key(document_id, title)
        self._store.put(key, html.encode("utf-8"))
        logger.info("Stored study guide for %s at %s", document_id, key)

        return StudyGuideResult(
            document_id=document_id,
            lecture_title=title,
            extraction=extraction,
            html=html,
            storage_key=key,
            inventory=inventory,
            registry=gated,
            omitted=filtered.omitted,
        )

    def _rewrite_registry(self, registry: FactRegistry) -> FactRegistry:
        raw = self._service.send(build_registry_rewrite_prompt(registry.to_dict()), REWRITE_OUTPUT_TOKENS, True)
        payload = parse_json_with_repair(
            raw,
            "registry_rewrite",
            lambda broken: self._service.send(
                build_json_repair_prompt("registry_rewrite", broken),
                REWRITE_OUTPUT_TOKENS,
                True,
            ),
        )
        return coerce_registry_rewrite(registry, payload)

    def _synthesize(self, title: str, derived: DerivedFacts, extract: DocumentExtract) -> SynthesisSummary:
        raw = self._service.send(build_synthesis_prompt(title, derived.to_dict()), SYNTHESIS_OUTPUT_TOKENS, True)
        payload = parse_json_with_repair(
            raw,
            "synthesis",
            lambda broken: self._service.send(
                build_json_repair_prompt("synthesis", broken),
                SYNTHESIS_OUTPUT_TOKENS,
                True,
            ),
        )
        summary = SynthesisSummary.from_dict(payload)
        ensure_synthesis(derived, summary, extract=extract)
        return summary


def _resolve_title(explicit: str | None, extract: DocumentExtract, slides: list[SlideBlock]) -> str:
    if explicit and explicit.strip():
        return explicit.strip()
    if extract.lecture_title:
        return extract.lecture_title
    return slides[0].first_line if slides else "Lecture"


def _qa_notes(extraction: ExtractionRun, extract: DocumentExtract, slides: list[SlideBlock]) -> list[str]:
    notes: list[str] = []
    resumed = sum(1 for item in extraction.chunks if item.from_checkpoint)
    if resumed:
        notes.append(f"Resumed {resumed} of {len(extraction.chunks)} chunk(s) from checkpoints")

    with_facts = {slide.n for slide in extract.slides if slide.iter_fact_texts()}
    empty = [str(slide.index) for slide in slides if slide.index not in with_facts]
    if empty:
        notes.append(f"No facts extracted for slide(s): {', '.join(empty)}")
    return notes
