"""Sequential, checkpointed extraction over planned chunks."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
import time
from typing import Any, Callable, Sequence

from studyguide.extraction.checkpoints import CheckpointStore
from studyguide.extraction.client import CompletionService, GenerationRequestError
from studyguide.extraction.json_repair import JsonRepairError, parse_json_with_repair
from studyguide.extraction.models import ChunkResult
from studyguide.extraction.prompts import build_chunk_extract_prompt, build_json_repair_prompt
from studyguide.ingestion.models import ExtractionChunk


logger = logging.getLogger(__name__)

DEFAULT_BASE_OUTPUT_TOKENS = 1024
DEFAULT_MAX_OUTPUT_TOKENS = 8192
DEFAULT_TOKENS_PER_CHAR = 0.5


class ChunkState(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True)
class ChunkExtractionError(RuntimeError):
    """Fatal extraction failure for one identified slide range."""

    document_id: str
    start_slide: int
    end_slide: int
    message: str

    def __str__(self) -> str:
        return (
            f"{self.message} (document_id={self.document_id}, "
            f"slides={self.start_slide}-{self.end_slide})"
        )


@dataclass(slots=True)
class ChunkProgress:
    chunk: ExtractionChunk
    state: ChunkState = ChunkState.PENDING
    result: ChunkResult | None = None
    from_checkpoint: bool = False
    checkpoint_key: str | None = None

    @property
    def start_slide(self) -> int:
        return self.chunk.start_slide

    @property
    def end_slide(self) -> int:
        return self.chunk.end_slide


@dataclass(slots=True)
class ExtractionRun:
    """Outcome of one orchestrator invocation.

    ``partial`` is set when the time budget stopped the run before every chunk
    succeeded; the remaining chunks are left ``PENDING`` for the next invocation.
    """

    document_id: str
    chunks: list[ChunkProgress] = field(default_factory=list)
    partial: bool = False
    service_calls: int = 0
    last_checkpoint_key: str | None = None

    @property
    def results(self) -> list[ChunkResult]:
        return [item.result for item in self.chunks if item.state is ChunkState.SUCCEEDED and item.result is not None]

    @property
    def pending_ranges(self) -> list[tuple[int, int]]:
        return [(item.start_slide, item.end_slide) for item in self.chunks if item.state is ChunkState.PENDING]

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "partial": self.partial,
            "service_calls": self.service_calls,
            "last_checkpoint_key": self.last_checkpoint_key,
            "chunks": [
                {
                    "start_slide": item.start_slide,
                    "end_slide": item.end_slide,
                    "state": item.state.value,
                    "from_checkpoint": item.from_checkpoint,
                }
                for item in self.chunks
            ],
        }


class ExtractionOrchestrator:
    """Drive one completion call per chunk with checkpointed resume."""

    def __init__(
        self,
        service: CompletionService,
        checkpoints: CheckpointStore,
        *,
        time_budget_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        base_output_tokens: int = DEFAULT_BASE_OUTPUT_TOKENS,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        tokens_per_char: float = DEFAULT_TOKENS_PER_CHAR,
    ) -> None:
        if time_budget_seconds is not None and time_budget_seconds <= 0:
            raise ValueError("time_budget_seconds must be positive")
        if base_output_tokens < 1:
            raise ValueError("base_output_tokens must be >= 1")
        if max_output_tokens < base_output_tokens:
            raise ValueError("max_output_tokens must be >= base_output_tokens")
        if tokens_per_char < 0:
            raise ValueError("tokens_per_char cannot be negative")

        self._service = service
        self._checkpoints = checkpoints
        self._time_budget_seconds = time_budget_seconds
        self._clock = clock
        self._base_output_tokens = base_output_tokens
        self._max_output_tokens = max_output_tokens
        self._tokens_per_char = tokens_per_char

    def output_token_budget(self, chunk: ExtractionChunk) -> int:
        proportional = self._base_output_tokens + int(chunk.char_count * self._tokens_per_char)
        return min(self._max_output_tokens, proportional)

    def run(self, document_id: str, chunks: Sequence[ExtractionChunk], *, lecture_title: str = "") -> ExtractionRun:
        """Extract every chunk not already checkpointed, in ascending slide order."""

        if not document_id.strip():
            raise ValueError("document_id cannot be empty")

        run = ExtractionRun(
            document_id=document_id,
            chunks=[ChunkProgress(chunk=chunk) for chunk in sorted(chunks, key=lambda item: item.start_slide)],
        )
        started = self._clock()
        title = lecture_title.strip()

        for item in run.chunks:
            cached = self._checkpoints.load(document_id, item.start_slide, item.end_slide)
            if cached is not None:
                logger.info("Checkpoint hit for %s slides %d-%d", document_id, item.start_slide, item.end_slide)
                item.state = ChunkState.SUCCEEDED
                item.result = cached
                item.from_checkpoint = True
                title = title or cached.lecture_title
                continue

            if self._budget_exhausted(started):
                # Remaining misses stay pending; later hits are still consumed.
                run.partial = True
                continue

            item.state = ChunkState.IN_FLIGHT
            try:
                result = self._extract_chunk(run, item.chunk, lecture_title=title)
            except (JsonRepairError, GenerationRequestError) as exc:
                item.state = ChunkState.FAILED
                raise ChunkExtractionError(
                    document_id=document_id,
                    start_slide=item.start_slide,
                    end_slide=item.end_slide,
                    message=f"Chunk extraction failed: {exc}",
                ) from exc

            item.checkpoint_key = self._checkpoints.save(document_id, result)
            item.result = result
            item.state = ChunkState.SUCCEEDED
            run.last_checkpoint_key = item.checkpoint_key
            title = title or result.lecture_title

        if run.partial:
            logger.warning(
                "Time budget exhausted for %s; %d chunk(s) left pending",
                document_id,
                len(run.pending_ranges),
            )
        return run

    def _budget_exhausted(self, started: float) -> bool:
        if self._time_budget_seconds is None:
            return False
        return self._clock() - started >= self._time_budget_seconds

    def _send(self, run: ExtractionRun, prompt: str, max_output_tokens: int) -> str:
        run.service_calls += 1
        return self._service.send(prompt, max_output_tokens, True)

    def _extract_chunk(self, run: ExtractionRun, chunk: ExtractionChunk, *, lecture_title: str) -> ChunkResult:
        budget = self.output_token_budget(chunk)
        logger.info(
            "Extracting slides %d-%d for %s (max_output_tokens=%d)",
            chunk.start_slide,
            chunk.end_slide,
            run.document_id,
            budget,
        )
        raw = self._send(run, build_chunk_extract_prompt(chunk, lecture_title=lecture_title), budget)
        payload = parse_json_with_repair(
            raw,
            "chunk_extract",
            lambda broken: self._send(run, build_json_repair_prompt("chunk_extract", broken), budget),
        )
        result = ChunkResult.from_dict(payload, start_slide=chunk.start_slide, end_slide=chunk.end_slide)

        pages = {slide.index: slide.page for slide in chunk.slides}
        for slide in result.slides:
            slide.page = pages.get(slide.n, slide.page)
        return result
