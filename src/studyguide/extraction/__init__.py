"""Chunk extraction, JSON repair, checkpointing and merge."""

from .checkpoints import CHECKPOINT_VERSION, CheckpointStore, checkpoint_key, study_guide_key
from .client import CompletionService, GenerationRequestError, OpenAICompletionClient
from .derive import derive_facts
from .json_repair import JsonRepairError, parse_json_with_repair
from .merge import merge_chunk_results
from .models import ChunkResult, DerivedFacts, DocumentExtract, SourceSpan
from .orchestrator import ChunkExtractionError, ChunkState, ExtractionOrchestrator, ExtractionRun

__all__ = [
    "CHECKPOINT_VERSION",
    "CheckpointStore",
    "ChunkExtractionError",
    "ChunkResult",
    "ChunkState",
    "CompletionService",
    "DerivedFacts",
    "DocumentExtract",
    "ExtractionOrchestrator",
    "ExtractionRun",
    "GenerationRequestError",
    "JsonRepairError",
    "OpenAICompletionClient",
    "SourceSpan",
    "checkpoint_key",
    "derive_facts",
    "merge_chunk_results",
    "parse_json_with_repair",
    "study_guide_key",
]
