"""CLI entrypoint that builds one gated study guide from slide text."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from studyguide.config import GenerationSettings, PipelineSettings
from studyguide.extraction import (
    ChunkExtractionError,
    GenerationRequestError,
    JsonRepairError,
    OpenAICompletionClient,
)
from studyguide.ingestion import read_slide_text
from studyguide.pipeline import StudyGuidePipeline
from studyguide.quality import QualityGateError
from studyguide.storage import SQLiteObjectStore


logger = logging.getLogger(__name__)


def _apply_overrides(settings: PipelineSettings, args: argparse.Namespace) -> PipelineSettings:
    overrides: dict[str, object] = {}
    if args.store_path:
        overrides["store_path"] = Path(args.store_path)
    if args.time_budget is not None:
        if args.time_budget <= 0:
            raise ValueError("--time-budget must be positive")
        overrides["time_budget_seconds"] = args.time_budget
    return dataclasses.replace(settings, **overrides) if overrides else settings


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Build a fact-grounded study guide from slide-segmented text")
    parser.add_argument("input", help="Text file with 'Slide N (p.P):' markers")
    parser.add_argument("--document-id", default=None, help="Stable document id (defaults to the input file stem)")
    parser.add_argument("--title", default=None, help="Lecture title override")
    parser.add_argument("--output", default=None, help="Optional path for the rendered HTML")
    parser.add_argument("--store-path", default=None, help="SQLite object store for checkpoints and guides")
    parser.add_argument("--time-budget", type=float, default=None, help="Wall-clock extraction budget in seconds")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    input_path = Path(args.input)
    document_id = args.document_id or input_path.stem
    settings = _apply_overrides(PipelineSettings.from_env(), args)
    client = OpenAICompletionClient(GenerationSettings.from_env())

    payload: dict[str, object] = {"input": str(input_path), "document_id": document_id}
    with SQLiteObjectStore(settings.store_path) as store:
        pipeline = StudyGuidePipeline(client, store, settings)
        try:
            result = pipeline.run(document_id, read_slide_text(input_path), lecture_title=args.title)
        except QualityGateError as exc:
            logger.error("Quality gate %s failed: %s", exc.gate, exc)
            payload.update(
                {
                    "status": "gate_failed",
                    "gate": exc.gate,
                    "failures": [failure.to_dict() for failure in exc.failures],
                }
            )
            print(json.dumps(payload, ensure_ascii=True, indent=2))
            return 1
        except (ChunkExtractionError, GenerationRequestError, JsonRepairError) as exc:
            logger.error("Extraction failed: %s", exc)
            payload.update({"status": "extraction_failed", "error": str(exc)})
            print(json.dumps(payload, ensure_ascii=True, indent=2))
            return 1

    if result.html is not None and args.output:
        Path(args.output).write_text(result.html, encoding="utf-8")
        payload["output"] = args.output

    payload["status"] = "partial" if result.partial else "ok"
    payload["result"] = result.to_dict()
    print(json.dumps(payload, ensure_ascii=True, indent=2))
    return 2 if result.partial else 0


if __name__ == "__main__":
    raise SystemExit(main())
