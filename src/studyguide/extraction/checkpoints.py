"""Versioned, write-once chunk checkpoints over an object store."""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

from studyguide.extraction.models import ChunkResult
from studyguide.storage import ObjectStore


logger = logging.getLogger(__name__)

CHECKPOINT_VERSION = 1


def checkpoint_key(document_id: str, start_slide: int, end_slide: int) -> str:
    if not document_id.strip():
        raise ValueError("document_id cannot be empty")
    return f"checkpoints/{document_id.strip()}/slides-{start_slide:04d}-{end_slide:04d}.json"


def study_guide_key(document_id: str, lecture_title: str) -> str:
    """Storage key for a rendered guide, keyed by document and title hash."""

    if not document_id.strip():
        raise ValueError("document_id cannot be empty")
    title_hash = hashlib.sha256((lecture_title or "").strip().encode("utf-8")).hexdigest()[:16]
    return f"study-guides/{document_id.strip()}/{title_hash}.html"


class CheckpointStore:
    """Read and persist per-chunk extraction results.

    A checkpoint written with the current version is never overwritten; one written
    with an older version is treated as a miss and replaced by the next save.
    """

    def __init__(self, store: ObjectStore, *, version: int = CHECKPOINT_VERSION) -> None:
        self._store = store
        self._version = version

    @property
    def version(self) -> int:
        return self._version

    def _load_payload(self, key: str) -> dict[str, Any] | None:
        raw = self._store.get(key)
        if raw is None:
            return None
        return self._decode(key, raw)

    def _decode(self, key: str, raw: bytes) -> dict[str, Any] | None:
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Ignoring undecodable checkpoint %s", key)
            return None
        if not isinstance(payload, dict) or not isinstance(payload.get("result"), dict):
            logger.warning("Ignoring malformed checkpoint %s", key)
            return None
        if payload.get("version") != self._version:
            logger.info("Ignoring stale checkpoint %s (version=%s)", key, payload.get("version"))
            return None
        return payload

    def load(self, document_id: str, start_slide: int, end_slide: int) -> ChunkResult | None:
        key = checkpoint_key(document_id, start_slide, end_slide)
        payload = self._load_payload(key)
        if payload is None:
            return None
        return ChunkResult.from_dict(payload["result"], start_slide=start_slide, end_slide=end_slide)

    def save(self, document_id: str, result: ChunkResult) -> str:
        """Persist ``result`` unless a fresh checkpoint already exists; return its key.

        A missing key is claimed with an insert-if-absent write, so a concurrent
        writer that commits first wins. Stale or malformed entries are replaced.
        """

        key = checkpoint_key(document_id, result.start_slide, result.end_slide)
        existing = self._store.get(key)
        if existing is not None and self._decode(key, existing) is not None:
            logger.info("Checkpoint %s already committed; keeping existing result", key)
            return key

        payload = {
            "version": self._version,
            "document_id": document_id,
            "start_slide": result.start_slide,
            "end_slide": result.end_slide,
            "result": result.to_dict(),
        }
        data = json.dumps(payload, ensure_ascii=False, sort_keys=True).encode("utf-8")
        if existing is None:
            if not self._store.put_if_absent(key, data):
                logger.info("Checkpoint %s committed by another writer; keeping it", key)
                return key
        else:
            self._store.put(key, data)
        logger.info("Wrote checkpoint %s", key)
        return key
