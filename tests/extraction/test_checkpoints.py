from __future__ import annotations

import json

import pytest

from studyguide.extraction.checkpoints import CheckpointStore, checkpoint_key, study_guide_key
from studyguide.extraction.models import ChunkResult, ExtractSection, ExtractSlide, ExtractFact
from studyguide.storage import SQLiteObjectStore


def _result(start: int, end: int, fact: str) -> ChunkResult:
    return ChunkResult(
        lecture_title="Immunosuppressants",
        start_slide=start,
        end_slide=end,
        slides=[ExtractSlide(n=start, page=start, sections=[ExtractSection(heading="Topic", facts=[ExtractFact(text=fact)])])],
    )


def test_save_then_load_round_trips_chunk_result(tmp_path) -> None:
    with SQLiteObjectStore(tmp_path / "store.db") as store:
        checkpoints = CheckpointStore(store)

        key = checkpoints.save("lecture-1", _result(1, 4, "Tacrolimus inhibits calcineurin"))
        loaded = checkpoints.load("lecture-1", 1, 4)

    assert key == "checkpoints/lecture-1/slides-0001-0004.json"
    assert loaded is not None
    assert loaded.slides[0].iter_fact_texts() == ["Tacrolimus inhibits calcineurin"]
    assert loaded.lecture_title == "Immunosuppressants"


def test_committed_checkpoint_is_never_overwritten(tmp_path) -> None:
    with SQLiteObjectStore(tmp_path / "store.db") as store:
        checkpoints = CheckpointStore(store)
        checkpoints.save("lecture-1", _result(1, 2, "first answer"))
        checkpoints.save("lecture-1", _result(1, 2, "second answer"))

        loaded = checkpoints.load("lecture-1", 1, 2)

    assert loaded is not None
    assert loaded.slides[0].iter_fact_texts() == ["first answer"]


def test_stale_version_is_a_miss_and_gets_replaced(tmp_path) -> None:
    with SQLiteObjectStore(tmp_path / "store.db") as store:
        CheckpointStore(store, version=1).save("lecture-1", _result(1, 2, "old schema"))
        current = CheckpointStore(store, version=2)

        assert current.load("lecture-1", 1, 2) is None

        current.save("lecture-1", _result(1, 2, "new schema"))
        payload = json.loads(store.get(checkpoint_key("lecture-1", 1, 2)).decode("utf-8"))

    assert payload["version"] == 2
    assert payload["result"]["slides"][0]["sections"][0]["facts"][0]["text"] == "new schema"


def test_malformed_checkpoint_is_ignored(tmp_path) -> None:
    with SQLiteObjectStore(tmp_path / "store.db") as store:
        store.put(checkpoint_key("lecture-1", 1, 2), b"not json")

        assert CheckpointStore(store).load("lecture-1", 1, 2) is None


def test_storage_keys_require_document_id() -> None:
    with pytest.raises(ValueError, match="document_id"):
        checkpoint_key(" ", 1, 2)
    with pytest.raises(ValueError, match="document_id"):
        study_guide_key("", "Title")


def test_study_guide_key_depends_on_title() -> None:
    first = study_guide_key("lecture-1", "Immunosuppressants")

    assert first.startswith("study-guides/lecture-1/")
    assert first.endswith(".html")
    assert first == study_guide_key("lecture-1", "  Immunosuppressants ")
    assert first != study_guide_key("lecture-1", "Anticoagulants")


class _StaleReadStore:
    """Store view whose reads predate another writer's commit."""

    def __init__(self, store: SQLiteObjectStore) -> None:
        self._store = store

    def get(self, key: str) -> bytes | None:
        return None

    def put(self, key: str, data: bytes) -> None:
        self._store.put(key, data)

    def put_if_absent(self, key: str, data: bytes) -> bool:
        return self._store.put_if_absent(key, data)


def test_concurrent_save_keeps_first_committed_checkpoint(tmp_path) -> None:
    with SQLiteObjectStore(tmp_path / "store.db") as store:
        CheckpointStore(store).save("lecture-1", _result(1, 2, "first writer"))

        key = CheckpointStore(_StaleReadStore(store)).save("lecture-1", _result(1, 2, "second writer"))
        loaded = CheckpointStore(store).load("lecture-1", 1, 2)

    assert key == checkpoint_key("lecture-1", 1, 2)
    assert loaded is not None
    assert loaded.slides[0].iter_fact_texts() == ["first writer"]
