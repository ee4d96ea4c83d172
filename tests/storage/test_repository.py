from __future__ import annotations

import pytest

from studyguide.storage import SQLiteObjectStore


def test_put_get_and_overwrite(tmp_path) -> None:
    with SQLiteObjectStore(tmp_path / "store.db") as store:
        assert store.get("guides/a.html") is None

        store.put("guides/a.html", b"first")
        assert store.get("guides/a.html") == b"first"

        store.put("guides/a.html", b"second")
        assert store.get("guides/a.html") == b"second"


def test_data_survives_reopen(tmp_path) -> None:
    db_path = tmp_path / "store.db"
    with SQLiteObjectStore(db_path) as store:
        store.put("checkpoints/doc/slides-0001-0002.json", b"{}")

    with SQLiteObjectStore(db_path) as reopened:
        assert reopened.get("checkpoints/doc/slides-0001-0002.json") == b"{}"


def test_list_keys_filters_by_prefix_in_order(tmp_path) -> None:
    with SQLiteObjectStore(tmp_path / "store.db") as store:
        store.put("checkpoints/doc/slides-0011-0020.json", b"2")
        store.put("checkpoints/doc/slides-0001-0010.json", b"1")
        store.put("study-guides/doc.html", b"<html></html>")

        assert store.list_keys("checkpoints/") == [
            "checkpoints/doc/slides-0001-0010.json",
            "checkpoints/doc/slides-0011-0020.json",
        ]
        assert len(store.list_keys()) == 3


def test_empty_key_is_rejected(tmp_path) -> None:
    with SQLiteObjectStore(tmp_path / "store.db") as store:
        with pytest.raises(ValueError, match="key cannot be empty"):
            store.put("", b"data")


def test_runtime_pragmas_enable_wal(tmp_path) -> None:
    with SQLiteObjectStore(tmp_path / "store.db") as store:
        mode = store.connection.execute("PRAGMA journal_mode;").fetchone()[0]

    assert str(mode).lower() == "wal"


def test_put_if_absent_never_replaces_existing_data(tmp_path) -> None:
    with SQLiteObjectStore(tmp_path / "store.db") as store:
        assert store.put_if_absent("checkpoints/doc/slides-0001-0002.json", b"first") is True
        assert store.put_if_absent("checkpoints/doc/slides-0001-0002.json", b"second") is False

        assert store.get("checkpoints/doc/slides-0001-0002.json") == b"first"
        with pytest.raises(ValueError, match="key cannot be empty"):
            store.put_if_absent("", b"data")
