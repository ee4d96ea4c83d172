from __future__ import annotations

import json

import pytest

from studyguide.cli import build_study_guide


class _BrokenService:
    def __init__(self, settings) -> None:
        self.settings = settings
        self.prompts: list[str] = []

    def send(self, prompt: str, max_output_tokens: int, expects_json: bool) -> str:
        self.prompts.append(prompt)
        return "I am not able to produce JSON today."


@pytest.fixture
def deck(tmp_path, monkeypatch):
    monkeypatch.setenv("STUDY_GUIDE_API_KEY", "test-key")
    monkeypatch.setenv("STUDY_GUIDE_MODEL", "test-model")
    monkeypatch.setattr(build_study_guide, "OpenAICompletionClient", _BrokenService)
    path = tmp_path / "lecture-3.txt"
    path.write_text("Slide 1 (p.1):\nTacrolimus\nInhibits calcineurin\n", encoding="utf-8")
    return path


def test_extraction_failure_prints_status_and_exits_nonzero(deck, tmp_path, capsys) -> None:
    exit_code = build_study_guide.main([str(deck), "--store-path", str(tmp_path / "store.db")])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 1
    assert payload["status"] == "extraction_failed"
    assert payload["document_id"] == "lecture-3"
    assert "slides=1-1" in payload["error"]


def test_non_positive_time_budget_is_rejected(deck, tmp_path) -> None:
    with pytest.raises(ValueError, match="--time-budget must be positive"):
        build_study_guide.main([str(deck), "--store-path", str(tmp_path / "store.db"), "--time-budget", "0"])
