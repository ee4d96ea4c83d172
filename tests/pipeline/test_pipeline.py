from __future__ import annotations

import json
import re

from bs4 import BeautifulSoup
import pytest

from studyguide.config import PipelineSettings
from studyguide.extraction import study_guide_key
from studyguide.pipeline import StudyGuidePipeline
from studyguide.quality import SynthesisGateError

_SLIDE_HEADER_RE = re.compile(r"^Slide (\d+) \(p\.(\d+)\):", re.MULTILINE)

DECK = """Slide 1 (p.1):
Tacrolimus
Key facts for transplant maintenance

Slide 2 (p.2):
Acute rejection
Occurs within weeks of transplant
"""

SLIDE_SECTIONS = {
    1: {
        "heading": "Tacrolimus",
        "facts": [
            "Inhibits calcineurin and IL-2 transcription",
            "Nephrotoxicity is the most common adverse effect",
            "Neurotoxicity causes tremor",
            "Metabolized by CYP3A4",
            "Used for maintenance after kidney transplant",
        ],
    },
    2: {
        "heading": "Acute rejection",
        "facts": [
            "T-cell mediated injury within weeks",
            "Recipient T cells attack donor HLA",
            "Biopsy shows tubulitis",
        ],
    },
}


class _MemoryStore:
    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self.data.get(key)

    def put(self, key: str, data: bytes) -> None:
        self.data[key] = data

    def put_if_absent(self, key: str, data: bytes) -> bool:
        if key in self.data:
            return False
        self.data[key] = data
        return True


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _DeckService:
    """Answers each prompt kind with canned JSON for the two-slide deck."""

    def __init__(
        self,
        *,
        clock: _Clock | None = None,
        seconds_per_call: float = 0.0,
        synthesis: dict | None = None,
        extra_facts: list[str] | None = None,
    ) -> None:
        self.prompts: list[str] = []
        self._extra_facts = extra_facts or []
        self._clock = clock
        self._seconds_per_call = seconds_per_call
        self._synthesis = synthesis or {}

    def send(self, prompt: str, max_output_tokens: int, expects_json: bool) -> str:
        self.prompts.append(prompt)
        if self._clock is not None:
            self._clock.now += self._seconds_per_call
        if "INPUT FACT REGISTRY:" in prompt:
            return json.dumps({"topics": []})
        if "DERIVED_JSON:" in prompt:
            return json.dumps(self._synthesis)
        if "EXTRACT_JSON:" in prompt:
            return json.dumps({"raw_facts": ["Tacrolimus causes tremor"], "exam_atoms": []})
        chunk_text = prompt.split("CHUNK_TEXT:", 1)[1]
        slides = []
        for number, page in _SLIDE_HEADER_RE.findall(chunk_text):
            section = SLIDE_SECTIONS[int(number)]
            facts = [*section["facts"], *(self._extra_facts if number == "1" else [])]
            slides.append(
                {
                    "n": int(number),
                    "page": int(page),
                    "sections": [
                        {"heading": section["heading"], "facts": [{"text": text} for text in facts]}
                    ],
                }
            )
        return json.dumps({"lecture_title": "Transplant Immunosuppression", "slides": slides})

    def count(self, marker: str) -> int:
        return sum(1 for prompt in self.prompts if marker in prompt)


def _settings(**overrides) -> PipelineSettings:
    values = {"chunk_max_slides": 1, "time_budget_seconds": 60.0}
    values.update(overrides)
    return PipelineSettings(**values)


def _pipeline(service: _DeckService, store: _MemoryStore, clock: _Clock | None = None, **overrides) -> StudyGuidePipeline:
    return StudyGuidePipeline(
        service,
        store,
        _settings(**overrides),
        clock=clock or _Clock(),
        build_utc=lambda: "2024-05-01T12:00:00Z",
    )


def _table_text(html: str, table_id: str) -> str:
    soup = BeautifulSoup(html, "lxml")
    return soup.find("table", attrs={"data-table-id": table_id}).get_text(" ", strip=True)


def test_pipeline_renders_gates_and_stores_guide() -> None:
    store = _MemoryStore()
    service = _DeckService()

    result = _pipeline(service, store).run("lecture-7", DECK)

    assert result.partial is False
    assert result.lecture_title == "Transplant Immunosuppression"
    assert result.storage_key == study_guide_key("lecture-7", "Transplant Immunosuppression")
    assert store.data[result.storage_key] == result.html.encode("utf-8")
    assert [topic.label for topic in result.registry.topics] == ["Tacrolimus", "Acute rejection"]
    assert result.inventory.drugs == ["Tacrolimus"]
    assert service.count("CHUNK_TEXT:") == 2
    assert service.count("EXTRACT_JSON:") == 1
    assert service.count("INPUT FACT REGISTRY:") == 0
    assert "Tacrolimus" in _table_text(result.html, "rapid-approach-summary")
    assert "Tacrolimus" in _table_text(result.html, "treatments-management")
    assert "Timestamp (UTC): 2024-05-01T12:00:00Z" in result.html


def test_rerun_reuses_checkpoints_and_explicit_title_wins() -> None:
    store = _MemoryStore()
    _pipeline(_DeckService(), store).run("lecture-7", DECK)
    service = _DeckService()

    result = _pipeline(service, store).run("lecture-7", DECK, lecture_title="  Renal Transplant  ")

    assert service.count("CHUNK_TEXT:") == 0
    assert result.extraction.service_calls == 0
    assert service.count("EXTRACT_JSON:") == 1
    assert result.lecture_title == "Renal Transplant"
    assert result.storage_key == study_guide_key("lecture-7", "Renal Transplant")
    assert "Resumed 2 of 2 chunk(s) from checkpoints" in result.html


def test_time_budget_returns_partial_result_without_rendering() -> None:
    store = _MemoryStore()
    clock = _Clock()
    service = _DeckService(clock=clock, seconds_per_call=10.0)

    result = _pipeline(service, store, clock, time_budget_seconds=5.0).run("lecture-7", DECK)

    assert result.partial is True
    assert result.html is None
    assert result.storage_key is None
    assert result.extraction.pending_ranges == [(2, 2)]
    assert [key for key in store.data if key.startswith("study-guides/")] == []
    assert result.to_dict()["topics"] == []


def test_registry_rewrite_keeps_topics_when_rewrite_is_empty() -> None:
    service = _DeckService()

    result = _pipeline(service, _MemoryStore(), rewrite_facts=True).run("lecture-7", DECK)

    assert service.count("INPUT FACT REGISTRY:") == 1
    assert [topic.label for topic in result.registry.topics] == ["Tacrolimus", "Acute rejection"]


def test_synthesis_gate_failure_stores_nothing() -> None:
    store = _MemoryStore()
    service = _DeckService(synthesis={"high_yield_summary": ["Tacrolimus causes tremor"]})

    with pytest.raises(SynthesisGateError) as error:
        _pipeline(service, store, synthesize=True).run("lecture-7", DECK)

    assert "SYNTHESIS_MISSING" in error.value.codes
    assert [key for key in store.data if key.startswith("study-guides/")] == []


def test_input_without_slide_markers_is_rejected() -> None:
    with pytest.raises(ValueError, match="No slide markers"):
        _pipeline(_DeckService(), _MemoryStore()).run("lecture-7", "just some notes")


def test_placeholder_facts_are_skipped_not_rendered() -> None:
    store = _MemoryStore()
    service = _DeckService(extra_facts=["Tacrolimus dose adjustment not stated"])

    result = _pipeline(service, store).run("lecture-7", DECK)

    assert result.storage_key in store.data
    assert "not stated" not in result.html.lower()
    assert "Resumed" not in result.html
