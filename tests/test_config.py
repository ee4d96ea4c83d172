from __future__ import annotations

from pathlib import Path

import pytest

from studyguide.config import GenerationSettings, PipelineSettings


def test_generation_settings_from_env() -> None:
    settings = GenerationSettings.from_env(
        {
            "STUDY_GUIDE_API_KEY": " key ",
            "STUDY_GUIDE_MODEL": "gpt-4o-mini",
            "STUDY_GUIDE_BASE_URL": "https://llm.example.test/v1/",
        }
    )

    assert settings.api_key == "key"
    assert settings.model == "gpt-4o-mini"
    assert settings.base_url == "https://llm.example.test/v1"


def test_generation_settings_falls_back_to_openai_key() -> None:
    settings = GenerationSettings.from_env({"OPENAI_API_KEY": "sk-test", "STUDY_GUIDE_MODEL": "gpt-4o"})

    assert settings.api_key == "sk-test"
    assert settings.base_url == "https://api.openai.com/v1"


def test_generation_settings_reports_missing_vars() -> None:
    with pytest.raises(ValueError, match="STUDY_GUIDE_API_KEY, STUDY_GUIDE_MODEL"):
        GenerationSettings.from_env({})


def test_generation_settings_rejects_non_http_base_url() -> None:
    with pytest.raises(ValueError, match="must start with http"):
        GenerationSettings.from_env(
            {"STUDY_GUIDE_API_KEY": "key", "STUDY_GUIDE_MODEL": "m", "STUDY_GUIDE_BASE_URL": "ftp://host"}
        )


def test_pipeline_settings_defaults() -> None:
    settings = PipelineSettings.from_env({})

    assert settings == PipelineSettings()
    assert settings.chunk_max_slides == 10
    assert settings.chunk_max_chars == 12000
    assert settings.time_budget_seconds == 240.0
    assert settings.min_facts_per_topic == 3
    assert settings.store_path == Path(".studyguide-store.db")
    assert settings.rewrite_facts is False
    assert settings.synthesize is False


def test_pipeline_settings_overrides() -> None:
    settings = PipelineSettings.from_env(
        {
            "STUDY_GUIDE_CHUNK_MAX_SLIDES": "4",
            "STUDY_GUIDE_CHUNK_MAX_CHARS": "800",
            "STUDY_GUIDE_TIME_BUDGET_SECONDS": "30.5",
            "STUDY_GUIDE_MIN_FACTS_PER_TOPIC": "0",
            "STUDY_GUIDE_STORE_PATH": "/tmp/guides.db",
            "STUDY_GUIDE_REWRITE_FACTS": "Yes",
            "STUDY_GUIDE_SYNTHESIZE": "1",
        }
    )

    assert settings.chunk_max_slides == 4
    assert settings.chunk_max_chars == 800
    assert settings.time_budget_seconds == 30.5
    assert settings.min_facts_per_topic == 0
    assert settings.store_path == Path("/tmp/guides.db")
    assert settings.rewrite_facts is True
    assert settings.synthesize is True


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("STUDY_GUIDE_CHUNK_MAX_SLIDES", "0", "must be >= 1"),
        ("STUDY_GUIDE_TIME_BUDGET_SECONDS", "0", "must be >= 0.001"),
        ("STUDY_GUIDE_SYNTHESIZE", "maybe", "must be a boolean flag"),
        ("STUDY_GUIDE_STORE_PATH", "  ", "cannot be empty"),
    ],
)
def test_pipeline_settings_rejects_invalid_values(name: str, value: str, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        PipelineSettings.from_env({name: value})
