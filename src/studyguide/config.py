"""Runtime configuration for generation and pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Mapping


DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_CHUNK_MAX_SLIDES = 10
DEFAULT_CHUNK_MAX_CHARS = 12000
DEFAULT_TIME_BUDGET_SECONDS = 240.0
DEFAULT_MIN_FACTS_PER_TOPIC = 3
DEFAULT_STORE_PATH = ".studyguide-store.db"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _parse_positive_int(*, name: str, raw_value: str, minimum: int = 1) -> int:
    value = int(raw_value)
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _parse_positive_float(*, name: str, raw_value: str, minimum: float = 0.001) -> float:
    value = float(raw_value)
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _parse_flag(*, name: str, raw_value: str) -> bool:
    lowered = raw_value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean flag (got {raw_value!r})")


@dataclass(frozen=True, slots=True)
class GenerationSettings:
    """Validated settings for the OpenAI-compatible completion service."""

    api_key: str
    model: str
    base_url: str = DEFAULT_BASE_URL

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GenerationSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        api_key = (source.get("STUDY_GUIDE_API_KEY", "") or source.get("OPENAI_API_KEY", "")).strip()
        model = source.get("STUDY_GUIDE_MODEL", "").strip()
        base_url = source.get("STUDY_GUIDE_BASE_URL", DEFAULT_BASE_URL).strip()

        missing: list[str] = []
        if not api_key:
            missing.append("STUDY_GUIDE_API_KEY")
        if not model:
            missing.append("STUDY_GUIDE_MODEL")

        if missing:
            missing_text = ", ".join(missing)
            raise ValueError(f"Missing required generation environment variables: {missing_text}")

        if not base_url:
            raise ValueError("STUDY_GUIDE_BASE_URL cannot be empty")
        if not (base_url.startswith("http://") or base_url.startswith("https://")):
            raise ValueError("STUDY_GUIDE_BASE_URL must start with http:// or https://")

        return cls(api_key=api_key, model=model, base_url=base_url.rstrip("/"))


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    """Chunking, budget and storage knobs for one pipeline deployment."""

    chunk_max_slides: int = DEFAULT_CHUNK_MAX_SLIDES
    chunk_max_chars: int = DEFAULT_CHUNK_MAX_CHARS
    time_budget_seconds: float = DEFAULT_TIME_BUDGET_SECONDS
    min_facts_per_topic: int = DEFAULT_MIN_FACTS_PER_TOPIC
    store_path: Path = Path(DEFAULT_STORE_PATH)
    rewrite_facts: bool = False
    synthesize: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PipelineSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        max_slides_raw = source.get("STUDY_GUIDE_CHUNK_MAX_SLIDES", str(DEFAULT_CHUNK_MAX_SLIDES)).strip()
        max_chars_raw = source.get("STUDY_GUIDE_CHUNK_MAX_CHARS", str(DEFAULT_CHUNK_MAX_CHARS)).strip()
        budget_raw = source.get("STUDY_GUIDE_TIME_BUDGET_SECONDS", str(DEFAULT_TIME_BUDGET_SECONDS)).strip()
        min_facts_raw = source.get("STUDY_GUIDE_MIN_FACTS_PER_TOPIC", str(DEFAULT_MIN_FACTS_PER_TOPIC)).strip()
        store_path_raw = source.get("STUDY_GUIDE_STORE_PATH", DEFAULT_STORE_PATH).strip()

        if not store_path_raw:
            raise ValueError("STUDY_GUIDE_STORE_PATH cannot be empty")

        return cls(
            chunk_max_slides=_parse_positive_int(name="STUDY_GUIDE_CHUNK_MAX_SLIDES", raw_value=max_slides_raw),
            chunk_max_chars=_parse_positive_int(name="STUDY_GUIDE_CHUNK_MAX_CHARS", raw_value=max_chars_raw),
            time_budget_seconds=_parse_positive_float(name="STUDY_GUIDE_TIME_BUDGET_SECONDS", raw_value=budget_raw),
            min_facts_per_topic=_parse_positive_int(
                name="STUDY_GUIDE_MIN_FACTS_PER_TOPIC",
                raw_value=min_facts_raw,
                minimum=0,
            ),
            store_path=Path(store_path_raw),
            rewrite_facts=_parse_flag(
                name="STUDY_GUIDE_REWRITE_FACTS",
                raw_value=source.get("STUDY_GUIDE_REWRITE_FACTS", "false"),
            ),
            synthesize=_parse_flag(
                name="STUDY_GUIDE_SYNTHESIZE",
                raw_value=source.get("STUDY_GUIDE_SYNTHESIZE", "false"),
            ),
        )
