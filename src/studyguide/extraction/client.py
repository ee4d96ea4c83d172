"""OpenAI-compatible completion client used by extraction and synthesis calls."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Any, Callable, Protocol

from studyguide.config import GenerationSettings


logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_SYSTEM_PROMPT = "You produce study-guide data strictly from the lecture content you are given."


class CompletionService(Protocol):
    """Black-box text generation; output may be JSON, near-JSON or prose."""

    def send(self, prompt: str, max_output_tokens: int, expects_json: bool) -> str:
        ...


@dataclass(slots=True)
class GenerationRequestError(RuntimeError):
    """Domain error raised for failed text generation requests."""

    model: str
    message: str

    def __str__(self) -> str:
        return f"{self.message} (model={self.model})"


def _build_default_client(settings: GenerationSettings) -> Any:
    try:
        from openai import OpenAI
    except Exception as exc:  # pragma: no cover - environment-dependent
        raise GenerationRequestError(
            model=settings.model,
            message=f"OpenAI SDK unavailable: {exc}",
        ) from exc

    return OpenAI(api_key=settings.api_key, base_url=settings.base_url)


def _is_retryable(exc: Exception) -> bool:
    status_code = getattr(exc, "status_code", None)
    if status_code in _RETRYABLE_STATUS_CODES:
        return True

    if isinstance(exc, (TimeoutError, ConnectionError)):
        return True

    return type(exc).__name__ in {
        "RateLimitError",
        "APITimeoutError",
        "APIConnectionError",
        "InternalServerError",
    }


def _extract_text(response: Any, *, model: str) -> str:
    choices = getattr(response, "choices", None)
    if choices is None and isinstance(response, dict):
        choices = response.get("choices")
    if not isinstance(choices, list) or not choices:
        raise GenerationRequestError(model=model, message="Generation response missing choices")

    first = choices[0]
    message = getattr(first, "message", None)
    content = getattr(message, "content", None) if message is not None else None
    if content is None and isinstance(first, dict):
        message_dict = first.get("message", {})
        if isinstance(message_dict, dict):
            content = message_dict.get("content")

    if isinstance(content, list):
        content = "".join(str(part.get("text", "")) for part in content if isinstance(part, dict))

    text = str(content or "").strip()
    if not text:
        raise GenerationRequestError(model=model, message="Generation response returned empty text")
    return text


class OpenAICompletionClient:
    """Chat-completions wrapper with validation, JSON mode and retries."""

    def __init__(
        self,
        settings: GenerationSettings,
        *,
        client: Any | None = None,
        temperature: float = 0.2,
        max_retries: int = 2,
        retry_base_seconds: float = 0.25,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if retry_base_seconds < 0:
            raise ValueError("retry_base_seconds cannot be negative")

        self._settings = settings
        self._client = client or _build_default_client(settings)
        self._temperature = temperature
        self._max_retries = max_retries
        self._retry_base_seconds = retry_base_seconds
        self._sleep = sleep

    @property
    def model(self) -> str:
        return self._settings.model

    def send(self, prompt: str, max_output_tokens: int, expects_json: bool) -> str:
        prompt_text = prompt.strip()
        if not prompt_text:
            raise ValueError("prompt cannot be empty")
        if max_output_tokens < 1:
            raise ValueError("max_output_tokens must be >= 1")

        response = self._request_generation(
            prompt=prompt_text,
            max_tokens=max_output_tokens,
            expects_json=expects_json,
        )
        return _extract_text(response, model=self._settings.model)

    def _request_generation(self, *, prompt: str, max_tokens: int, expects_json: bool) -> Any:
        attempts = self._max_retries + 1
        last_error: Exception | None = None
        request: dict[str, Any] = {
            "model": self._settings.model,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": self._temperature,
            "max_tokens": max_tokens,
        }
        if expects_json:
            request["response_format"] = {"type": "json_object"}

        for attempt in range(attempts):
            try:
                return self._client.chat.completions.create(**request)
            except Exception as exc:  # pragma: no cover - covered via tests with stubs
                last_error = exc
                should_retry = attempt < self._max_retries and _is_retryable(exc)
                if not should_retry:
                    break
                delay = self._retry_base_seconds * (2**attempt)
                logger.warning("Generation attempt %d failed (%s); retrying in %.2fs", attempt + 1, exc, delay)
                self._sleep(delay)

        detail = str(last_error) if last_error is not None else "unknown generation error"
        raise GenerationRequestError(
            model=self._settings.model,
            message=f"Generation request failed after {attempts} attempt(s): {detail}",
        ) from last_error
