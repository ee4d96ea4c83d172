from __future__ import annotations

from dataclasses import dataclass
from types import SimpleNamespace

import pytest

from studyguide.config import GenerationSettings
from studyguide.extraction.client import GenerationRequestError, OpenAICompletionClient


def _response(content: object) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@dataclass
class _HttpError(Exception):
    status_code: int
    detail: str

    def __str__(self) -> str:
        return self.detail


class _FakeCompletionsAPI:
    def __init__(self, responses: list[object]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, object]] = []

    def create(self, **kwargs: object) -> object:
        self.calls.append(kwargs)
        if not self._responses:
            raise RuntimeError("No fake response configured")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class _FakeClient:
    def __init__(self, responses: list[object]) -> None:
        self.chat = SimpleNamespace(completions=_FakeCompletionsAPI(responses))


def _settings() -> GenerationSettings:
    return GenerationSettings(api_key="sk-test", model="gpt-4o-mini", base_url="https://api.openai.com/v1")


def test_send_returns_text_and_requests_json_mode() -> None:
    client = _FakeClient([_response('  {"slides": []}  ')])
    service = OpenAICompletionClient(_settings(), client=client)

    text = service.send("Extract slides", 2048, True)

    assert text == '{"slides": []}'
    call = client.chat.completions.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["max_tokens"] == 2048
    assert call["response_format"] == {"type": "json_object"}
    assert call["messages"][-1] == {"role": "user", "content": "Extract slides"}


def test_send_without_json_mode_omits_response_format() -> None:
    client = _FakeClient([_response("plain text")])
    service = OpenAICompletionClient(_settings(), client=client)

    assert service.send("Summarize", 100, False) == "plain text"
    assert "response_format" not in client.chat.completions.calls[0]


def test_send_joins_content_parts() -> None:
    client = _FakeClient([_response([{"type": "text", "text": "{\"a\":"}, {"type": "text", "text": " 1}"}])])
    service = OpenAICompletionClient(_settings(), client=client)

    assert service.send("prompt", 10, True) == '{"a": 1}'


def test_send_retries_on_transient_error_then_succeeds() -> None:
    delays: list[float] = []
    client = _FakeClient(
        [
            _HttpError(status_code=429, detail="rate limited"),
            _HttpError(status_code=503, detail="unavailable"),
            _response("ok"),
        ]
    )
    service = OpenAICompletionClient(
        _settings(),
        client=client,
        max_retries=2,
        retry_base_seconds=0.5,
        sleep=delays.append,
    )

    assert service.send("prompt", 10, False) == "ok"
    assert delays == [0.5, 1.0]
    assert len(client.chat.completions.calls) == 3


def test_send_does_not_retry_terminal_errors() -> None:
    delays: list[float] = []
    client = _FakeClient([_HttpError(status_code=401, detail="bad key")])
    service = OpenAICompletionClient(_settings(), client=client, max_retries=3, sleep=delays.append)

    with pytest.raises(GenerationRequestError, match="bad key"):
        service.send("prompt", 10, False)

    assert delays == []
    assert len(client.chat.completions.calls) == 1


def test_send_raises_on_empty_response_text() -> None:
    service = OpenAICompletionClient(_settings(), client=_FakeClient([_response("   ")]))

    with pytest.raises(GenerationRequestError, match="empty text"):
        service.send("prompt", 10, False)


def test_send_validates_arguments() -> None:
    service = OpenAICompletionClient(_settings(), client=_FakeClient([]))

    with pytest.raises(ValueError, match="prompt"):
        service.send("   ", 10, False)
    with pytest.raises(ValueError, match="max_output_tokens"):
        service.send("prompt", 0, False)
