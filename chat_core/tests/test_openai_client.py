import pytest

from chat_core.domain.exceptions import ApiError, RateLimitError, ValidationError
from chat_core.domain.models import ChatMessage, ImagePart, ProviderOptions, TextPart
from chat_core.providers.openai_client import OpenAIClient

from conftest import FakeResponse, make_client_cls


OPTIONS = ProviderOptions(model="gpt-4o-mini", base_url="https://openai.test/v1", api_key="sk-test", timeout=1.0)


def test_stream_parses_sse_frames(monkeypatch):
    captured = {}
    lines = [
        ": keep-alive",
        'data: {"choices":[{"delta":{"role":"assistant"}}]}',
        'data: {"choices":[{"delta":{"content":"Hel"}}]}',
        "",
        "data: {broken",
        'data: {"choices":[{"delta":{"content":"lo"}}]}',
        "data: [DONE]",
        'data: {"choices":[{"delta":{"content":"after done"}}]}',
    ]
    monkeypatch.setattr("httpx.Client", make_client_cls(FakeResponse(lines=lines), captured))
    chunks = []
    OpenAIClient().stream_complete([ChatMessage(role="user", content="hi")], chunks.append, OPTIONS)
    assert chunks == ["Hel", "lo"]
    assert captured["url"] == "https://openai.test/v1/chat/completions"
    assert captured["payload"]["stream"] is True


def test_stream_error_frame_raises(monkeypatch):
    lines = ['data: {"error": {"message": "context length exceeded"}}']
    monkeypatch.setattr("httpx.Client", make_client_cls(FakeResponse(lines=lines)))
    with pytest.raises(ApiError) as exc:
        OpenAIClient().stream_complete([ChatMessage(role="user", content="hi")], lambda _: None, OPTIONS)
    assert exc.value.code == "STREAM_ERROR"
    assert "context length" in exc.value.message


def test_multipart_content_passes_through_as_data_url(monkeypatch):
    captured = {}
    resp = FakeResponse(body={"choices": [{"message": {"content": "a cat"}}]})
    monkeypatch.setattr("httpx.Client", make_client_cls(resp, captured))
    message = ChatMessage(role="user", content=[TextPart("what is this?"), ImagePart("aGVsbG8=", "image/jpeg")])
    assert OpenAIClient().complete([message], OPTIONS) == "a cat"
    assert captured["payload"]["messages"][0]["content"] == [
        {"type": "text", "text": "what is this?"},
        {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,aGVsbG8="}},
    ]


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr("httpx.Client", make_client_cls(FakeResponse(body={})))
    options = ProviderOptions(model="gpt-4o-mini", base_url="https://openai.test/v1", api_key=None)
    with pytest.raises(ValidationError) as exc:
        OpenAIClient().complete([ChatMessage(role="user", content="hi")], options)
    assert exc.value.code == "MISSING_API_KEY"


def test_rate_limit_is_not_retried(monkeypatch):
    body = {"error": {"message": "Rate limit reached"}}
    monkeypatch.setattr("httpx.Client", make_client_cls(FakeResponse(status_code=429, body=body)))
    with pytest.raises(RateLimitError) as exc:
        OpenAIClient().complete([ChatMessage(role="user", content="hi")], OPTIONS)
    assert exc.value.http_status == 429
    assert exc.value.message == "API returned status 429: Rate limit reached"


def test_unexpected_body(monkeypatch):
    monkeypatch.setattr("httpx.Client", make_client_cls(FakeResponse(body={"choices": []})))
    with pytest.raises(ApiError) as exc:
        OpenAIClient().complete([ChatMessage(role="user", content="hi")], OPTIONS)
    assert exc.value.code == "UNEXPECTED_RESPONSE"


def test_list_models_and_liveness(monkeypatch):
    body = {"data": [{"id": "gpt-4o"}, {"id": "gpt-4o-mini"}, {"object": "model"}]}
    resp = FakeResponse(body=body, headers={"openai-version": "2020-10-01"})
    monkeypatch.setattr("httpx.Client", make_client_cls(resp))
    assert OpenAIClient().list_models(OPTIONS) == ["gpt-4o", "gpt-4o-mini"]
    assert OpenAIClient().check_liveness(OPTIONS) == "2020-10-01"


def test_stream_skips_frames_with_unexpected_shape(monkeypatch):
    lines = [
        'data: {"choices":[{"delta":{"content":"Hel"}}]}',
        'data: {"choices":["garbage"]}',
        'data: {"choices":[{"delta":"x"}]}',
        'data: {"choices":5}',
        'data: {"choices":[],"usage":{"total_tokens":3}}',
        'data: {"choices":[{"delta":{"content":"lo"}}]}',
        "data: [DONE]",
    ]
    monkeypatch.setattr("httpx.Client", make_client_cls(FakeResponse(lines=lines)))
    chunks = []
    OpenAIClient().stream_complete([ChatMessage(role="user", content="hi")], chunks.append, OPTIONS)
    assert chunks == ["Hel", "lo"]
