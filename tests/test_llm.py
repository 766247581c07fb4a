from __future__ import annotations

import asyncio
import io
import json
from urllib import error, request

import pytest

from forge_agent.app import llm
from forge_agent.app.llm import OpenAIChatCompletionsClient, build_model_client
from forge_agent.config.settings import Settings


class _FakeHTTPResponse:
    def __init__(self, payload: dict[str, object]) -> None:
        self._raw_body = json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._raw_body

    def __enter__(self) -> _FakeHTTPResponse:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        _ = (exc_type, exc, tb)
        return False


def test_send_posts_chat_completion_and_returns_content(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_urlopen(req: request.Request, timeout: float):
        captured["url"] = req.full_url
        captured["timeout"] = timeout
        captured["auth"] = req.get_header("Authorization")
        captured["body"] = json.loads(req.data.decode("utf-8"))
        return _FakeHTTPResponse({"choices": [{"message": {"content": '{"operations": []}'}}]})

    monkeypatch.setattr(llm.request, "urlopen", fake_urlopen)
    client = OpenAIChatCompletionsClient(base_url="http://llm.example/v1/", timeout_s=12.0)

    result = asyncio.run(client.send("Move the textures", "secret"))

    assert result == '{"operations": []}'
    assert captured["url"] == "http://llm.example/v1/chat/completions"
    assert captured["timeout"] == 12.0
    assert captured["auth"] == "Bearer secret"
    body = captured["body"]
    assert isinstance(body, dict)
    assert body["model"] == "gpt-4o"
    assert body["temperature"] == 0.7
    assert body["messages"][0]["role"] == "system"
    assert body["messages"][1] == {"role": "user", "content": "Move the textures"}


def test_send_returns_none_on_transport_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[int] = []

    def failing_urlopen(req: request.Request, timeout: float):
        calls.append(1)
        raise error.URLError("connection refused")

    monkeypatch.setattr(llm.request, "urlopen", failing_urlopen)
    client = OpenAIChatCompletionsClient(max_retries=2, backoff_s=0.0)

    assert asyncio.run(client.send("hello", "secret")) is None
    assert len(calls) == 3


def test_send_returns_none_without_choices(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(llm.request, "urlopen", lambda req, timeout: _FakeHTTPResponse({"choices": []}))

    assert asyncio.run(OpenAIChatCompletionsClient().send("hello", "secret")) is None


def test_segmented_content_is_joined(monkeypatch: pytest.MonkeyPatch) -> None:
    payload = {"choices": [{"message": {"content": [{"type": "text", "text": "Hello "}, {"text": "there"}]}}]}
    monkeypatch.setattr(llm.request, "urlopen", lambda req, timeout: _FakeHTTPResponse(payload))

    assert asyncio.run(OpenAIChatCompletionsClient().send("hi", "secret")) == "Hello there"


def test_build_model_client_uses_settings() -> None:
    settings = Settings(_env_file=None, llm_model="gpt-4o-mini", llm_temperature=0.2, llm_max_retries=1)

    client = build_model_client(settings)

    assert isinstance(client, OpenAIChatCompletionsClient)
    assert client.model == "gpt-4o-mini"
    assert client.temperature == 0.2
    assert client.max_retries == 1


def test_build_model_client_rejects_unknown_provider() -> None:
    with pytest.raises(ValueError, match="Unsupported LLM provider"):
        build_model_client(Settings(_env_file=None, llm_provider="carrier-pigeon"))


def test_api_key_falls_back_to_openai_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FORGE_AGENT_OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "from-env")

    assert Settings(_env_file=None).resolved_openai_api_key() == "from-env"


def _http_error(code: int) -> error.HTTPError:
    return error.HTTPError(
        "http://llm.example/v1/chat/completions",
        code,
        "request failed",
        hdrs=None,
        fp=io.BytesIO(b'{"error": {"message": "nope"}}'),
    )


def test_client_errors_are_not_retried(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[int] = []

    def unauthorized(req: request.Request, timeout: float):
        calls.append(1)
        raise _http_error(401)

    monkeypatch.setattr(llm.request, "urlopen", unauthorized)
    client = OpenAIChatCompletionsClient(max_retries=3, backoff_s=0.0)

    assert asyncio.run(client.send("hello", "bad-key")) is None
    assert len(calls) == 1


def test_server_errors_are_retried_until_success(monkeypatch: pytest.MonkeyPatch) -> None:
    outcomes: list[object] = [
        _http_error(503),
        _FakeHTTPResponse({"choices": [{"message": {"content": "recovered"}}]}),
    ]

    def flaky(req: request.Request, timeout: float):
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(llm.request, "urlopen", flaky)
    client = OpenAIChatCompletionsClient(max_retries=1, backoff_s=0.0)

    assert asyncio.run(client.send("hello", "secret")) == "recovered"
    assert outcomes == []


def test_blank_content_is_reported_as_no_data(monkeypatch: pytest.MonkeyPatch) -> None:
    payload = {"choices": [{"message": {"content": "   "}}]}
    monkeypatch.setattr(llm.request, "urlopen", lambda req, timeout: _FakeHTTPResponse(payload))

    assert asyncio.run(OpenAIChatCompletionsClient().send("hello", "secret")) is None
