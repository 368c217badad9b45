from __future__ import annotations

from types import SimpleNamespace

import pytest

from hirebit.config import Settings
from hirebit.llm.providers import LLMProvider, ProviderConfig, ProviderPool, parse_json


class DummyAPIError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class FakeResponsePayload:
    def __init__(self, *, output_text: str = "", raw: dict | None = None):
        self.output_text = output_text
        self._raw = raw or {}

    def model_dump(self) -> dict:
        return self._raw


class FakeChatPayload:
    def __init__(self, *, content: str | None, raw: dict | None = None):
        self.choices = [SimpleNamespace(message=SimpleNamespace(content=content))]
        self._raw = raw or {}

    def model_dump(self) -> dict:
        return self._raw


class FakeEndpoint:
    def __init__(self, fn):
        self._fn = fn
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return self._fn(**kwargs)


class FakeClient:
    def __init__(self, *, responses_fn, chat_fn):
        self.responses = FakeEndpoint(responses_fn)
        self.chat = SimpleNamespace(completions=FakeEndpoint(chat_fn))


def _provider(fake_client: FakeClient) -> LLMProvider:
    return LLMProvider(
        ProviderConfig(name="openai", base_url="http://localhost:9999/v1", api_key="dummy", timeout_sec=5),
        client=fake_client,
    )


def _unused(**kwargs):
    raise AssertionError("unexpected call")


def test_complete_text_uses_responses_with_instructions() -> None:
    client = FakeClient(
        responses_fn=lambda **kwargs: FakeResponsePayload(output_text="RESP_OK", raw={"id": "resp_1"}),
        chat_fn=_unused,
    )
    result = _provider(client).complete_text(model="gpt-4o", prompt="ping", system="be brief")

    assert result.content == "RESP_OK"
    assert result.raw["api_path"] == "responses"
    assert client.responses.calls[0]["instructions"] == "be brief"


def test_complete_text_falls_back_to_chat_on_responses_not_found() -> None:
    def responses_fn(**kwargs):
        raise DummyAPIError("Not found", status_code=404)

    client = FakeClient(
        responses_fn=responses_fn,
        chat_fn=lambda **kwargs: FakeChatPayload(content="CHAT_OK", raw={"id": "chat_1"}),
    )
    result = _provider(client).complete_text(model="gpt-4o", prompt="ping", system="be brief")

    assert result.content == "CHAT_OK"
    assert result.raw["api_path"] == "chat_completions"
    messages = client.chat.completions.calls[0]["messages"]
    assert messages[0] == {"role": "system", "content": "be brief"}
    assert messages[1] == {"role": "user", "content": "ping"}


def test_complete_text_propagates_non_404_errors() -> None:
    def responses_fn(**kwargs):
        raise DummyAPIError("rate limited", status_code=429)

    client = FakeClient(responses_fn=responses_fn, chat_fn=_unused)
    with pytest.raises(DummyAPIError, match="rate limited"):
        _provider(client).complete_text(model="gpt-4o", prompt="ping")


def test_complete_text_raises_when_fallback_path_also_fails() -> None:
    def responses_fn(**kwargs):
        raise DummyAPIError("Not found", status_code=404)

    def chat_fn(**kwargs):
        raise RuntimeError("chat path failed")

    client = FakeClient(responses_fn=responses_fn, chat_fn=chat_fn)
    with pytest.raises(RuntimeError, match="chat path failed"):
        _provider(client).complete_text(model="gpt-4o", prompt="ping")


def test_complete_json_parses_chat_fallback_payload() -> None:
    def responses_fn(**kwargs):
        raise DummyAPIError("Not found", status_code=404)

    client = FakeClient(
        responses_fn=responses_fn,
        chat_fn=lambda **kwargs: FakeChatPayload(content='{"score": 91, "status": "SHORTLIST"}'),
    )
    payload = _provider(client).complete_json(model="gpt-4o", prompt="json please")

    assert payload == {"score": 91, "status": "SHORTLIST"}


def test_chat_fallback_tolerates_empty_content() -> None:
    def responses_fn(**kwargs):
        raise DummyAPIError("Not found", status_code=404)

    client = FakeClient(responses_fn=responses_fn, chat_fn=lambda **kwargs: FakeChatPayload(content=None))
    assert _provider(client).complete_text(model="gpt-4o", prompt="ping").content == ""


def test_parse_json_handles_fences_and_prose() -> None:
    assert parse_json('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json('Sure! Here it is: {"a": 2} Hope that helps.') == {"a": 2}
    assert parse_json("[1, 2]") == {}
    assert parse_json("not json") == {}
    assert parse_json("") == {}


def test_provider_pool_orders_by_preference() -> None:
    both = Settings(openai_api_key="sk-test", local_llm_enabled=True, llm_scoring_provider="local")
    assert [provider.config.name for provider in ProviderPool(both).ordered()] == ["local", "openai"]

    openai_only = Settings(openai_api_key="sk-test", local_llm_enabled=False)
    assert [provider.config.name for provider in ProviderPool(openai_only).ordered()] == ["openai"]

    assert ProviderPool(Settings(openai_api_key="", local_llm_enabled=False)).ordered() == []
