from __future__ import annotations

import json
from types import SimpleNamespace

import httpx
import pytest
from openai import APITimeoutError

from chat_proxy.providers.anthropic_client import AnthropicProviderClient
from chat_proxy.providers.base import CompletionOptions, Message, ProviderClientError
from chat_proxy.providers.openai_client import OpenAIProviderClient

OPTIONS = CompletionOptions(max_tokens=100, temperature=0.5)
CONVERSATION = [Message(role="system", content="Be brief."), Message(role="user", content="hi")]


def _chunk(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeOpenAIStream:
    def __init__(self, chunks: list[SimpleNamespace]) -> None:
        self._chunks = chunks
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            yield chunk

    async def close(self) -> None:
        self.closed = True


class FakeOpenAIClient:
    def __init__(self, chunks: list[SimpleNamespace] | None = None, error: Exception | None = None) -> None:
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._chat_create))
        self.stream = FakeOpenAIStream(chunks or [])
        self.error = error
        self.called_with: dict | None = None
        self.closed = False

    async def _chat_create(self, **kwargs):
        self.called_with = kwargs
        if self.error is not None:
            raise self.error
        return self.stream

    async def close(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_openai_provider_streams_delta_content() -> None:
    fake = FakeOpenAIClient(chunks=[_chunk("Hel"), _chunk(None), SimpleNamespace(choices=[]), _chunk("lo")])
    client = OpenAIProviderClient(api_key="x", model="gpt-3.5-turbo", client=fake)

    fragments = [fragment async for fragment in client.stream_chat_completion(CONVERSATION, OPTIONS)]

    assert fragments == ["Hel", "lo"]
    assert fake.called_with == {
        "model": "gpt-3.5-turbo",
        "messages": [{"role": "system", "content": "Be brief."}, {"role": "user", "content": "hi"}],
        "max_tokens": 100,
        "temperature": 0.5,
        "stream": True,
    }
    assert fake.stream.closed


@pytest.mark.asyncio
async def test_openai_provider_closes_stream_when_consumer_stops_early() -> None:
    fake = FakeOpenAIClient(chunks=[_chunk("a"), _chunk("b")])
    client = OpenAIProviderClient(api_key="x", model="gpt-3.5-turbo", client=fake)

    fragments = client.stream_chat_completion(CONVERSATION, OPTIONS)
    assert await fragments.__anext__() == "a"
    await fragments.aclose()

    assert fake.stream.closed


@pytest.mark.asyncio
async def test_openai_provider_maps_timeout_to_provider_error() -> None:
    fake = FakeOpenAIClient(error=APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")))
    client = OpenAIProviderClient(api_key="x", model="gpt-3.5-turbo", client=fake)

    with pytest.raises(ProviderClientError) as exc_info:
        _ = [fragment async for fragment in client.stream_chat_completion(CONVERSATION, OPTIONS)]

    assert exc_info.value.status_code == 504


def _anthropic_sse(*events: dict) -> str:
    return "".join(f"event: {event['type']}\ndata: {json.dumps(event)}\n\n" for event in events)


def _anthropic_client(handler) -> AnthropicProviderClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.anthropic.com")
    return AnthropicProviderClient(api_key="x", model="claude-test", client=http_client)


@pytest.mark.asyncio
async def test_anthropic_provider_streams_text_deltas_and_hoists_system_prompt() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["payload"] = json.loads(request.content)
        body = _anthropic_sse(
            {"type": "message_start", "message": {"id": "msg_1"}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hel"}},
            {"type": "ping"},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "lo"}},
            {"type": "message_stop"},
        )
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    client = _anthropic_client(handler)
    fragments = [fragment async for fragment in client.stream_chat_completion(CONVERSATION, OPTIONS)]

    assert fragments == ["Hel", "lo"]
    assert seen["path"] == "/v1/messages"
    assert seen["payload"]["system"] == "Be brief."
    assert seen["payload"]["messages"] == [{"role": "user", "content": "hi"}]
    assert seen["payload"]["stream"] is True
    assert seen["payload"]["max_tokens"] == 100


@pytest.mark.asyncio
async def test_anthropic_provider_raises_on_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"type": "error", "error": {"message": "invalid x-api-key"}})

    client = _anthropic_client(handler)

    with pytest.raises(ProviderClientError) as exc_info:
        _ = [fragment async for fragment in client.stream_chat_completion(CONVERSATION, OPTIONS)]

    assert exc_info.value.status_code == 401
    assert "invalid x-api-key" in exc_info.value.message


@pytest.mark.asyncio
async def test_anthropic_provider_raises_on_in_stream_error_event() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = _anthropic_sse(
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "X"}},
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
        )
        return httpx.Response(200, text=body)

    client = _anthropic_client(handler)
    fragments: list[str] = []

    with pytest.raises(ProviderClientError, match="Overloaded"):
        async for fragment in client.stream_chat_completion(CONVERSATION, OPTIONS):
            fragments.append(fragment)

    assert fragments == ["X"]


@pytest.mark.asyncio
async def test_anthropic_provider_reports_malformed_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="data: {not json\n\n")

    client = _anthropic_client(handler)

    with pytest.raises(ProviderClientError) as exc_info:
        _ = [fragment async for fragment in client.stream_chat_completion(CONVERSATION, OPTIONS)]

    assert exc_info.value.status_code == 502
    assert "malformed" in exc_info.value.message


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "data_line",
    [
        "data: []",
        'data: "ping"',
        'data: {"type": "content_block_delta", "index": 0, "delta": "oops"}',
        'data: {"type": "error", "error": ["overloaded"]}',
    ],
)
async def test_anthropic_provider_rejects_non_object_payloads(data_line: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=f"{data_line}\n\n")

    client = _anthropic_client(handler)

    with pytest.raises(ProviderClientError) as exc_info:
        _ = [fragment async for fragment in client.stream_chat_completion(CONVERSATION, OPTIONS)]

    assert exc_info.value.status_code == 502
    assert "malformed" in exc_info.value.message


@pytest.mark.asyncio
async def test_anthropic_provider_skips_null_delta() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = (
            'data: {"type": "content_block_delta", "index": 0, "delta": null}\n\n'
            'data: {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "ok"}}\n\n'
            'data: {"type": "message_stop"}\n\n'
        )
        return httpx.Response(200, text=body)

    client = _anthropic_client(handler)

    fragments = [fragment async for fragment in client.stream_chat_completion(CONVERSATION, OPTIONS)]

    assert fragments == ["ok"]
