from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from chat_proxy.providers.base import CompletionOptions, Message, ProviderClient, ProviderClientError

ANTHROPIC_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"


def _object_field(event: dict[str, Any], key: str) -> dict[str, Any]:
    value = event.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ProviderClientError(status_code=502, message=f"malformed upstream payload: {key} is not an object")
    return value


class AnthropicProviderClient(ProviderClient):
    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        timeout_seconds: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._model = model
        self._client = client or httpx.AsyncClient(
            base_url=ANTHROPIC_BASE_URL,
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            timeout=timeout_seconds,
        )

    def _to_messages_payload(self, conversation: Sequence[Message], options: CompletionOptions) -> dict[str, Any]:
        # The Messages API takes system turns as a top-level field.
        system = "\n\n".join(message.content for message in conversation if message.role == "system")
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [message.to_payload() for message in conversation if message.role != "system"],
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "stream": True,
        }
        if system:
            payload["system"] = system
        return payload

    async def stream_chat_completion(
        self, conversation: Sequence[Message], options: CompletionOptions
    ) -> AsyncIterator[str]:
        upstream_payload = self._to_messages_payload(conversation, options)
        try:
            async with self._client.stream("POST", "/v1/messages", json=upstream_payload) as response:
                if response.is_error:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    status = response.status_code
                    mapped_status = 502 if status >= 500 else status
                    raise ProviderClientError(status_code=mapped_status, message=f"HTTP {status}: {body[:400]}")
                async for line in response.aiter_lines():
                    if not line or not line.startswith("data:"):
                        continue
                    event = json.loads(line.removeprefix("data:").strip())
                    if not isinstance(event, dict):
                        raise ProviderClientError(status_code=502, message="malformed upstream payload: expected an object")
                    event_type = event.get("type")
                    if event_type == "content_block_delta":
                        delta = _object_field(event, "delta")
                        text = delta.get("text", "")
                        if text:
                            yield str(text)
                    elif event_type == "message_stop":
                        return
                    elif event_type == "error":
                        detail = _object_field(event, "error").get("message", "unknown upstream error")
                        raise ProviderClientError(status_code=502, message=str(detail))
        except httpx.TimeoutException as exc:
            raise ProviderClientError(status_code=504, message=str(exc) or "upstream timeout") from exc
        except httpx.HTTPError as exc:
            raise ProviderClientError(status_code=502, message=str(exc) or exc.__class__.__name__) from exc
        except json.JSONDecodeError as exc:
            raise ProviderClientError(status_code=502, message=f"malformed upstream payload: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()
