"""Shared test doubles and fixtures for chat proxy tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence

import httpx
import pytest

from chat_proxy.config import ProviderConfig
from chat_proxy.core.settings import Settings
from chat_proxy.dependency_injection import build_container
from chat_proxy.main import create_app
from chat_proxy.providers.base import CompletionOptions, Message, ProviderClient, ProviderClientError
from chat_proxy.providers.registry import ProviderBinding, ProviderRegistry


class FakeProviderClient(ProviderClient):
    """Upstream stub yielding scripted fragments, with call and cancellation tracking."""

    def __init__(
        self,
        fragments: Sequence[str] = (),
        *,
        fail_after: int | None = None,
        failure_message: str = "upstream exploded",
        delays: Sequence[float] = (),
    ) -> None:
        self._fragments = list(fragments)
        self._fail_after = fail_after
        self._failure_message = failure_message
        self._delays = list(delays)
        self.calls: list[tuple[tuple[Message, ...], CompletionOptions]] = []
        self.produced = 0
        self.cancelled = False
        self.closed = False

    async def stream_chat_completion(
        self, conversation: Sequence[Message], options: CompletionOptions
    ) -> AsyncIterator[str]:
        self.calls.append((tuple(conversation), options))
        try:
            for index, fragment in enumerate(self._fragments):
                if self._fail_after == index:
                    raise ProviderClientError(status_code=502, message=self._failure_message)
                if index < len(self._delays) and self._delays[index]:
                    await asyncio.sleep(self._delays[index])
                self.produced += 1
                yield fragment
            if self._fail_after == len(self._fragments):
                raise ProviderClientError(status_code=502, message=self._failure_message)
        except (GeneratorExit, asyncio.CancelledError):
            self.cancelled = True
            raise

    async def aclose(self) -> None:
        self.closed = True


def build_test_registry(clients: dict[str, ProviderClient]) -> ProviderRegistry:
    return ProviderRegistry(
        {
            name: ProviderBinding(
                config=ProviderConfig(
                    name=name,
                    kind="openai",
                    credential="openai",
                    upstream_model=f"{name}-model",
                    defaults={"max_tokens": 1000, "temperature": 0.7},
                ),
                client=client,
            )
            for name, client in clients.items()
        }
    )


def build_test_app(clients: dict[str, ProviderClient], settings: Settings | None = None):
    settings = settings or Settings(APP_ENV="test")
    container = build_container(settings, registry=build_test_registry(clients))
    return create_app(settings=settings, container=container)


def build_test_client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


@pytest.fixture
def test_settings() -> Settings:
    return Settings(APP_ENV="test")


@pytest.fixture
def conversation() -> list[Message]:
    return [
        Message(role="system", content="You are terse."),
        Message(role="user", content="Say hello"),
    ]
