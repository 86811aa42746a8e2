from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence

from chat_proxy.core.errors import (
    ChatProxyError,
    ClientDisconnectedError,
    InvalidInputError,
    ProxyOverloadedError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from chat_proxy.providers.base import ROLES, CompletionOptions, Message, ProviderClientError
from chat_proxy.providers.registry import ProviderRegistry
from chat_proxy.services.chat_stream import StreamEvent, content_event, done_event, error_event

logger = logging.getLogger(__name__)


def validate_conversation(conversation: Sequence[Message]) -> tuple[Message, ...]:
    """Check turn shape before anything is sent upstream."""

    if not conversation:
        raise InvalidInputError("Conversation must contain at least one message")
    for index, message in enumerate(conversation):
        if not message.role or message.role not in ROLES:
            raise InvalidInputError(f"messages[{index}].role must be one of {', '.join(sorted(ROLES))}")
        if not isinstance(message.content, str):
            raise InvalidInputError(f"messages[{index}].content must be a string")
    return tuple(conversation)


def translate_upstream_error(exc: BaseException, *, provider: str, idle_timeout_seconds: float) -> ChatProxyError:
    if isinstance(exc, ChatProxyError):
        return exc
    if isinstance(exc, TimeoutError):
        return UpstreamTimeoutError(
            f"Provider '{provider}' produced no output within {idle_timeout_seconds:g}s"
        )
    if isinstance(exc, ProviderClientError):
        return UpstreamUnavailableError(
            f"Provider error provider={provider}: {exc.message}",
            upstream_status=exc.status_code,
        )
    return UpstreamUnavailableError(f"Unexpected provider error provider={provider}")


class ChatStream:
    """One primed upstream completion, relayed as stream events exactly once."""

    def __init__(
        self,
        *,
        provider: str,
        request_id: str,
        upstream: AsyncIterator[str],
        first_fragment: str | None,
        exhausted: bool,
        idle_timeout_seconds: float,
        release_slot: Callable[[], None],
        started_at: float,
    ) -> None:
        self.provider = provider
        self.request_id = request_id
        self._upstream = upstream
        self._first_fragment = first_fragment
        self._exhausted = exhausted
        self._idle_timeout_seconds = idle_timeout_seconds
        self._release_slot = release_slot
        self._started_at = started_at
        self._consumed = False
        self._closed = False

    async def _next_fragment(self) -> str:
        async with asyncio.timeout(self._idle_timeout_seconds):
            return await self._upstream.__anext__()

    async def events(self) -> AsyncIterator[StreamEvent]:
        if self._consumed:
            raise RuntimeError("chat stream already consumed")
        self._consumed = True

        fragments = 0
        outcome = "disconnected"
        try:
            if self._first_fragment:
                fragments += 1
                yield content_event(self._first_fragment)
            while not self._exhausted:
                try:
                    fragment = await self._next_fragment()
                except StopAsyncIteration:
                    break
                except Exception as exc:
                    error = translate_upstream_error(
                        exc,
                        provider=self.provider,
                        idle_timeout_seconds=self._idle_timeout_seconds,
                    )
                    logger.warning(
                        "chat stream upstream failure",
                        extra={"request_id": self.request_id, "provider": self.provider, "fragments": fragments},
                        exc_info=exc,
                    )
                    outcome = "error"
                    yield error_event(error.message)
                    return
                if not fragment:
                    continue
                fragments += 1
                yield content_event(fragment)
            outcome = "done"
            yield done_event()
        finally:
            await self.aclose()
            logger.info(
                "chat stream finished",
                extra={
                    "request_id": self.request_id,
                    "provider": self.provider,
                    "outcome": outcome,
                    "fragments": fragments,
                    "latency_ms": int((time.perf_counter() - self._started_at) * 1000),
                },
            )

    async def aclose(self) -> None:
        """Abort the upstream call and free the concurrency slot; safe to repeat."""

        if self._closed:
            return
        self._closed = True
        try:
            await self._upstream.aclose()
        finally:
            self._release_slot()


class ChatProxyService:
    """Validates chat requests and relays upstream completions as stream events."""

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        max_concurrent_streams: int = 32,
        idle_timeout_seconds: float = 30.0,
        slot_wait_seconds: float = 5.0,
        disconnect_poll_seconds: float = 0.25,
    ) -> None:
        self._registry = registry
        self._slots = asyncio.Semaphore(max_concurrent_streams)
        self._max_concurrent_streams = max_concurrent_streams
        self._idle_timeout_seconds = idle_timeout_seconds
        self._slot_wait_seconds = slot_wait_seconds
        self._disconnect_poll_seconds = disconnect_poll_seconds
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def _acquire_slot(self, *, provider: str, request_id: str) -> None:
        try:
            async with asyncio.timeout(self._slot_wait_seconds):
                await self._slots.acquire()
        except TimeoutError as exc:
            logger.warning(
                "chat proxy at capacity",
                extra={"request_id": request_id, "provider": provider, "limit": self._max_concurrent_streams},
            )
            raise ProxyOverloadedError("Too many concurrent chat streams, retry shortly") from exc
        self._in_flight += 1

    def _slot_releaser(self) -> Callable[[], None]:
        released = False

        def release() -> None:
            nonlocal released
            if released:
                return
            released = True
            self._in_flight -= 1
            self._slots.release()

        return release

    async def _prime(
        self,
        upstream: AsyncIterator[str],
        is_disconnected: Callable[[], Awaitable[bool]] | None,
    ) -> str:
        """Wait for the first fragment, giving up early if the caller leaves."""

        async def pull_first() -> str:
            return await upstream.__anext__()

        first = asyncio.create_task(pull_first())
        try:
            async with asyncio.timeout(self._idle_timeout_seconds):
                while not first.done():
                    await asyncio.wait({first}, timeout=self._disconnect_poll_seconds)
                    if not first.done() and is_disconnected is not None and await is_disconnected():
                        raise ClientDisconnectedError("caller disconnected before the first fragment")
            return first.result()
        finally:
            if not first.done():
                first.cancel()
                await asyncio.wait({first})

    async def open_stream(
        self,
        provider: str,
        conversation: Sequence[Message],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        request_id: str,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> ChatStream:
        """Validate, open the upstream call and wait for its first fragment.

        Any failure raised from here happens before the caller has seen a byte,
        so it can still be reported as a plain error response.
        """

        messages = validate_conversation(conversation)
        binding = self._registry.resolve(provider)
        options: CompletionOptions = binding.config.resolve_options(max_tokens=max_tokens, temperature=temperature)

        await self._acquire_slot(provider=provider, request_id=request_id)
        release_slot = self._slot_releaser()
        started_at = time.perf_counter()
        logger.info(
            "chat stream opening",
            extra={"request_id": request_id, "provider": provider, "messages": len(messages)},
        )

        upstream = binding.client.stream_chat_completion(messages, options)
        first_fragment: str | None = None
        exhausted = False
        try:
            first_fragment = await self._prime(upstream, is_disconnected)
        except StopAsyncIteration:
            exhausted = True
        except ClientDisconnectedError:
            await upstream.aclose()
            release_slot()
            logger.info(
                "caller disconnected before first fragment",
                extra={"request_id": request_id, "provider": provider},
            )
            raise
        except Exception as exc:
            await upstream.aclose()
            release_slot()
            error = translate_upstream_error(
                exc,
                provider=provider,
                idle_timeout_seconds=self._idle_timeout_seconds,
            )
            logger.warning(
                "chat stream failed before first fragment",
                extra={"request_id": request_id, "provider": provider},
                exc_info=exc,
            )
            raise error from exc
        except BaseException:
            await upstream.aclose()
            release_slot()
            raise

        logger.debug(
            "chat stream primed",
            extra={
                "request_id": request_id,
                "provider": provider,
                "first_fragment_ms": int((time.perf_counter() - started_at) * 1000),
            },
        )
        return ChatStream(
            provider=provider,
            request_id=request_id,
            upstream=upstream,
            first_fragment=first_fragment,
            exhausted=exhausted,
            idle_timeout_seconds=self._idle_timeout_seconds,
            release_slot=release_slot,
            started_at=started_at,
        )
