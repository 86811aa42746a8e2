from collections.abc import AsyncIterator
from contextlib import aclosing
import logging
import uuid

from fastapi import APIRouter, Header, Request
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from chat_proxy.api.schemas.chat import ChatRequest
from chat_proxy.core.errors import InvalidInputError
from chat_proxy.dependency_injection import get_container
from chat_proxy.services.chat_proxy import ChatProxyService, ChatStream
from chat_proxy.services.chat_stream import SSE_HEADERS, encode_sse_event

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/chat", tags=["chat"])


async def _sse_stream(stream: ChatStream) -> AsyncIterator[str]:
    async with aclosing(stream.events()) as events:
        async for event in events:
            yield encode_sse_event(event)


class ChatStreamResponse(StreamingResponse):
    """SSE response that closes its chat stream however the send loop ends.

    Starlette may stop iterating the body on a client disconnect without
    closing it, so the frames generator and the upstream call are closed here.
    """

    media_type = "text/event-stream"

    def __init__(self, stream: ChatStream, *, headers: dict[str, str] | None = None) -> None:
        self._chat_stream = stream
        self._frames = _sse_stream(stream)
        super().__init__(self._frames, media_type=self.media_type, headers=headers)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self._frames.aclose()
            await self._chat_stream.aclose()


@router.post(
    "/{provider}",
    summary="Stream a chat completion as server-sent events",
    description="Relays upstream completion fragments as `data: {...}` frames, ending with a done or error frame.",
)
async def chat(
    provider: str,
    payload: ChatRequest,
    request: Request,
    x_request_id: str | None = Header(default=None),
) -> StreamingResponse:
    request_id = x_request_id or str(uuid.uuid4())
    if payload.provider is not None and payload.provider != provider:
        raise InvalidInputError(f"Body provider '{payload.provider}' does not match path provider '{provider}'")

    logger.info(
        "chat request",
        extra={"request_id": request_id, "provider": provider, "messages": len(payload.messages)},
    )
    service = get_container(request).resolve(ChatProxyService)
    stream = await service.open_stream(
        provider,
        payload.to_conversation(),
        max_tokens=payload.max_tokens,
        temperature=payload.temperature,
        request_id=request_id,
        is_disconnected=request.is_disconnected,
    )

    return ChatStreamResponse(stream, headers={**SSE_HEADERS, "x-request-id": request_id})
