"""Service layer for the chat proxy."""

from chat_proxy.services.chat_proxy import ChatProxyService, ChatStream
from chat_proxy.services.chat_stream import StreamEvent, encode_sse_event

__all__ = ["ChatProxyService", "ChatStream", "StreamEvent", "encode_sse_event"]
