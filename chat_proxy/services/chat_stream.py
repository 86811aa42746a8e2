from __future__ import annotations

import json
from typing import Literal, TypedDict


class ContentEvent(TypedDict):
    content: str


class DoneEvent(TypedDict):
    done: Literal[True]


class ErrorEvent(TypedDict):
    error: str


StreamEvent = ContentEvent | DoneEvent | ErrorEvent

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def content_event(text: str) -> ContentEvent:
    return {"content": text}


def done_event() -> DoneEvent:
    return {"done": True}


def error_event(message: str) -> ErrorEvent:
    return {"error": message}


def encode_sse_event(event: StreamEvent) -> str:
    return f"data: {json.dumps(event, separators=(',', ':'))}\n\n"
