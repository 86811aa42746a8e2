from typing import Literal

from pydantic import BaseModel, Field

from chat_proxy.providers.base import Message


class ChatMessageIn(BaseModel):
    role: Literal["user", "assistant", "system"] = Field(..., description="Author of the turn")
    content: str = Field(..., description="Turn text; may be empty but not null")

    def to_message(self) -> Message:
        return Message(role=self.role, content=self.content)


class ChatRequest(BaseModel):
    messages: list[ChatMessageIn] = Field(
        ...,
        min_length=1,
        description="Full conversation in chronological order; resubmitted on every call",
    )
    provider: str | None = Field(
        default=None,
        description="Optional echo of the path provider; must match it when present",
    )
    max_tokens: int | None = Field(default=None, ge=1, le=32000)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)

    def to_conversation(self) -> list[Message]:
        return [message.to_message() for message in self.messages]


class ProviderInfo(BaseModel):
    id: str
    kind: str
    model: str


class ProvidersResponse(BaseModel):
    providers: list[ProviderInfo]
