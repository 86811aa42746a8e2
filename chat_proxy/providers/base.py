from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Literal

Role = Literal["user", "assistant", "system"]
ROLES: frozenset[str] = frozenset({"user", "assistant", "system"})


@dataclass(frozen=True)
class Message:
    """A single conversation turn."""

    role: Role
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class CompletionOptions:
    max_tokens: int
    temperature: float


@dataclass
class ProviderClientError(Exception):
    status_code: int
    message: str

    def __str__(self) -> str:
        return self.message


class ProviderClient(ABC):
    """Adapter around one upstream streaming completion API."""

    @abstractmethod
    async def stream_chat_completion(
        self, conversation: Sequence[Message], options: CompletionOptions
    ) -> AsyncIterator[str]:
        """Yield completion text fragments in the order the upstream produces them.

        Failures are raised as ``ProviderClientError``. Closing the iterator early
        must abort the upstream call.
        """
        raise NotImplementedError

    @abstractmethod
    async def aclose(self) -> None:
        raise NotImplementedError
