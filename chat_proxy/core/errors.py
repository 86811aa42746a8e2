from __future__ import annotations

from typing import Any


class ChatProxyError(Exception):
    """Base class for failures surfaced to proxy callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message}


class InvalidInputError(ChatProxyError):
    status_code = 400


class UnknownProviderError(ChatProxyError):
    status_code = 404

    def __init__(self, provider: str) -> None:
        super().__init__(f"Unknown provider '{provider}'")
        self.provider = provider


class ProxyOverloadedError(ChatProxyError):
    status_code = 503


class UpstreamUnavailableError(ChatProxyError):
    """Upstream provider failed (network, auth, rate limit, malformed payload)."""

    status_code = 500

    def __init__(self, message: str, *, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status

    def to_payload(self) -> dict[str, Any]:
        return {"error": "API request failed", "message": self.message}


class UpstreamTimeoutError(UpstreamUnavailableError):
    """No upstream progress within the configured idle window."""


class ClientDisconnectedError(ChatProxyError):
    """Caller went away; nothing is reported back, the upstream call is dropped."""

    status_code = 499
