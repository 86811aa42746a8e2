"""Upstream completion provider adapters."""

from chat_proxy.providers.base import CompletionOptions, Message, ProviderClient, ProviderClientError

__all__ = ["CompletionOptions", "Message", "ProviderClient", "ProviderClientError"]
