from __future__ import annotations

import logging
from dataclasses import dataclass

from chat_proxy.config import ProviderConfig, ProvidersConfig
from chat_proxy.core.errors import UnknownProviderError
from chat_proxy.core.settings import Settings
from chat_proxy.providers.anthropic_client import AnthropicProviderClient
from chat_proxy.providers.base import ProviderClient
from chat_proxy.providers.openai_client import OpenAIProviderClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderBinding:
    config: ProviderConfig
    client: ProviderClient


class ProviderRegistry:
    """Maps provider selector tokens to configured upstream clients."""

    def __init__(self, bindings: dict[str, ProviderBinding]) -> None:
        self._bindings = dict(bindings)

    def resolve(self, provider: str) -> ProviderBinding:
        binding = self._bindings.get(provider)
        if binding is None:
            raise UnknownProviderError(provider)
        return binding

    def names(self) -> list[str]:
        return list(self._bindings)

    def bindings(self) -> list[ProviderBinding]:
        return list(self._bindings.values())

    async def aclose(self) -> None:
        for name, binding in self._bindings.items():
            await binding.client.aclose()
            logger.debug("provider client closed", extra={"provider": name})


def _build_client(config: ProviderConfig, api_key: str, timeout_seconds: float) -> ProviderClient:
    if config.kind == "anthropic":
        return AnthropicProviderClient(api_key, config.upstream_model, timeout_seconds=timeout_seconds)
    return OpenAIProviderClient(
        api_key,
        config.upstream_model,
        base_url=config.base_url,
        timeout_seconds=timeout_seconds,
    )


def build_provider_registry(settings: Settings, providers_config: ProvidersConfig) -> ProviderRegistry:
    """Create clients for every enabled provider, failing fast on missing credentials."""

    enabled = settings.enabled_provider_names
    if not enabled:
        raise ValueError("CHAT_PROXY_ENABLED_PROVIDERS must name at least one provider")

    bindings: dict[str, ProviderBinding] = {}
    for name in enabled:
        config = providers_config.providers.get(name)
        if config is None:
            raise ValueError(f"enabled provider '{name}' is not defined in the providers config")
        api_key = settings.credential(config.credential)
        if not api_key:
            raise ValueError(f"{config.credential.upper()}_API_KEY required for enabled provider '{name}'")
        bindings[name] = ProviderBinding(
            config=config,
            client=_build_client(config, api_key, settings.provider_timeout_seconds),
        )
        logger.info(
            "provider enabled",
            extra={"provider": name, "kind": config.kind, "upstream_model": config.upstream_model},
        )
    return ProviderRegistry(bindings)
