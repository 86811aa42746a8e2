from __future__ import annotations

import punq
from fastapi import Request

from chat_proxy.config import load_providers_config
from chat_proxy.core.settings import Settings
from chat_proxy.providers.registry import ProviderRegistry, build_provider_registry
from chat_proxy.services.chat_proxy import ChatProxyService


def build_container(settings: Settings, registry: ProviderRegistry | None = None) -> punq.Container:
    """Wire process-wide collaborators.

    The provider registry is built eagerly so missing credentials or a broken
    providers config stop the process at startup.
    """

    container = punq.Container()
    container.register(Settings, instance=settings)

    if registry is None:
        providers_config = load_providers_config(settings.providers_config_path)
        registry = build_provider_registry(settings, providers_config)
    container.register(ProviderRegistry, instance=registry)
    container.register(
        ChatProxyService,
        instance=ChatProxyService(
            registry,
            max_concurrent_streams=settings.max_concurrent_streams,
            idle_timeout_seconds=settings.stream_idle_timeout_seconds,
            slot_wait_seconds=settings.stream_slot_wait_seconds,
        ),
    )
    return container


def get_container(request: Request) -> punq.Container:
    return request.app.state.container
