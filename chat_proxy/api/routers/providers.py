from fastapi import APIRouter, Request

from chat_proxy.api.schemas.chat import ProviderInfo, ProvidersResponse
from chat_proxy.dependency_injection import get_container
from chat_proxy.providers.registry import ProviderRegistry

router = APIRouter(tags=["providers"])


@router.get("/providers", summary="List enabled upstream providers")
def list_providers(request: Request) -> ProvidersResponse:
    registry = get_container(request).resolve(ProviderRegistry)
    return ProvidersResponse(
        providers=[
            ProviderInfo(id=binding.config.name, kind=binding.config.kind, model=binding.config.upstream_model)
            for binding in registry.bindings()
        ]
    )
