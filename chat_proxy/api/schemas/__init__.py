from chat_proxy.api.schemas.chat import ChatMessageIn, ChatRequest, ProviderInfo, ProvidersResponse

__all__ = ["ChatMessageIn", "ChatRequest", "ProviderInfo", "ProvidersResponse"]
