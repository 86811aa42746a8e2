from fastapi import APIRouter

from chat_proxy.api.routers.chat import router as chat_router
from chat_proxy.api.routers.health import router as health_router
from chat_proxy.api.routers.providers import router as providers_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(chat_router)
api_router.include_router(providers_router)
