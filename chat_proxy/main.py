from contextlib import asynccontextmanager
import logging

import punq
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from chat_proxy.api.router import api_router
from chat_proxy.core.errors import ChatProxyError
from chat_proxy.core.logging import configure_logging
from chat_proxy.core.settings import Settings, get_settings
from chat_proxy.dependency_injection import build_container
from chat_proxy.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request body"


async def _chat_proxy_error_handler(request: Request, exc: ChatProxyError) -> JSONResponse:
    logger.info(
        "request rejected",
        extra={"path": request.url.path, "status_code": exc.status_code, "error_type": type(exc).__name__},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = _format_validation_errors(exc)
    logger.info("request validation failed", extra={"path": request.url.path, "detail": message})
    return JSONResponse(status_code=400, content={"error": message})


def create_app(settings: Settings | None = None, container: punq.Container | None = None) -> FastAPI:
    """Build the proxy application; raises if configured providers lack credentials."""

    settings = settings or get_settings()
    configure_logging(settings.effective_log_level)
    container = container or build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("starting chat proxy", extra={"app_env": settings.app_env})
        try:
            yield
        finally:
            await container.resolve(ProviderRegistry).aclose()
            logger.info("chat proxy shutdown complete")

    app = FastAPI(
        title="Chat Proxy",
        version="0.1.0",
        docs_url="/docs" if settings.enable_swagger else None,
        redoc_url="/redoc" if settings.enable_swagger else None,
        openapi_url="/openapi.json" if settings.enable_swagger else None,
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["x-request-id"],
    )
    app.add_exception_handler(ChatProxyError, _chat_proxy_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(api_router, prefix="/api")

    if settings.static_dir:
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")
        logger.info("serving static files", extra={"static_dir": settings.static_dir})

    return app
