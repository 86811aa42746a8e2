import uvicorn

from chat_proxy.core.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "chat_proxy.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.effective_log_level.lower(),
    )


if __name__ == "__main__":
    main()
