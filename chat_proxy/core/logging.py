import logging

# Client libraries that log one line per upstream request at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore", "openai")


def configure_logging(log_level: str) -> None:
    """Configure process-wide logging for the proxy service."""

    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
