"""
Application logging configuration.

Call ``configure_logging()`` once at application startup. Client
libraries that log every HTTP request are capped at WARNING unless the
service itself runs at DEBUG.
"""
import logging

CHATTY_LOGGERS = ("httpx", "httpcore", "LiteLLM", "litellm")


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger with a simple format.

    :param level: Logging level (e.g., 'DEBUG', 'INFO').
    """
    resolved = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if resolved > logging.DEBUG:
        for name in CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
