"""Logging for the data source adapter and its command line entry point."""

import logging
from typing import Any

from .settings import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
PACKAGE_LOGGER = "prom_datasource"


def configure_logging(extra_handlers: list[logging.Handler] | None = None) -> None:
    """Apply the configured level to the package logger.

    A console handler is installed on the root logger only when the host has
    not configured logging itself.
    """

    settings = get_settings()
    logging.basicConfig(format=LOG_FORMAT)
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(settings.log_level)

    for handler in extra_handlers or []:
        if handler not in package_logger.handlers:
            package_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


def log_structured(
    logger: logging.Logger, message: str, *, level: int = logging.INFO, **context: Any
) -> None:
    """Log ``message`` followed by ``key=value`` pairs, skipping unset values.

    Values containing spaces are quoted so PromQL expressions stay readable.
    """

    if not logger.isEnabledFor(level):
        return
    pairs = []
    for key, value in context.items():
        if value is None:
            continue
        text = str(value)
        if " " in text:
            text = f'"{text}"'
        pairs.append(f"{key}={text}")
    logger.log(level, "%s %s", message, " ".join(pairs))


__all__ = ["configure_logging", "get_logger", "log_structured"]
