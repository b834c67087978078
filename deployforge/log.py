import logging
import os

import colorlog

LOGGER_NAME = "deployforge"

logger = logging.getLogger(LOGGER_NAME)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def get_logger(name: str) -> logging.Logger:
    """Returns a child logger for one component."""
    return logger.getChild(name)


def setup_logging(level: str | None = None) -> None:
    env_level = os.getenv("DEPLOYFORGE_LOG_LEVEL", "")
    rejected = None
    if level is None and env_level:
        if env_level.upper() in LOG_LEVELS:
            level = env_level
        else:
            rejected = env_level
    logger.setLevel((level or "INFO").upper())

    # Prevent duplicate handlers when called more than once
    if not logger.handlers:
        logger.addHandler(_colored_handler())

    if rejected is not None:
        logger.warning(f"Ignoring invalid DEPLOYFORGE_LOG_LEVEL={rejected!r}, using INFO")


def _colored_handler() -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s[%(asctime)s] [%(levelname)-8s] [%(name)s] %(message)s",
            datefmt="%H:%M:%S",
            reset=True,
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
    )
    return handler
