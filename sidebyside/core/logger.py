# sidebyside/core/logger.py
from loguru import logger
import sys
import os

from sidebyside.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"

# file name -> minimum level
FILE_SINKS = {
    "sidebyside.log": "DEBUG",
    "error.log": "ERROR",
}


def configure_logging(log_dir: str, debug: bool = False) -> None:
    """Console plus rotating files under log_dir"""
    os.makedirs(log_dir, exist_ok=True)

    logger.remove()
    logger.add(sys.stdout, colorize=True, format=CONSOLE_FORMAT, level="DEBUG" if debug else "INFO")

    for filename, level in FILE_SINKS.items():
        logger.add(
            os.path.join(log_dir, filename),
            rotation="10 MB",
            retention="30 days",
            compression="zip",
            format=FILE_FORMAT,
            level=level,
        )


configure_logging(settings.log_dir, settings.debug)
