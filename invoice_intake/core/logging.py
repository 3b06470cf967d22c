"""
Loguru configuration shared by the API and the CLI tools.

Structured context is passed as keyword arguments to the logger
(e.g. ``logger.info("PDF uploaded", url=url)``) and rendered through
``{extra}``, or emitted as JSON lines when LOG_SERIALIZE is set.
"""

import sys
from loguru import logger
from .config import settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
    "<level>{message}</level> {extra}"
)


def setup_logging(level: str | None = None, serialize: bool | None = None):
    """Replace loguru's default sink with one configured from settings"""
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
        serialize=settings.log_serialize if serialize is None else serialize,
        backtrace=False,
        diagnose=False,
    )
    logger.debug("Logging configured", app=settings.app_name, env=settings.app_env)
    return logger
