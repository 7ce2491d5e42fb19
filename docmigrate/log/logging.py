"""
Loguru configuration for the migration runner.

Import ``logger`` from here rather than from loguru directly so that the
sinks are configured once per process.
"""

import sys

from loguru import logger

from docmigrate.core.config import settings

PLAIN_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[app_name]}</cyan> | "
    "<level>{message}</level>"
)

_configured = False


def setup_logging(config: dict | None = None, force: bool = False) -> None:
    """
    Configure loguru sinks.

    Args:
        config: Logging configuration, defaults to ``settings.logging_config``.
        force: Reconfigure even if logging was already set up.
    """
    global _configured
    if _configured and not force:
        return

    config = config or settings.logging_config

    logger.remove()
    logger.configure(extra={"app_name": config["app_name"], "event_type": None})

    logger.add(
        sys.stderr,
        level=config["log_level"],
        format=PLAIN_FORMAT,
        serialize=config["json_logs"],
        backtrace=False,
        diagnose=False,
    )

    if config.get("log_file"):
        logger.add(
            config["log_file"],
            level=config["log_level"],
            serialize=True,
            rotation="10 MB",
            retention=config["log_retention"],
            enqueue=True,
        )

    _configured = True


setup_logging()

__all__ = ["logger", "setup_logging"]
