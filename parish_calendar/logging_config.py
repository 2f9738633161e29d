"""
Central logging configuration for parish_calendar.

Keeps parish_calendar's own loggers at INFO (DEBUG on request) while
suppressing verbose debug output from third-party libraries.
"""

import logging
import os
from typing import Optional

TRUTHY_ENV_VALUES = ("1", "true", "yes", "on")
VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Third-party loggers that are too chatty at DEBUG
NOISY_LOGGERS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "icalendar": logging.INFO,
}


def configure_logging(
    debug_mode: bool = False,
    force_debug: Optional[bool] = None,
    log_level: Optional[str] = None,
) -> None:
    """
    Configure logging levels for parish_calendar.

    Args:
        debug_mode: Whether to enable debug logging for parish_calendar modules
        force_debug: Override debug mode setting (None to use env var detection)
        log_level: Configured root level name (ignored when debug is on)

    Environment Variables:
        PARISH_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        PARISH_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("PARISH_DEBUG", "").lower() in TRUTHY_ENV_VALUES
    env_log_level = os.getenv("PARISH_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    configured_level = str(log_level or "").upper()
    if not final_debug and configured_level in VALID_LEVELS:
        root_level = getattr(logging, configured_level)
    if env_log_level in VALID_LEVELS:
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    # Preserve the colorlog handler installed by parish_calendar._init_logging
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] %(levelname)s - %(name)s - %(message)s")
        )
        root_logger.addHandler(handler)

    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    logging.getLogger("parish_calendar").setLevel(logging.DEBUG if final_debug else logging.INFO)

    logging.getLogger(__name__).debug(
        "Logging configured: debug=%s, root=%s", final_debug, logging.getLevelName(root_level)
    )
