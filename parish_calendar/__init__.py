"""parish_calendar - event calendar and content service for the East Hillfoots parish.

Expands recurring church events into dated occurrences, serves them over a
small JSON API and keeps parish records in sync with the shared spreadsheet.
"""

__version__ = "0.1.0"

from typing import Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Honors the PARISH_DEBUG environment variable (truthy values: "1", "true",
    "yes", "on"), which forces DEBUG verbosity.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("PARISH_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none are present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message (only the level is colorized)
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


def run_server(args: Optional[object] = None) -> None:
    """Start the parish_calendar HTTP API.

    Args:
        args: Optional command line namespace with ``config``, ``port`` and ``host``

    Loads configuration (file, .env, environment), applies command line
    overrides and blocks until the server is stopped.
    """
    import logging
    import os

    _init_logging(os.environ.get("PARISH_LOG_LEVEL"))

    from .api.server import start_server
    from .config_loader import load_config

    logger = logging.getLogger(__name__)

    cfg = load_config(getattr(args, "config", None))

    port = getattr(args, "port", None)
    if port is not None:
        cfg.server_port = int(port)
        logger.debug("Applied command line port override: %d", cfg.server_port)
    host = getattr(args, "host", None)
    if host:
        cfg.server_bind = host

    logging.getLogger().setLevel(getattr(logging, cfg.log_level.upper(), logging.INFO))
    logger.debug("Resolved configuration: %s", cfg.redacted())

    start_server(cfg)
