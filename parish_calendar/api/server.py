"""aiohttp server for the parish_calendar JSON API."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Any, Optional

from aiohttp import web

from ..config_loader import Config
from ..core.http_client import close_all_clients
from ..core.store import JsonFileStore, RecordStore
from ..domain.parish_service import ParishService
from ..llm_client import GeminiClient
from ..logging_config import configure_logging
from ..sheets_client import SheetsClient
from .routes import SERVICE_KEY, error_middleware, register_api_routes

logger = logging.getLogger(__name__)


def build_service(config: Config, store: Optional[RecordStore] = None) -> ParishService:
    """Wire the store and remote clients described by ``config`` into a ParishService."""
    store = store if store is not None else JsonFileStore(config.store_path)
    sheets = SheetsClient(config.sheets_url, sync_tail_limit=config.sync_tail_limit)
    llm = GeminiClient(config.gemini_api_key, model=config.gemini_model)

    if not sheets.configured:
        logger.info("No spreadsheet web app configured; running local-only")
    if not llm.configured:
        logger.info("No language model API key configured; assistant replies use fallbacks")
    return ParishService(store, sheets=sheets, llm=llm, settings=config)


async def _close_clients(_app: web.Application) -> None:
    try:
        await close_all_clients()
    except Exception as e:
        logger.warning("Error cleaning up shared HTTP clients: %s", e)


def create_app(service: ParishService, config: Optional[Config] = None) -> web.Application:
    """Create the aiohttp application with all API routes registered."""
    app = web.Application(middlewares=[error_middleware])
    app[SERVICE_KEY] = service
    register_api_routes(app, service, config or Config())
    app.on_cleanup.append(_close_clients)
    logger.debug("Web application created")
    return app


async def _serve(config: Config, stop_event: Optional[asyncio.Event] = None) -> None:
    """Run the server until ``stop_event`` is set or SIGINT/SIGTERM arrives."""
    app = create_app(build_service(config), config)
    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host=config.server_bind, port=config.server_port)
    try:
        await site.start()
    except OSError:
        logger.exception(
            "Failed to start server on %s:%d", config.server_bind, config.server_port
        )
        await runner.cleanup()
        raise
    logger.info("Server started on %s:%d", config.server_bind, config.server_port)

    owns_signals = stop_event is None
    stop_event = stop_event or asyncio.Event()
    if owns_signals:
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)

    await stop_event.wait()
    logger.info("Stop event received, shutting down")
    await runner.cleanup()
    logger.info("Server shutdown complete")


def start_server(config: Any) -> None:
    """Start the asyncio event loop and HTTP server.

    Blocks until a SIGINT/SIGTERM is received.
    """
    log_level = str(getattr(config, "log_level", "") or "")
    configure_logging(debug_mode=log_level.upper() == "DEBUG", log_level=log_level)

    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
