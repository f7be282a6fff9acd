"""API server: runs uvicorn inside the existing asyncio event loop."""

from __future__ import annotations

import asyncio

import uvicorn
from fastapi import FastAPI
from loguru import logger


async def run_api_server(app: FastAPI, port: int, stop: asyncio.Event) -> None:
    """Serve ``app`` until the shutdown event is set.

    Uses ``uvicorn.Server.serve()`` which is fully async; signal handling stays
    with the composition root.
    """
    config = uvicorn.Config(
        app=app,
        host="0.0.0.0",
        port=port,
        log_level="warning",
        loop="none",  # use the existing event loop
    )
    server = uvicorn.Server(config)
    server.install_signal_handlers = lambda: None  # type: ignore[method-assign]

    async def _stop_on_event() -> None:
        await stop.wait()
        server.should_exit = True

    watcher = asyncio.create_task(_stop_on_event())
    logger.info(f"[API] Starting on http://0.0.0.0:{port}")
    try:
        await server.serve()
    finally:
        watcher.cancel()
    logger.info("[API] Stopped")
