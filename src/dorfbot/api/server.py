"""FastAPI application factory, runs in the same asyncio loop as the bot."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dorfbot.api.routes import router, set_app
from dorfbot.core.logging import get_logger

if TYPE_CHECKING:
    from dorfbot.app import Application

log = get_logger("api_server")


def create_app(application: Application) -> FastAPI:
    """Create the FastAPI app and wire it to the bot Application."""
    api = FastAPI(title="Dorfbot API", version="1.0.0")

    api.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Inject bot reference into routes
    set_app(application)

    api.include_router(router)
    return api


def create_api_server(
    application: Application,
    host: str = "127.0.0.1",
    port: int = 8000,
) -> uvicorn.Server:
    api = create_app(application)
    config = uvicorn.Config(
        app=api,
        host=host,
        port=port,
        log_level="warning",
        access_log=False,
    )
    return uvicorn.Server(config)


async def serve_until(server: uvicorn.Server, main: Awaitable[None]) -> None:
    """Serve the API while ``main`` runs, then shut the server down."""
    api_task = asyncio.create_task(server.serve())
    try:
        await main
    finally:
        server.should_exit = True
        await api_task
    log.info("api_server_stopped")


async def run_api_server(
    application: Application,
    main: Awaitable[None],
    host: str = "127.0.0.1",
    port: int = 8000,
) -> None:
    """Run the API server in this loop for as long as ``main`` runs."""
    server = create_api_server(application, host=host, port=port)
    log.info("api_server_starting", host=host, port=port)
    await serve_until(server, main)
