"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Build the per-process instance (store, broadcast link, assistant,
  session controller) and tie it to the app lifespan
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adapters.llm.barista import BaristaAdapter, build_llm_client
from broadcast.factory import build_link
from broadcast.local import LocalBroadcastHub
from config import AppConfig
from observability import logger
from observability.logger import log_event, now_ms
from session.controller import SessionController, new_instance_id
from stats.store import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore

from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    *,
    hub: LocalBroadcastHub | None = None,
    store: KeyValueStore | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations
    - Several instances sharing one LocalBroadcastHub in one process
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        controller = build_controller(config, hub=hub, store=store)
        app.state.controller = controller
        await controller.open()
        try:
            yield
        finally:
            await controller.close()

    app = FastAPI(title="Coffee Break API", lifespan=lifespan)

    app.state.config = config
    logger.configure(json_lines=config.enable_json_logs)

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app


def build_controller(
    config: AppConfig,
    *,
    hub: LocalBroadcastHub | None = None,
    store: KeyValueStore | None = None,
) -> SessionController:
    """Wire one instance from config. Nothing is opened here."""
    if store is None:
        store = (
            FileKeyValueStore(config.stats_path)
            if config.stats_path
            else MemoryKeyValueStore()
        )

    link = build_link(config, hub=hub)
    instance_id = new_instance_id()

    client = build_llm_client(provider=config.llm_provider, api_key=config.llm_api_key)
    if client is None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "assistant_not_configured",
            "instance_id": instance_id,
            "provider": config.llm_provider,
        })

    assistant = BaristaAdapter(
        client=client,
        model=config.llm_model,
        provider=config.llm_provider,
        instance_id=instance_id,
    )

    return SessionController(
        link=link,
        store=store,
        assistant=assistant,
        instance_id=instance_id,
    )
