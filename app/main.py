from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from app.api import router
from app.events import router as events_router
from app.web import router as web_router
from app.webhook import router as webhook_router
from datastore.readings import ReadingStore, build_default_store
from logging_config import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    owns_store = getattr(app.state, "store", None) is None
    if owns_store:
        app.state.store = build_default_store()
    try:
        yield
    finally:
        if owns_store:
            app.state.store.dispose()
            app.state.store = None
            build_default_store.cache_clear()


def create_app(store: Optional[ReadingStore] = None) -> FastAPI:
    """Build the service; without an explicit store one is built from settings at startup."""
    configure_logging()
    app = FastAPI(
        title="Particle Temperature Monitor",
        description="Webhook ingestion and live dashboard for Particle temperature sensors.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.include_router(webhook_router)
    app.include_router(router)
    app.include_router(events_router)
    app.include_router(web_router)
    return app

app = create_app()
