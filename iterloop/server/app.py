"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from iterloop.server.registry import LoopRegistry, default_registry
from iterloop.server.routes import health, loops
from iterloop.server.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(registry: Optional[LoopRegistry] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the API around `registry` (the demo registry by default)."""
    settings = settings or get_settings()
    registry = registry or default_registry(settings.default_preset)
    logging.getLogger("iterloop").setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"iterloop API starting on port {settings.port}")
        logger.info(f"Registered loops: {', '.join(registry.names()) or 'none'}")
        yield
        logger.info("iterloop API shutting down")

    app = FastAPI(
        title="iterloop API",
        description="Convergent iteration loops over HTTP",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(loops.router, prefix="/api/loops", tags=["loops"])

    return app


app = create_app()
