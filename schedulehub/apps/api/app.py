from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from schedulehub.container import ServiceContainer
from schedulehub.core.logging import configure_logging
from schedulehub.core.settings import get_settings

from .errors import register_exception_handlers
from .routers import public, requests, system

logger = logging.getLogger(__name__)


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the API; a supplied container is used as-is and left open on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings = container.settings if container is not None else get_settings()
        configure_logging(settings)
        owned = container is None
        app.state.container = container or ServiceContainer.build(settings)
        logger.info("api.started", extra={"environment": settings.environment})
        try:
            yield
        finally:
            if owned:
                await app.state.container.close()
            logger.info("api.stopped")

    app = FastAPI(title="Interview Scheduling API", lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(system.router)
    app.include_router(requests.router)
    app.include_router(public.router)
    return app


__all__ = ["create_app"]
