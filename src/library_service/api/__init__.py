"""
HTTP JSON API for the Library Service.

``create_app`` builds a FastAPI application around a ``ServiceContainer``;
every route lives under ``/api`` except the unauthenticated ``/health``.
"""

import logging

from fastapi import APIRouter, FastAPI

from .. import __version__
from ..runtime import ServiceContainer
from . import books, checkouts, users
from .errors import register_exception_handlers

logger = logging.getLogger(__name__)


def create_app(container: ServiceContainer) -> FastAPI:
    app = FastAPI(title="Library Service", version=__version__)
    app.state.container = container

    api = APIRouter(prefix="/api")
    for router in books.router, users.router, checkouts.router:
        api.include_router(router)
    app.include_router(api)

    register_exception_handlers(app)

    @app.get("/health", tags=["health"])
    def health():
        return {"status": "ok"}

    logger.debug("HTTP app created with %d routes", len(app.routes))
    return app


__all__ = ["create_app"]
