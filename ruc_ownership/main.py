"""RUC ownership engine — FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ruc_ownership.adapters.persistence.database import engine
from ruc_ownership.config import settings
from ruc_ownership.infrastructure.api.errors import register_exception_handlers
from ruc_ownership.infrastructure.api.routes_assignments import router as assignments_router
from ruc_ownership.infrastructure.api.routes_batches import router as batches_router
from ruc_ownership.infrastructure.api.routes_classifications import (
    router as classifications_router,
)
from ruc_ownership.infrastructure.api.routes_health import router as health_router
from ruc_ownership.infrastructure.api.routes_scope import router as scope_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    try:
        async with engine.begin():
            pass  # Connection pool warmed up
        logger.info("Database connection established")
    except Exception as e:
        logger.warning("Database not available on startup: %s", e)
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="RUC Ownership Engine",
        description="Entity ownership assignment, owner-only classification and batch audit",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Register routers
    app.include_router(health_router, prefix="/api")
    app.include_router(assignments_router, prefix="/api")
    app.include_router(classifications_router, prefix="/api")
    app.include_router(batches_router, prefix="/api")
    app.include_router(scope_router, prefix="/api")

    return app


app = create_app()
