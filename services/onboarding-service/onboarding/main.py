"""FastAPI application wiring for the onboarding service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .accounts import AccountDirectory, ResourceCatalog
from .api.responses import install_error_handlers
from .api.routes import router as v1_router
from .config import get_settings
from .domain.service import CollaboratorService
from .repository import CollaboratorRepository

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, max_size=settings.db_pool_max_size, open=False)
    pool.open()
    repository = CollaboratorRepository(pool)
    repository.apply_schema()
    app.state.pool = pool
    app.state.collaborator_service = CollaboratorService(
        repository,
        AccountDirectory(pool),
        ResourceCatalog(pool),
    )
    logger.info("%s %s started (%s)", settings.app_name, settings.version, settings.environment)
    try:
        yield
    finally:
        pool.close()
        pool.wait_close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=600,
)

install_error_handlers(app, expose_detail=settings.expose_error_detail)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
