import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cardswap.api import (
    addresses_router,
    health_router,
    maintenance_router,
    notifications_router,
    proposals_router,
)
from cardswap.config import settings
from cardswap.db.database import init_db
from cardswap.models.failure import KnownError, create_unknown_failure

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    await init_db()
    yield


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("cardswap"),
    lifespan=lifespan,
)


@app.exception_handler(KnownError)
async def known_error_handler(request: Request, exc: KnownError) -> JSONResponse:
    """Render known failures as the response envelope with their status code."""
    logger.info(
        "%s %s failed: %s (%s)", request.method, request.url.path, exc.kind.value, exc.detail
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


@app.exception_handler(Exception)
async def unknown_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unclassified still leaves as an explained envelope."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=create_unknown_failure(exc).model_dump(mode="json"),
    )


app.include_router(addresses_router)
app.include_router(health_router)
app.include_router(maintenance_router)
app.include_router(notifications_router)
app.include_router(proposals_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
