"""
Health check endpoints.

Liveness, plus a readiness probe that checks the database and reports
whether the shipping gateway has credentials.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardswap.config import settings
from cardswap.db.database import get_session

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str | None = None
    shipping: str | None = None


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness probe. Does not check dependencies."""
    return HealthResponse(status="healthy")


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
)
async def ready(
    response: Response,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> HealthResponse:
    """
    Readiness probe.

    Returns 503 if the database is unavailable. Missing shipping
    credentials are reported but do not fail readiness: proposals and
    meetups work without them.
    """
    shipping = "configured" if settings.shipping_api_key else "unconfigured"
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not ready", database="disconnected", shipping=shipping)
    return HealthResponse(status="ready", database="connected", shipping=shipping)
