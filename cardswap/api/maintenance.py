"""
Maintenance endpoints.

Explicit, idempotent repair operations. Nothing here runs as a side
effect of ordinary reads.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cardswap.db.database import get_session
from cardswap.services.reconcile import reconcile_invalid_proposals

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


class ReconcileResponse(BaseModel):
    """Response model for a reconciliation pass."""

    pruned: int
    proposal_ids: list[str] = Field(default_factory=list)


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ReconcileResponse:
    """
    Delete proposals whose match or cards no longer exist.

    Safe to run repeatedly; a second run prunes nothing.
    """
    pruned = await reconcile_invalid_proposals(session)
    return ReconcileResponse(pruned=len(pruned), proposal_ids=pruned)
