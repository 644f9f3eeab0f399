"""
Notification API endpoints.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cardswap.db import list_notifications, mark_notification_read, notification_to_model
from cardswap.db.database import get_session

router = APIRouter(prefix="/users/{user_id}/notifications", tags=["notifications"])


class NotificationResponse(BaseModel):
    """Response model for one notification."""

    id: str
    kind: str
    title: str
    message: str
    proposal_id: str | None = None
    read: bool = False
    created_at: datetime | None = None


class NotificationListResponse(BaseModel):
    """Response model for a user's notifications."""

    user_id: str
    notifications: list[NotificationResponse] = Field(default_factory=list)
    unread_count: int = 0


class MarkReadResponse(BaseModel):
    notification_id: str
    read: bool


@router.get("", response_model=NotificationListResponse)
async def get_notifications(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    unread_only: bool = False,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> NotificationListResponse:
    """List notifications, newest first."""
    rows = await list_notifications(session, user_id, unread_only=unread_only, limit=limit)
    notifications = [notification_to_model(r) for r in rows]
    return NotificationListResponse(
        user_id=user_id,
        notifications=[
            NotificationResponse(
                id=n.id,
                kind=n.kind.value,
                title=n.title,
                message=n.message,
                proposal_id=n.proposal_id,
                read=n.read,
                created_at=n.created_at,
            )
            for n in notifications
        ],
        unread_count=sum(1 for n in notifications if not n.read),
    )


@router.post("/{notification_id}/read", response_model=MarkReadResponse)
async def read_notification(
    user_id: str,
    notification_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> MarkReadResponse:
    """Mark a notification as read."""
    if not await mark_notification_read(session, user_id, notification_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    return MarkReadResponse(notification_id=notification_id, read=True)
