"""
Notification endpoints. Every route works on the caller's own inbox.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import Principal, require_principal
from app.core.database import get_session
from app.core.pagination import PageParams, page_params, paginate
from app.models.notification import Notification
from app.services import notifications as notification_service
from ticketdesk_shared.schemas.common import MessageResponse
from ticketdesk_shared.schemas.notifications import (
    NotificationListResponse,
    NotificationRead,
    NotificationResponse,
    ReadAllResponse,
    UnreadCount,
)

router = APIRouter()


@router.get("/", response_model=NotificationListResponse)
async def list_notifications(
    isRead: Optional[bool] = None,
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    stmt = select(Notification).where(Notification.recipient_id == principal.id)
    if isRead is not None:
        stmt = stmt.where(Notification.is_read == isRead)
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
    notifications, pagination = await paginate(session, stmt, params)
    return NotificationListResponse(
        notifications=[NotificationRead.model_validate(n) for n in notifications],
        pagination=pagination,
    )


@router.get("/unread-count", response_model=UnreadCount)
async def get_unread_count(
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    return UnreadCount(unread_count=await notification_service.unread_count(session, principal.id))


@router.put("/read-all", response_model=ReadAllResponse)
async def read_all(
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    updated = await notification_service.mark_all_read(session, principal.id)
    return ReadAllResponse(message="All notifications marked as read", updated=updated)


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    notification = await notification_service.get_owned_notification(
        session, notification_id, principal.id
    )
    notification.is_read = True
    session.add(notification)
    await session.flush()
    return NotificationResponse(
        notification=NotificationRead.model_validate(notification),
        message="Notification marked as read",
    )


@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(
    notification_id: int,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_session),
):
    notification = await notification_service.get_owned_notification(
        session, notification_id, principal.id
    )
    await session.delete(notification)
    await session.flush()
    return MessageResponse(message="Notification deleted")
