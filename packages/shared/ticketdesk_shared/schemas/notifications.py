"""Notification schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .common import CamelModel, Pagination


class NotificationRead(CamelModel):
    id: int
    recipient_id: int
    ticket_id: Optional[int] = None
    title: str
    message: str
    type: str
    priority: str
    is_read: bool
    metadata: dict = Field(default_factory=dict, validation_alias="meta")
    created_at: datetime


class NotificationResponse(CamelModel):
    notification: NotificationRead
    message: Optional[str] = None


class NotificationListResponse(BaseModel):
    notifications: List[NotificationRead]
    pagination: Pagination


class UnreadCount(CamelModel):
    unread_count: int


class ReadAllResponse(CamelModel):
    message: str
    updated: int
