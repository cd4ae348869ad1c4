"""
Notification service: recipient selection, default texts and best-effort fan-out.

One row is written per unique recipient. Each row is committed on its own, so a
failed insert only loses that recipient's notification; the triggering
mutation must already be committed before fan-out starts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

import structlog
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import Forbidden, NotFound
from app.models.account import Account
from app.models.notification import Notification
from app.models.ticket import Ticket
from ticketdesk_shared.schemas.common import Level, NotificationType, Role

log = structlog.get_logger()


DEFAULT_TEXT: dict[NotificationType, tuple[str, str]] = {
    NotificationType.TICKET_CREATED: (
        "New Ticket Created",
        'A new ticket "{title}" has been created and needs your attention.',
    ),
    NotificationType.TICKET_ASSIGNED: (
        "Ticket Assigned",
        'Ticket "{title}" has been assigned to you.',
    ),
    NotificationType.TICKET_APPROVED: (
        "Ticket Approved",
        'Ticket "{title}" has been approved and is ready for processing.',
    ),
    NotificationType.TICKET_REJECTED: (
        "Ticket Rejected",
        'Ticket "{title}" has been rejected.',
    ),
    NotificationType.TICKET_COMPLETED: (
        "Ticket Completed",
        'Ticket "{title}" has been completed.',
    ),
    NotificationType.RESOURCE_REQUEST: (
        "Resource Request",
        'A resource request for ticket "{title}" needs review.',
    ),
}

FALLBACK_TEXT = ("Notification", "You have a new notification.")


@dataclass(frozen=True)
class RecipientFlags:
    """Which interested parties of a ticket receive a notification."""

    recipient_id: Optional[int] = None
    creator: bool = False
    assignee: bool = False
    team: bool = False
    assigned_team: bool = False
    admins: bool = False
    super_admins: bool = False


TICKET_EVENT_RECIPIENTS: dict[NotificationType, RecipientFlags] = {
    NotificationType.TICKET_CREATED: RecipientFlags(team=True, assigned_team=True, admins=True),
    NotificationType.TICKET_APPROVED: RecipientFlags(creator=True, assignee=True),
    NotificationType.TICKET_REJECTED: RecipientFlags(creator=True, assignee=True),
    NotificationType.TICKET_COMPLETED: RecipientFlags(creator=True, team=True, admins=True),
    NotificationType.TICKET_ASSIGNED: RecipientFlags(assignee=True),
    NotificationType.RESOURCE_REQUEST: RecipientFlags(team=True),
}

EVENT_PRIORITY: dict[NotificationType, Level] = {
    NotificationType.TICKET_CREATED: Level.MEDIUM,
    NotificationType.TICKET_APPROVED: Level.MEDIUM,
    NotificationType.TICKET_REJECTED: Level.HIGH,
    NotificationType.TICKET_COMPLETED: Level.LOW,
    NotificationType.TICKET_ASSIGNED: Level.HIGH,
    NotificationType.RESOURCE_REQUEST: Level.MEDIUM,
}


@dataclass(frozen=True)
class TicketRef:
    """Plain snapshot of the ticket fields fan-out needs."""

    id: int
    title: str
    created_by: int
    assigned_to: Optional[int]
    team_id: int
    assigned_team_id: Optional[int]

    @classmethod
    def of(cls, ticket: Ticket) -> "TicketRef":
        return cls(
            id=ticket.id,
            title=ticket.title,
            created_by=ticket.created_by,
            assigned_to=ticket.assigned_to,
            team_id=ticket.team_id,
            assigned_team_id=ticket.assigned_team_id,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def render_text(
    ntype: NotificationType,
    ticket_title: Optional[str] = None,
    *,
    title: Optional[str] = None,
    message: Optional[str] = None,
) -> tuple[str, str]:
    """Title and message for a notification, explicit values winning over defaults."""
    default_title, template = DEFAULT_TEXT.get(ntype, FALLBACK_TEXT)
    if message is None:
        message = template.format(title=ticket_title or "")
    return title or default_title, message


def unique_recipients(candidates: Iterable[Optional[int]]) -> list[int]:
    """Drop empties and duplicates, keeping first-seen order."""
    return list(dict.fromkeys(c for c in candidates if c is not None))


async def _account_ids(session: AsyncSession, *conditions) -> list[int]:
    result = await session.execute(
        select(Account.id).where(Account.is_active == True, *conditions)  # noqa: E712
    )
    return [row[0] for row in result.all()]


async def team_manager_ids(session: AsyncSession, team_id: Optional[int]) -> list[int]:
    if team_id is None:
        return []
    return await _account_ids(session, Account.role == Role.TEAM.value, Account.team_id == team_id)


async def resolve_recipients(
    session: AsyncSession, ticket: Optional[TicketRef], flags: RecipientFlags
) -> list[int]:
    candidates: list[Optional[int]] = [flags.recipient_id]
    if ticket is not None:
        if flags.creator:
            candidates.append(ticket.created_by)
        if flags.assignee:
            candidates.append(ticket.assigned_to)
        if flags.team:
            candidates.extend(await team_manager_ids(session, ticket.team_id))
        if flags.assigned_team:
            candidates.extend(await team_manager_ids(session, ticket.assigned_team_id))
    if flags.admins:
        candidates.extend(await _account_ids(session, Account.role == Role.ADMIN.value))
    if flags.super_admins:
        candidates.extend(await _account_ids(session, Account.role == Role.SUPER_ADMIN.value))
    return unique_recipients(candidates)


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------


async def deliver(
    session: AsyncSession,
    ntype: NotificationType,
    recipient_ids: Iterable[int],
    *,
    ticket: Optional[TicketRef] = None,
    title: Optional[str] = None,
    message: Optional[str] = None,
    priority: Level = Level.MEDIUM,
    metadata: Optional[dict] = None,
) -> int:
    """Insert one notification per recipient. Returns how many were stored."""
    title, message = render_text(
        ntype, ticket.title if ticket else None, title=title, message=message
    )
    meta = dict(metadata or {})
    if ticket is not None:
        meta.setdefault("ticketTitle", ticket.title)

    delivered = 0
    recipients = unique_recipients(recipient_ids)
    for recipient_id in recipients:
        session.add(
            Notification(
                recipient_id=recipient_id,
                ticket_id=ticket.id if ticket else None,
                title=title,
                message=message,
                type=ntype.value,
                priority=priority.value,
                meta=meta,
            )
        )
        try:
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            log.warning(
                "notification.delivery_failed",
                type=ntype.value,
                recipient_id=recipient_id,
                exc_info=True,
            )
            continue
        delivered += 1

    log.info(
        "notification.fanout",
        type=ntype.value,
        ticket_id=ticket.id if ticket else None,
        requested=len(recipients),
        delivered=delivered,
    )
    return delivered


async def notify_ticket_event(
    session: AsyncSession,
    ticket: TicketRef,
    ntype: NotificationType,
    flags: Optional[RecipientFlags] = None,
    **kwargs,
) -> int:
    """Fan a ticket lifecycle event out to the parties selected by ``flags``."""
    flags = flags or TICKET_EVENT_RECIPIENTS.get(ntype, RecipientFlags())
    recipients = await resolve_recipients(session, ticket, flags)
    kwargs.setdefault("priority", EVENT_PRIORITY.get(ntype, Level.MEDIUM))
    return await deliver(session, ntype, recipients, ticket=ticket, **kwargs)


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------


async def get_owned_notification(
    session: AsyncSession, notification_id: int, recipient_id: int
) -> Notification:
    notification = await session.get(Notification, notification_id)
    if notification is None:
        raise NotFound("Notification not found")
    if notification.recipient_id != recipient_id:
        raise Forbidden("You can only access your own notifications")
    return notification


async def unread_count(session: AsyncSession, recipient_id: int) -> int:
    result = await session.execute(
        select(func.count()).select_from(Notification).where(
            Notification.recipient_id == recipient_id,
            Notification.is_read == False,  # noqa: E712
        )
    )
    return result.scalar_one()


async def mark_all_read(session: AsyncSession, recipient_id: int) -> int:
    result = await session.execute(
        update(Notification)
        .where(
            Notification.recipient_id == recipient_id,
            Notification.is_read == False,  # noqa: E712
        )
        .values(is_read=True)
    )
    await session.flush()
    return result.rowcount or 0
