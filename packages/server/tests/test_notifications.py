"""
Tests for notifications: recipient selection, default texts, best-effort
delivery and the inbox endpoints.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from app.models.notification import Notification
from app.services.notifications import (
    RecipientFlags,
    TicketRef,
    deliver,
    render_text,
    resolve_recipients,
    unique_recipients,
)
from ticketdesk_shared.schemas.common import NotificationType

from .factories import auth_header

INBOX = "/api/v1/notifications"


async def _notify(db, recipient, title: str, *, is_read: bool = False) -> Notification:
    notification = Notification(
        recipient_id=recipient.id,
        title=title,
        message=f"{title} happened",
        type="SYSTEM_ANNOUNCEMENT",
        is_read=is_read,
    )
    db.add(notification)
    await db.commit()
    return notification


class TestHelpers:
    def test_unique_recipients_keeps_first_seen_order(self):
        assert unique_recipients([3, None, 1, 3, 2, 1]) == [3, 1, 2]

    def test_render_default_text(self):
        title, message = render_text(NotificationType.TICKET_APPROVED, "Fix login bug")
        assert title == "Ticket Approved"
        assert message == 'Ticket "Fix login bug" has been approved and is ready for processing.'

    def test_render_explicit_text_wins(self):
        title, message = render_text(
            NotificationType.TICKET_CREATED, "x", title="Heads up", message="Read me"
        )
        assert (title, message) == ("Heads up", "Read me")

    def test_render_unknown_type_falls_back(self):
        title, _ = render_text(NotificationType.SYSTEM_ANNOUNCEMENT)
        assert title == "Notification"


class TestRecipients:
    @pytest.mark.asyncio
    async def test_creator_and_assignee_deduplicated(self, db, org):
        ref = TicketRef(
            id=1,
            title="Same person",
            created_by=org.alice.id,
            assigned_to=org.alice.id,
            team_id=org.platform.id,
            assigned_team_id=org.platform.id,
        )
        recipients = await resolve_recipients(
            db, ref, RecipientFlags(creator=True, assignee=True, team=True, assigned_team=True)
        )
        assert recipients == [org.alice.id, org.platform_lead.id]

    @pytest.mark.asyncio
    async def test_inactive_accounts_skipped(self, db, org):
        org.other_admin.is_active = False
        db.add(org.other_admin)
        await db.commit()
        recipients = await resolve_recipients(db, None, RecipientFlags(admins=True, super_admins=True))
        assert recipients == [org.admin.id, org.root.id]


class TestDeliver:
    @pytest.mark.asyncio
    async def test_failed_insert_does_not_stop_fan_out(self):
        session = MagicMock()
        session.commit = AsyncMock(
            side_effect=[OperationalError("INSERT", {}, Exception("locked")), None, None]
        )
        session.rollback = AsyncMock()

        delivered = await deliver(session, NotificationType.TICKET_CREATED, [1, 2, 2, 3])

        assert delivered == 2
        assert session.add.call_count == 3
        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rows_carry_ticket_metadata(self, db, org):
        ref = TicketRef(
            id=None,
            title="Broken badge reader",
            created_by=org.alice.id,
            assigned_to=None,
            team_id=org.platform.id,
            assigned_team_id=None,
        )
        delivered = await deliver(
            db, NotificationType.RESOURCE_REQUEST, [org.bob.id], ticket=ref, metadata={"quantity": 2}
        )
        assert delivered == 1


# ---------------------------------------------------------------------------
# Inbox endpoints
# ---------------------------------------------------------------------------

class TestInbox:
    @pytest.mark.asyncio
    async def test_list_and_filter(self, client: AsyncClient, db, org):
        await _notify(db, org.alice, "Old news", is_read=True)
        await _notify(db, org.alice, "Fresh news")
        await _notify(db, org.bob, "Not for alice")
        headers = auth_header(org.alice)

        resp = await client.get(f"{INBOX}/", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["pagination"]["total"] == 2

        resp = await client.get(f"{INBOX}/", params={"isRead": "false"}, headers=headers)
        assert [n["title"] for n in resp.json()["notifications"]] == ["Fresh news"]

        resp = await client.get(f"{INBOX}/unread-count", headers=headers)
        assert resp.json() == {"unreadCount": 1}

    @pytest.mark.asyncio
    async def test_mark_read_and_read_all(self, client: AsyncClient, db, org):
        first = await _notify(db, org.alice, "One")
        await _notify(db, org.alice, "Two")
        await _notify(db, org.alice, "Three")
        headers = auth_header(org.alice)

        resp = await client.put(f"{INBOX}/{first.id}/read", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["notification"]["isRead"] is True

        resp = await client.put(f"{INBOX}/read-all", headers=headers)
        assert resp.json()["updated"] == 2

        resp = await client.get(f"{INBOX}/unread-count", headers=headers)
        assert resp.json() == {"unreadCount": 0}

    @pytest.mark.asyncio
    async def test_other_inbox_is_forbidden(self, client: AsyncClient, db, org):
        note = await _notify(db, org.bob, "Bob only")
        headers = auth_header(org.alice)

        assert (await client.put(f"{INBOX}/{note.id}/read", headers=headers)).status_code == 403
        assert (await client.delete(f"{INBOX}/{note.id}", headers=headers)).status_code == 403
        assert (await client.delete(f"{INBOX}/9999", headers=headers)).status_code == 404

    @pytest.mark.asyncio
    async def test_delete_own(self, client: AsyncClient, db, org):
        note = await _notify(db, org.alice, "Disposable")
        headers = auth_header(org.alice)

        resp = await client.delete(f"{INBOX}/{note.id}", headers=headers)
        assert resp.status_code == 200
        resp = await client.get(f"{INBOX}/", headers=headers)
        assert resp.json()["notifications"] == []
