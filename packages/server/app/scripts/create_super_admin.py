"""
Create the first super admin account so the registration chain can start.

    python -m app.scripts.create_super_admin --email root@example.com --password secret --name Root
"""

import argparse
import asyncio

from app.core.database import get_session_context, init_db
from app.core.errors import DuplicateEntry
from app.services.accounts import register_super_admin
from ticketdesk_shared.schemas.auth import RegisterSuperAdmin


async def create_super_admin(email: str, password: str, name: str) -> None:
    await init_db()
    body = RegisterSuperAdmin(email=email, password=password, name=name)
    try:
        async with get_session_context() as session:
            account = await register_super_admin(session, body)
            print(f"Created super admin {account.email} (id {account.id}).")
    except DuplicateEntry:
        print(f"An account for {email} already exists.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a super admin account.")
    parser.add_argument("--email", required=True, help="Login email")
    parser.add_argument("--password", required=True, help="Login password (at least 6 characters)")
    parser.add_argument("--name", default="Super Admin", help="Display name")

    args = parser.parse_args()

    asyncio.run(create_super_admin(args.email, args.password, args.name))
