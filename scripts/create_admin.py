# scripts/create_admin.py

import asyncio
import os
import sys

# Add the project root to sys.path so the tradedesk package imports
# when the script is run from the scripts directory.
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from tradedesk.core.permissions import AdminRole
from tradedesk.crud import user as crud_user
from tradedesk.database.session import AsyncSessionLocal, create_all_tables


async def create_initial_admin():
    """
    Creates the initial super admin if one does not exist.
    Reads the credentials from environment variables.
    """
    username = os.getenv("INITIAL_ADMIN_USERNAME")
    password = os.getenv("INITIAL_ADMIN_PASSWORD")
    role = os.getenv("INITIAL_ADMIN_ROLE", AdminRole.SUPER_ADMIN.value)

    if not username:
        print("ERROR: INITIAL_ADMIN_USERNAME environment variable must be set.")
        sys.exit(1)
    if not password:
        print("ERROR: INITIAL_ADMIN_PASSWORD environment variable must be set.")
        sys.exit(1)
    if role not in {r.value for r in AdminRole}:
        print(f"ERROR: INITIAL_ADMIN_ROLE must be one of {[r.value for r in AdminRole]}.")
        sys.exit(1)

    await create_all_tables()

    async with AsyncSessionLocal() as db:
        existing = await crud_user.get_admin_by_username(db, username)
        if existing:
            print(f"Admin '{username}' already exists (ID: {existing.id}). Skipping creation.")
            return
        admin = await crud_user.create_admin(db, username, password, role)
        await db.commit()
        print(f"Admin '{admin.username}' created with ID {admin.id} and role {admin.role}.")


if __name__ == "__main__":
    asyncio.run(create_initial_admin())
