# tradedesk/crud/user.py

from typing import Optional, List
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from tradedesk.database.models import User, Admin
from tradedesk.core.security import get_password_hash

import logging

logger = logging.getLogger(__name__)

FIRST_UID = 100001

# --- CRUD Operations for User Model ---

def normalize_wallet_address(wallet_address: str) -> str:
    return wallet_address.strip().lower()


async def get_user_by_wallet(db: AsyncSession, wallet_address: str) -> Optional[User]:
    """
    Retrieves a user from the database by their wallet address.
    """
    result = await db.execute(
        select(User)
        .filter(User.wallet_address == normalize_wallet_address(wallet_address))
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_all_users(db: AsyncSession, skip: int = 0, limit: int = 100, assigned_employee_id: Optional[int] = None) -> List[User]:
    query = select(User).order_by(User.id)
    if assigned_employee_id is not None:
        query = query.filter(User.assigned_employee_id == assigned_employee_id)
    result = await db.execute(query.offset(skip).limit(limit))
    return result.scalars().all()


async def generate_next_uid(db: AsyncSession) -> str:
    """
    Sequential numeric UID: 100001, 100002, ...
    """
    result = await db.execute(select(User.uid).filter(User.uid.is_not(None)))
    uids = [int(uid) for uid in result.scalars().all() if uid.isdigit()]
    return str(max(uids) + 1 if uids else FIRST_UID)


async def get_or_create_user(db: AsyncSession, wallet_address: str) -> User:
    """
    Wallet login: returns the user for the address, creating it on first login.
    """
    wallet_address = normalize_wallet_address(wallet_address)
    user = await get_user_by_wallet(db, wallet_address)
    if user:
        return user

    uid = await generate_next_uid(db)
    user = User(wallet_address=wallet_address, uid=uid, trade_status="automatic")
    db.add(user)
    await db.flush()
    await db.refresh(user)
    logger.info(f"New user created - UID: {uid}, Wallet: {wallet_address}")
    return user


async def set_trade_status(db: AsyncSession, user: User, trade_status: str) -> User:
    user.trade_status = trade_status
    await db.flush()
    await db.refresh(user)
    return user


async def consume_trade_limit(db: AsyncSession, wallet_address: str) -> bool:
    """
    Decrements the user's remaining trade allowance when one is set.
    Returns False when the allowance is already exhausted.
    """
    user = await get_user_by_wallet(db, wallet_address)
    if user is None or user.trade_limit is None:
        return True
    result = await db.execute(
        update(User)
        .where(User.id == user.id, User.trade_limit > 0)
        .values(trade_limit=User.trade_limit - 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def update_user_controls(
    db: AsyncSession,
    user: User,
    is_suspended: Optional[bool] = None,
    trade_limit: Optional[int] = None,
    clear_trade_limit: bool = False
) -> User:
    if is_suspended is not None:
        user.is_suspended = is_suspended
    if clear_trade_limit:
        user.trade_limit = None
    elif trade_limit is not None:
        user.trade_limit = trade_limit
    await db.flush()
    await db.refresh(user)
    return user


async def assign_employee(db: AsyncSession, user: User, employee_id: Optional[int]) -> User:
    user.assigned_employee_id = employee_id
    await db.flush()
    await db.refresh(user)
    return user


# --- CRUD Operations for Admin Model ---

async def get_admin_by_id(db: AsyncSession, admin_id: int) -> Optional[Admin]:
    result = await db.execute(select(Admin).filter(Admin.id == admin_id))
    return result.scalars().first()


async def get_admin_by_username(db: AsyncSession, username: str) -> Optional[Admin]:
    result = await db.execute(select(Admin).filter(Admin.username == username))
    return result.scalars().first()


async def create_admin(db: AsyncSession, username: str, password: str, role: str = "ADMIN") -> Admin:
    admin = Admin(
        username=username,
        hashed_password=get_password_hash(password),
        role=role,
        is_active=True,
    )
    db.add(admin)
    await db.flush()
    await db.refresh(admin)
    logger.info(f"Admin '{username}' created with role {role}")
    return admin


async def get_assigned_wallets(db: AsyncSession, employee_id: int) -> List[str]:
    result = await db.execute(select(User.wallet_address).filter(User.assigned_employee_id == employee_id))
    return list(result.scalars().all())
