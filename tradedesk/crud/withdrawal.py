# tradedesk/crud/withdrawal.py

from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from tradedesk.database.models import Withdrawal


async def create_withdrawal(db: AsyncSession, **fields) -> Withdrawal:
    withdrawal = Withdrawal(**fields)
    db.add(withdrawal)
    await db.flush()
    await db.refresh(withdrawal)
    return withdrawal


async def get_withdrawal_by_id(db: AsyncSession, withdrawal_id: int) -> Optional[Withdrawal]:
    result = await db.execute(
        select(Withdrawal)
        .filter(Withdrawal.id == withdrawal_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_withdrawals_by_wallet(db: AsyncSession, wallet_address: str, skip: int = 0, limit: int = 100) -> List[Withdrawal]:
    result = await db.execute(
        select(Withdrawal)
        .filter(Withdrawal.wallet_address == wallet_address)
        .order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return result.scalars().all()


async def get_all_withdrawals(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 100,
    status: Optional[str] = None,
    wallet_addresses: Optional[List[str]] = None
) -> List[Withdrawal]:
    """
    Retrieves withdrawals, optionally filtered by status and owner, with pagination (for admins).
    """
    query = select(Withdrawal).order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc())
    if status is not None:
        query = query.filter(Withdrawal.status == status)
    if wallet_addresses is not None:
        query = query.filter(Withdrawal.wallet_address.in_(wallet_addresses))
    result = await db.execute(query.offset(skip).limit(limit))
    return result.scalars().all()
