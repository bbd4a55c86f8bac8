# tradedesk/crud/deposit.py

from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from tradedesk.database.models import Deposit


async def create_deposit(db: AsyncSession, **fields) -> Deposit:
    deposit = Deposit(**fields)
    db.add(deposit)
    await db.flush()
    await db.refresh(deposit)
    return deposit


async def get_deposit_by_id(db: AsyncSession, deposit_id: int) -> Optional[Deposit]:
    result = await db.execute(
        select(Deposit)
        .filter(Deposit.id == deposit_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_deposit_by_tx_hash(db: AsyncSession, tx_hash: str) -> Optional[Deposit]:
    result = await db.execute(select(Deposit).filter(Deposit.tx_hash == tx_hash))
    return result.scalars().first()


async def get_deposits_by_wallet(db: AsyncSession, wallet_address: str, skip: int = 0, limit: int = 100) -> List[Deposit]:
    result = await db.execute(
        select(Deposit)
        .filter(Deposit.wallet_address == wallet_address)
        .order_by(Deposit.created_at.desc(), Deposit.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return result.scalars().all()


async def get_all_deposits(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 100,
    status: Optional[str] = None,
    wallet_addresses: Optional[List[str]] = None
) -> List[Deposit]:
    query = select(Deposit).order_by(Deposit.created_at.desc(), Deposit.id.desc())
    if status is not None:
        query = query.filter(Deposit.status == status)
    if wallet_addresses is not None:
        query = query.filter(Deposit.wallet_address.in_(wallet_addresses))
    result = await db.execute(query.offset(skip).limit(limit))
    return result.scalars().all()
