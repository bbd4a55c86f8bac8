# tradedesk/crud/trade.py

import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from tradedesk.database.models import Trade, TradeStatus, utcnow

import logging

logger = logging.getLogger(__name__)


async def create_trade(db: AsyncSession, **fields) -> Trade:
    """
    Inserts a new active trade. Runs inside the caller's transaction.
    """
    trade = Trade(status=TradeStatus.ACTIVE, **fields)
    db.add(trade)
    await db.flush()
    await db.refresh(trade)
    logger.info(f"Trade {trade.id} created for {trade.wallet_address}: {trade.side} {trade.asset} {trade.amount_usd} USDT")
    return trade


async def get_trade_by_id(db: AsyncSession, trade_id: int) -> Optional[Trade]:
    result = await db.execute(
        select(Trade)
        .filter(Trade.id == trade_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_trades_by_wallet(
    db: AsyncSession,
    wallet_address: str,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 100
) -> List[Trade]:
    query = select(Trade).filter(Trade.wallet_address == wallet_address)
    if status is not None:
        query = query.filter(Trade.status == status)
    result = await db.execute(
        query.order_by(Trade.created_at.desc(), Trade.id.desc())
        .offset(skip)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()


async def get_expired_active_trade_ids(
    db: AsyncSession,
    now: Optional[datetime.datetime] = None,
    wallet_address: Optional[str] = None,
    limit: Optional[int] = None
) -> List[int]:
    """
    IDs of active trades whose expiry has passed, oldest expiry first.
    """
    now = now or utcnow()
    query = select(Trade.id).filter(Trade.status == TradeStatus.ACTIVE, Trade.expires_at <= now)
    if wallet_address is not None:
        query = query.filter(Trade.wallet_address == wallet_address)
    query = query.order_by(Trade.expires_at, Trade.id)
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_all_trades(
    db: AsyncSession,
    status: Optional[str] = None,
    wallet_address: Optional[str] = None,
    skip: int = 0,
    limit: int = 100
) -> List[Trade]:
    """
    Retrieves trades across all users, newest first (for admins).
    """
    query = select(Trade)
    if status is not None:
        query = query.filter(Trade.status == status)
    if wallet_address is not None:
        query = query.filter(Trade.wallet_address == wallet_address)
    result = await db.execute(query.order_by(Trade.created_at.desc(), Trade.id.desc()).offset(skip).limit(limit))
    return result.scalars().all()
