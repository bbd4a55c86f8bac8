# tradedesk/api/v1/endpoints/trades.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from tradedesk.core.events import EventPublisher
from tradedesk.core.exceptions import NotFound
from tradedesk.core.security import get_current_user
from tradedesk.crud import trade as crud_trade
from tradedesk.database.models import User
from tradedesk.database.session import get_db
from tradedesk.dependencies.services import (
    get_event_publisher,
    get_price_oracle,
    get_session_factory,
    get_settlement_engine,
)
from tradedesk.schemas.trade import SweepReportResponse, TradeCreate, TradeResponse
from tradedesk.services import trade_service
from tradedesk.services.price_oracle import PriceOracle
from tradedesk.services.settlement import SettlementEngine

import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trades", tags=["trades"])


@router.post("", response_model=TradeResponse, summary="Open a trade")
async def open_trade(
    body: TradeCreate,
    current_user: User = Depends(get_current_user),
    session_factory: sessionmaker = Depends(get_session_factory),
    price_oracle: PriceOracle = Depends(get_price_oracle),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    return await trade_service.open_trade(
        session_factory,
        price_oracle,
        publisher,
        current_user.wallet_address,
        body.asset,
        body.side,
        body.amount_usd,
        body.duration,
        body.profit_level,
    )


@router.get("", response_model=List[TradeResponse], summary="List my trades")
async def list_trades(
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(active|finished)$"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    engine: SettlementEngine = Depends(get_settlement_engine),
    db: AsyncSession = Depends(get_db),
):
    """
    Settles the caller's expired trades first so the list never shows a
    stale active trade.
    """
    await engine.settle_expired_for_wallet(current_user.wallet_address)
    # Close the read transaction opened by authentication so the list sees the settlements
    await db.commit()
    return await crud_trade.get_trades_by_wallet(db, current_user.wallet_address, status_filter, skip, limit)


@router.post("/settle", response_model=SweepReportResponse, summary="Settle all expired trades")
async def settle_expired_trades(
    current_user: User = Depends(get_current_user),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    report = await engine.settle_expired()
    logger.info(f"Sweep requested by {current_user.wallet_address}: settled {report.settled} of {report.found}")
    return SweepReportResponse.model_validate(report)


@router.get("/{trade_id}", response_model=TradeResponse, summary="Get one of my trades")
async def get_trade(
    trade_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    trade = await crud_trade.get_trade_by_id(db, trade_id)
    if trade is None or trade.wallet_address != current_user.wallet_address:
        raise NotFound(f"Trade {trade_id} not found.")
    return trade
