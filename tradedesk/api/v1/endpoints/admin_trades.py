# tradedesk/api/v1/endpoints/admin_trades.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tradedesk.core.permissions import Action
from tradedesk.core.security import get_current_admin, require_action
from tradedesk.crud import trade as crud_trade
from tradedesk.database.models import Admin
from tradedesk.database.session import get_db
from tradedesk.dependencies.services import get_settlement_engine
from tradedesk.schemas.trade import (
    AdminTradeResponse,
    ManualControlRequest,
    SetResultRequest,
    SettlementResultResponse,
    SweepReportResponse,
)
from tradedesk.services.settlement import SettlementEngine

router = APIRouter(prefix="/admin/trades", tags=["admin trades"])


@router.get("", response_model=List[AdminTradeResponse], summary="List trades (Admin)")
async def list_trades(
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(active|finished)$"),
    wallet_address: Optional[str] = Query(None, alias="walletAddress"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
    admin: Admin = Depends(require_action(Action.MANAGE_TRADES)),
    db: AsyncSession = Depends(get_db),
):
    wallet = wallet_address.lower() if wallet_address else None
    return await crud_trade.get_all_trades(db, status_filter, wallet, skip, limit)


@router.post("/manual-control", response_model=AdminTradeResponse, summary="Preset a trade outcome (Super admin)")
async def manual_control(
    body: ManualControlRequest,
    admin: Admin = Depends(get_current_admin),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    """
    Pins WIN or LOSS on an active trade before it expires. The preset
    overrides every other outcome rule at settlement.
    """
    return await engine.set_manual_preset(body.trade_id, body.outcome, admin)


@router.post("/settle", response_model=SweepReportResponse, summary="Run the expiry sweep now (Admin)")
async def settle_expired(
    admin: Admin = Depends(require_action(Action.MANAGE_TRADES)),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    return SweepReportResponse.model_validate(await engine.settle_expired())


@router.post("/{trade_id}/set-result", response_model=SettlementResultResponse, summary="Settle a trade with a given result (Admin)")
async def set_result(
    trade_id: int,
    body: SetResultRequest,
    admin: Admin = Depends(require_action(Action.MANAGE_TRADES)),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    result = await engine.force_settle(trade_id, body.result, admin)
    return SettlementResultResponse.model_validate(result)
