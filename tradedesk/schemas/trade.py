from pydantic import BaseModel, ConfigDict, Field
from decimal import Decimal
from typing import List, Optional
import datetime


class TradeCreate(BaseModel):
    """
    Schema for opening a trade. The wallet comes from the access token.
    """
    model_config = ConfigDict(populate_by_name=True)

    asset: str = Field(..., min_length=1, max_length=20)
    side: str = Field(..., pattern="^(buy|sell)$")
    amount_usd: Decimal = Field(..., alias="amountUsd", gt=0)
    duration: str = Field(..., pattern=r"^\d+(s|m|h|d)$")
    profit_level: Decimal = Field(..., alias="profitLevel", gt=0)


class TradeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    wallet_address: str
    asset: str
    side: str
    entry_price: Decimal
    amount_usd: Decimal
    duration: str
    profit_multiplier: Decimal
    fee: Decimal
    status: str
    result: Optional[str] = None
    created_at: datetime.datetime
    expires_at: datetime.datetime
    closed_at: Optional[datetime.datetime] = None
    exit_price: Optional[Decimal] = None
    pnl: Optional[Decimal] = None


class AdminTradeResponse(TradeResponse):
    manual_outcome_preset: Optional[str] = None
    manual_preset_by: Optional[str] = None
    manual_preset_at: Optional[datetime.datetime] = None


class SettlementResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    trade_id: int
    result: str
    pnl: Decimal
    exit_price: Decimal
    payout: Decimal


class SweepReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    found: int
    settled: int
    already_processed: int
    price_unavailable: int
    failed: int
    results: List[SettlementResultResponse] = []


class ManualControlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    trade_id: int = Field(..., alias="tradeId")
    outcome: str = Field(..., pattern="^(WIN|LOSS|win|loss)$")


class SetResultRequest(BaseModel):
    result: str = Field(..., pattern="^(win|loss|WIN|LOSS)$")
