from pydantic import BaseModel, ConfigDict, Field
from decimal import Decimal
from enum import Enum
from typing import Optional
import datetime


class TradeMode(str, Enum):
    DISABLED = "disabled"
    AUTOMATIC = "automatic"
    WIN = "win"
    LOSS = "loss"
    CUSTOM = "custom"


DEFAULT_WIN_PERCENTAGE = Decimal("2.5")
DEFAULT_LOSS_PERCENTAGE = Decimal("0.002")


class GlobalTradeSettings(BaseModel):
    """
    Platform-wide outcome control read by every settlement.
    Percentages drive the synthetic exit price of forced outcomes.
    """
    mode: TradeMode = TradeMode.DISABLED
    win_percentage: Decimal = DEFAULT_WIN_PERCENTAGE
    loss_percentage: Decimal = DEFAULT_LOSS_PERCENTAGE


class GlobalTradeSettingsUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    global_mode: TradeMode = Field(..., alias="globalMode")
    win_percentage: Optional[Decimal] = Field(None, alias="globalWinPercentage")
    loss_percentage: Optional[Decimal] = Field(None, alias="globalLossPercentage")


class GlobalTradeSettingsResponse(BaseModel):
    globalMode: TradeMode
    globalWinPercentage: Decimal
    globalLossPercentage: Decimal


# --- Payout tiers ---
class GlobalAssetSettingCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    delivery_time: str = Field(..., alias="deliveryTime", pattern=r"^\d+(s|m|h|d)$")
    profit_level: Decimal = Field(..., alias="profitLevel", gt=0, le=1000)
    min_usdt: Decimal = Field(..., alias="minUsdt", gt=0)


class GlobalAssetSettingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    delivery_time: str
    profit_level: Decimal
    min_usdt: Decimal
    created_at: datetime.datetime


# --- Per-asset enable flag ---
class AssetTradingSettingUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    asset_symbol: str = Field(..., alias="assetSymbol", min_length=1, max_length=20)
    is_enabled: bool = Field(True, alias="isEnabled")


class AssetTradingSettingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    asset_symbol: str
    is_enabled: bool
