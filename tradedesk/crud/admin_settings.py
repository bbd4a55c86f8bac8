# tradedesk/crud/admin_settings.py

from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from tradedesk.core.exceptions import NotFound, ValidationFailed
from tradedesk.database.models import AdminSettings, AssetTradingSettings, GlobalAssetSettings, utcnow
from tradedesk.schemas.settings import (
    DEFAULT_LOSS_PERCENTAGE,
    DEFAULT_WIN_PERCENTAGE,
    GlobalTradeSettings,
    TradeMode,
)

import logging

logger = logging.getLogger(__name__)

GLOBAL_TRADE_MODE = "global_trade_mode"
GLOBAL_WIN_PERCENTAGE = "global_win_percentage"
GLOBAL_LOSS_PERCENTAGE = "global_loss_percentage"

WIN_PERCENTAGE_RANGE = (Decimal("0.01"), Decimal("99.99"))
LOSS_PERCENTAGE_RANGE = (Decimal("0.001"), Decimal("99.99"))


async def get_setting(db: AsyncSession, key: str) -> Optional[str]:
    result = await db.execute(select(AdminSettings.value).filter(AdminSettings.key == key))
    return result.scalars().first()


async def set_setting(db: AsyncSession, key: str, value: str, description: Optional[str] = None) -> AdminSettings:
    result = await db.execute(select(AdminSettings).filter(AdminSettings.key == key))
    setting = result.scalars().first()
    if setting is None:
        setting = AdminSettings(key=key, value=value, description=description)
        db.add(setting)
    else:
        setting.value = value
        setting.updated_at = utcnow()
        if description is not None:
            setting.description = description
    await db.flush()
    return setting


def _decimal_or_default(raw: Optional[str], default: Decimal) -> Decimal:
    if raw is None:
        return default
    try:
        return Decimal(raw)
    except InvalidOperation:
        logger.warning(f"Stored percentage {raw!r} is not a number, using default {default}")
        return default


async def load_global_trade_settings(db: AsyncSession) -> GlobalTradeSettings:
    result = await db.execute(
        select(AdminSettings.key, AdminSettings.value).filter(
            AdminSettings.key.in_([GLOBAL_TRADE_MODE, GLOBAL_WIN_PERCENTAGE, GLOBAL_LOSS_PERCENTAGE])
        )
    )
    rows = dict(result.all())

    try:
        mode = TradeMode(rows.get(GLOBAL_TRADE_MODE, TradeMode.DISABLED.value))
    except ValueError:
        logger.warning(f"Unknown global trade mode {rows.get(GLOBAL_TRADE_MODE)!r}, treating as disabled")
        mode = TradeMode.DISABLED

    return GlobalTradeSettings(
        mode=mode,
        win_percentage=_decimal_or_default(rows.get(GLOBAL_WIN_PERCENTAGE), DEFAULT_WIN_PERCENTAGE),
        loss_percentage=_decimal_or_default(rows.get(GLOBAL_LOSS_PERCENTAGE), DEFAULT_LOSS_PERCENTAGE),
    )


def validate_custom_percentages(win_percentage: Optional[Decimal], loss_percentage: Optional[Decimal]) -> None:
    if win_percentage is None or loss_percentage is None:
        raise ValidationFailed("Custom mode requires globalWinPercentage and globalLossPercentage.")
    low, high = WIN_PERCENTAGE_RANGE
    if not low <= win_percentage <= high:
        raise ValidationFailed(f"Win percentage must be between {low}% and {high}%.")
    low, high = LOSS_PERCENTAGE_RANGE
    if not low <= loss_percentage <= high:
        raise ValidationFailed(f"Loss percentage must be between {low}% and {high}%.")


async def save_global_trade_settings(
    db: AsyncSession,
    mode: TradeMode,
    win_percentage: Optional[Decimal] = None,
    loss_percentage: Optional[Decimal] = None,
) -> GlobalTradeSettings:
    """
    Persists the global trade mode. Percentages are validated for custom
    mode; for other modes they are stored when given.
    """
    mode = TradeMode(mode)
    if mode == TradeMode.CUSTOM:
        validate_custom_percentages(win_percentage, loss_percentage)

    await set_setting(db, GLOBAL_TRADE_MODE, mode.value, "Global trade outcome mode")
    if win_percentage is not None:
        await set_setting(db, GLOBAL_WIN_PERCENTAGE, str(win_percentage), "Exit price move for forced wins (%)")
    if loss_percentage is not None:
        await set_setting(db, GLOBAL_LOSS_PERCENTAGE, str(loss_percentage), "Exit price move for forced losses (%)")

    logger.info(f"Global trade settings saved: mode={mode.value}, win={win_percentage}, loss={loss_percentage}")
    return await load_global_trade_settings(db)


# --- Payout tiers ---

async def list_asset_tiers(db: AsyncSession) -> List[GlobalAssetSettings]:
    result = await db.execute(
        select(GlobalAssetSettings).order_by(GlobalAssetSettings.delivery_time, GlobalAssetSettings.profit_level)
    )
    return result.scalars().all()


async def get_asset_tier(db: AsyncSession, delivery_time: str, profit_level: Decimal) -> Optional[GlobalAssetSettings]:
    result = await db.execute(
        select(GlobalAssetSettings).filter(
            GlobalAssetSettings.delivery_time == delivery_time,
            GlobalAssetSettings.profit_level == profit_level,
        )
    )
    return result.scalars().first()


async def create_asset_tier(db: AsyncSession, delivery_time: str, profit_level: Decimal, min_usdt: Decimal) -> GlobalAssetSettings:
    if await get_asset_tier(db, delivery_time, profit_level):
        raise ValidationFailed(f"A {profit_level}% tier for {delivery_time} already exists.")
    tier = GlobalAssetSettings(delivery_time=delivery_time, profit_level=profit_level, min_usdt=min_usdt)
    db.add(tier)
    await db.flush()
    await db.refresh(tier)
    return tier


async def delete_asset_tier(db: AsyncSession, tier_id: int) -> None:
    result = await db.execute(delete(GlobalAssetSettings).where(GlobalAssetSettings.id == tier_id))
    if result.rowcount == 0:
        raise NotFound(f"Asset setting {tier_id} not found.")


# --- Per-asset enable flag ---

async def get_asset_trading_setting(db: AsyncSession, asset_symbol: str) -> Optional[AssetTradingSettings]:
    result = await db.execute(
        select(AssetTradingSettings).filter(AssetTradingSettings.asset_symbol == asset_symbol.upper())
    )
    return result.scalars().first()


async def list_asset_trading_settings(db: AsyncSession) -> List[AssetTradingSettings]:
    result = await db.execute(select(AssetTradingSettings).order_by(AssetTradingSettings.asset_symbol))
    return result.scalars().all()


async def set_asset_enabled(db: AsyncSession, asset_symbol: str, is_enabled: bool) -> AssetTradingSettings:
    setting = await get_asset_trading_setting(db, asset_symbol)
    if setting is None:
        setting = AssetTradingSettings(asset_symbol=asset_symbol.upper(), is_enabled=is_enabled)
        db.add(setting)
    else:
        setting.is_enabled = is_enabled
    await db.flush()
    await db.refresh(setting)
    return setting
