# tradedesk/api/v1/endpoints/admin_settings.py

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tradedesk.core.permissions import Action
from tradedesk.core.security import require_action
from tradedesk.core.settings_cache import GLOBAL_TRADE_SETTINGS_KEY, SettingsCache
from tradedesk.crud import admin_settings as crud_settings
from tradedesk.database.models import Admin
from tradedesk.database.session import get_db
from tradedesk.dependencies.services import get_settings_cache
from tradedesk.schemas.settings import (
    AssetTradingSettingResponse,
    AssetTradingSettingUpdate,
    GlobalAssetSettingCreate,
    GlobalAssetSettingResponse,
    GlobalTradeSettings,
    GlobalTradeSettingsResponse,
    GlobalTradeSettingsUpdate,
)

import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin settings"])


def _trade_settings_response(settings: GlobalTradeSettings) -> GlobalTradeSettingsResponse:
    return GlobalTradeSettingsResponse(
        globalMode=settings.mode,
        globalWinPercentage=settings.win_percentage,
        globalLossPercentage=settings.loss_percentage,
    )


# --- Global trade mode ---

@router.get("/global-trade-settings", response_model=GlobalTradeSettingsResponse, summary="Get global trade mode")
async def get_global_trade_settings(
    admin: Admin = Depends(require_action(Action.MANAGE_TRADE_SETTINGS)),
    db: AsyncSession = Depends(get_db),
):
    return _trade_settings_response(await crud_settings.load_global_trade_settings(db))


@router.post("/global-trade-settings", response_model=GlobalTradeSettingsResponse, summary="Set global trade mode")
async def update_global_trade_settings(
    body: GlobalTradeSettingsUpdate,
    admin: Admin = Depends(require_action(Action.MANAGE_TRADE_SETTINGS)),
    db: AsyncSession = Depends(get_db),
    settings_cache: SettingsCache = Depends(get_settings_cache),
):
    """
    Custom mode requires a win percentage in [0.01, 99.99] and a loss
    percentage in [0.001, 99.99].
    """
    saved = await crud_settings.save_global_trade_settings(
        db, body.global_mode, body.win_percentage, body.loss_percentage
    )
    await db.commit()
    settings_cache.invalidate(GLOBAL_TRADE_SETTINGS_KEY)
    logger.info(f"Admin {admin.username} set global trade mode to {saved.mode.value}")
    return _trade_settings_response(saved)


# --- Payout tiers ---

@router.get("/global-asset-settings", response_model=List[GlobalAssetSettingResponse], summary="List payout tiers")
async def list_global_asset_settings(
    admin: Admin = Depends(require_action(Action.MANAGE_TRADE_SETTINGS)),
    db: AsyncSession = Depends(get_db),
):
    return await crud_settings.list_asset_tiers(db)


@router.post(
    "/global-asset-settings",
    response_model=GlobalAssetSettingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a payout tier",
)
async def create_global_asset_setting(
    body: GlobalAssetSettingCreate,
    admin: Admin = Depends(require_action(Action.MANAGE_TRADE_SETTINGS)),
    db: AsyncSession = Depends(get_db),
):
    tier = await crud_settings.create_asset_tier(db, body.delivery_time, body.profit_level, body.min_usdt)
    await db.commit()
    return tier


@router.delete("/global-asset-settings/{tier_id}", summary="Delete a payout tier")
async def delete_global_asset_setting(
    tier_id: int,
    admin: Admin = Depends(require_action(Action.MANAGE_TRADE_SETTINGS)),
    db: AsyncSession = Depends(get_db),
):
    await crud_settings.delete_asset_tier(db, tier_id)
    await db.commit()
    return {"success": True, "id": tier_id}


# --- Tradable assets ---

@router.get("/asset-trading-settings", response_model=List[AssetTradingSettingResponse], summary="List tradable assets")
async def list_asset_trading_settings(
    admin: Admin = Depends(require_action(Action.MANAGE_TRADE_SETTINGS)),
    db: AsyncSession = Depends(get_db),
):
    return await crud_settings.list_asset_trading_settings(db)


@router.post("/asset-trading-settings", response_model=AssetTradingSettingResponse, summary="Enable or disable an asset")
async def update_asset_trading_setting(
    body: AssetTradingSettingUpdate,
    admin: Admin = Depends(require_action(Action.MANAGE_TRADE_SETTINGS)),
    db: AsyncSession = Depends(get_db),
):
    setting = await crud_settings.set_asset_enabled(db, body.asset_symbol, body.is_enabled)
    await db.commit()
    return setting
