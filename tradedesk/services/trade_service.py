# tradedesk/services/trade_service.py

import datetime
import re
from decimal import Decimal

from sqlalchemy.orm import sessionmaker

from tradedesk.core.events import EventPublisher
from tradedesk.core.exceptions import Forbidden, ValidationFailed
from tradedesk.core.logging_config import settlement_logger
from tradedesk.crud import admin_settings as crud_settings
from tradedesk.crud import balance as ledger
from tradedesk.crud import trade as crud_trade
from tradedesk.crud import user as crud_user
from tradedesk.database.models import Trade, utcnow
from tradedesk.services.price_oracle import PriceOracle, normalize_symbol

TRADE_CURRENCY = "USDT"

DURATION_PATTERN = re.compile(r"^(\d+)(s|m|h|d)$")
DURATION_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_duration(duration: str) -> datetime.timedelta:
    """'30s' -> 30 seconds, '5m' -> 5 minutes, '1h', '1d'."""
    match = DURATION_PATTERN.match(duration or "")
    if not match or int(match.group(1)) <= 0:
        raise ValidationFailed(f"Invalid duration '{duration}'. Use e.g. 30s, 5m, 1h or 1d.")
    return datetime.timedelta(**{DURATION_UNITS[match.group(2)]: int(match.group(1))})


def profit_multiplier(profit_level: Decimal) -> Decimal:
    """A profit level of 80 (%) pays out 1.8x the stake on a win."""
    return Decimal("1") + Decimal(profit_level) / Decimal("100")


async def open_trade(
    session_factory: sessionmaker,
    price_oracle: PriceOracle,
    publisher: EventPublisher,
    wallet_address: str,
    asset: str,
    side: str,
    amount_usd: Decimal,
    duration: str,
    profit_level: Decimal,
) -> Trade:
    """
    Opens a timed trade: validates the request, takes the entry price from
    the oracle, then debits the stake and inserts the trade in one
    transaction.
    """
    side = side.lower()
    if side not in ("buy", "sell"):
        raise ValidationFailed("Side must be 'buy' or 'sell'.")
    amount_usd = Decimal(amount_usd)
    if amount_usd <= 0:
        raise ValidationFailed("Amount must be positive.")
    lifetime = parse_duration(duration)
    asset = normalize_symbol(asset)

    async with session_factory() as db:
        user = await crud_user.get_user_by_wallet(db, wallet_address)
        if user is None:
            raise ValidationFailed("Unknown wallet.")
        if user.is_suspended:
            raise Forbidden("Account is suspended.")
        if user.trade_limit is not None and user.trade_limit <= 0:
            raise ValidationFailed("Trade limit reached.")

        asset_setting = await crud_settings.get_asset_trading_setting(db, asset)
        if asset_setting is None or not asset_setting.is_enabled:
            raise ValidationFailed(f"Trading {asset} is not available.")

        tier = await crud_settings.get_asset_tier(db, duration, Decimal(profit_level))
        if tier is None:
            raise ValidationFailed(f"No {profit_level}% payout tier for {duration}.")
        if amount_usd < Decimal(tier.min_usdt):
            raise ValidationFailed(f"Minimum stake for {duration} at {profit_level}% is {tier.min_usdt} USDT.")
        wallet_address = user.wallet_address

    # Outside any transaction
    entry_price = await price_oracle.get_price(asset)

    async with session_factory() as db:
        async with db.begin():
            if not await crud_user.consume_trade_limit(db, wallet_address):
                raise ValidationFailed("Trade limit reached.")
            now = utcnow()
            trade = await crud_trade.create_trade(
                db,
                wallet_address=wallet_address,
                asset=asset,
                side=side,
                entry_price=entry_price,
                amount_usd=amount_usd,
                duration=duration,
                profit_multiplier=profit_multiplier(profit_level),
                fee=Decimal("0"),
                created_at=now,
                expires_at=now + lifetime,
            )
            await ledger.spend(
                db,
                wallet_address,
                TRADE_CURRENCY,
                amount_usd,
                entry_type="trade_open",
                reference_id=str(trade.id),
                description=f"Stake for {side} {asset} {duration}",
            )

    settlement_logger.info(
        f"Trade {trade.id} opened: {wallet_address} {side} {asset} {amount_usd} USDT @ {entry_price}, expires {trade.expires_at}"
    )
    await publisher.balance_updated(wallet_address)
    await publisher.trade_created(wallet_address, trade.id)
    return trade
