# tradedesk/services/outcome.py

"""
Outcome resolution for expiring trades.

Precedence, first match wins:

1. manual preset on the trade (WIN/LOSS set by a super admin)
2. global mode ``win`` / ``loss``
3. global mode ``custom``: the owner's ``trade_status`` decides
4. global mode ``automatic`` / ``disabled``: live market price

Branches 1-3 never read the market; their exit price is synthesised by
moving the entry price by a percentage in the direction of the result.
"""

import random
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from tradedesk.database.models import TradeResult
from tradedesk.schemas.settings import GlobalTradeSettings, TradeMode

PRICE_QUANT = Decimal("0.00000001")
HUNDRED = Decimal("100")

# Forced global outcomes: wins move the price by a random 1-5%, losses by a hair
GLOBAL_WIN_MOVE_RANGE = (1.0, 5.0)
GLOBAL_LOSS_MOVE = Decimal("0.002")

SOURCE_MANUAL = "manual"
SOURCE_GLOBAL = "global"
SOURCE_CUSTOM = "custom"
SOURCE_MARKET = "market"


@dataclass(frozen=True)
class Outcome:
    result: str
    exit_price: Decimal
    source: str


def needs_live_price(manual_preset: Optional[str], settings: GlobalTradeSettings) -> bool:
    """True when settlement has to consult the market."""
    if manual_preset:
        return False
    return settings.mode in (TradeMode.AUTOMATIC, TradeMode.DISABLED)


def synthetic_exit_price(entry_price: Decimal, side: str, result: str, move_percentage: Decimal) -> Decimal:
    """
    Entry price moved by ``move_percentage`` % so that the trade ends on
    ``result``: up for a winning buy or losing sell, down otherwise.
    """
    entry_price = Decimal(entry_price)
    goes_up = (side == "buy") == (result == TradeResult.WIN)
    factor = Decimal(move_percentage) / HUNDRED
    moved = entry_price * (1 + factor) if goes_up else entry_price * (1 - factor)
    return moved.quantize(PRICE_QUANT, rounding=ROUND_HALF_UP)


def market_result(entry_price: Decimal, side: str, live_price: Decimal) -> str:
    """Buy wins above entry, sell wins below entry; an unchanged price loses."""
    if side == "buy":
        return TradeResult.WIN if live_price > entry_price else TradeResult.LOSS
    return TradeResult.WIN if live_price < entry_price else TradeResult.LOSS


def resolve_outcome(
    entry_price: Decimal,
    side: str,
    settings: GlobalTradeSettings,
    manual_preset: Optional[str] = None,
    user_trade_status: Optional[str] = None,
    live_price: Optional[Decimal] = None,
    rng: Optional[random.Random] = None,
) -> Outcome:
    entry_price = Decimal(entry_price)

    if manual_preset:
        result = TradeResult.WIN if manual_preset.upper() == "WIN" else TradeResult.LOSS
        move = settings.win_percentage if result == TradeResult.WIN else settings.loss_percentage
        return Outcome(result, synthetic_exit_price(entry_price, side, result, move), SOURCE_MANUAL)

    if settings.mode in (TradeMode.WIN, TradeMode.LOSS):
        result = TradeResult.WIN if settings.mode == TradeMode.WIN else TradeResult.LOSS
        if result == TradeResult.WIN:
            low, high = GLOBAL_WIN_MOVE_RANGE
            move = Decimal(str(round((rng or random).uniform(low, high), 4)))
        else:
            move = GLOBAL_LOSS_MOVE
        return Outcome(result, synthetic_exit_price(entry_price, side, result, move), SOURCE_GLOBAL)

    if settings.mode == TradeMode.CUSTOM:
        result = TradeResult.WIN if (user_trade_status or "").lower() == "win" else TradeResult.LOSS
        move = settings.win_percentage if result == TradeResult.WIN else settings.loss_percentage
        return Outcome(result, synthetic_exit_price(entry_price, side, result, move), SOURCE_CUSTOM)

    if live_price is None:
        raise ValueError("Market settlement requires a live price.")
    live_price = Decimal(live_price)
    return Outcome(market_result(entry_price, side, live_price), live_price, SOURCE_MARKET)
