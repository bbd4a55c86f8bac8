import random
from decimal import Decimal

import pytest

from tradedesk.schemas.settings import GlobalTradeSettings, TradeMode
from tradedesk.services.outcome import (
    market_result,
    needs_live_price,
    resolve_outcome,
    synthetic_exit_price,
)


def settings(mode, win="2.5", loss="0.002"):
    return GlobalTradeSettings(mode=mode, win_percentage=Decimal(win), loss_percentage=Decimal(loss))


def test_manual_preset_beats_global_mode():
    outcome = resolve_outcome(Decimal("50000"), "buy", settings(TradeMode.LOSS), manual_preset="WIN")
    assert outcome.result == "win"
    assert outcome.source == "manual"
    assert outcome.exit_price == Decimal("51250")


def test_manual_preset_ignores_live_price():
    outcome = resolve_outcome(Decimal("50000"), "buy", settings(TradeMode.AUTOMATIC), manual_preset="WIN",
                              live_price=Decimal("40000"))
    assert outcome.result == "win"
    assert outcome.exit_price > Decimal("50000")


def test_global_win_moves_price_between_one_and_five_percent():
    outcome = resolve_outcome(Decimal("100"), "buy", settings(TradeMode.WIN), rng=random.Random(1))
    assert outcome.result == "win"
    assert Decimal("101") <= outcome.exit_price <= Decimal("105")


def test_global_win_on_sell_moves_price_down():
    outcome = resolve_outcome(Decimal("100"), "sell", settings(TradeMode.WIN), rng=random.Random(1))
    assert outcome.result == "win"
    assert Decimal("95") <= outcome.exit_price <= Decimal("99")


def test_global_loss_moves_price_by_a_hair():
    outcome = resolve_outcome(Decimal("100"), "buy", settings(TradeMode.LOSS))
    assert outcome.result == "loss"
    assert outcome.exit_price == Decimal("99.998")


def test_custom_mode_follows_user_trade_status():
    win = resolve_outcome(Decimal("100"), "buy", settings(TradeMode.CUSTOM, win="10"), user_trade_status="win")
    assert win.result == "win"
    assert win.exit_price == Decimal("110")
    assert win.source == "custom"

    loss = resolve_outcome(Decimal("100"), "buy", settings(TradeMode.CUSTOM), user_trade_status="automatic")
    assert loss.result == "loss"
    assert loss.exit_price == Decimal("99.998")


def test_custom_mode_without_user_status_loses():
    outcome = resolve_outcome(Decimal("100"), "sell", settings(TradeMode.CUSTOM))
    assert outcome.result == "loss"
    assert outcome.exit_price == Decimal("100.002")


@pytest.mark.parametrize("side,live,expected", [
    ("buy", "50500", "win"),
    ("buy", "49500", "loss"),
    ("sell", "49500", "win"),
    ("sell", "50500", "loss"),
    ("buy", "50000", "loss"),
    ("sell", "50000", "loss"),
])
def test_market_result(side, live, expected):
    assert market_result(Decimal("50000"), side, Decimal(live)) == expected


def test_market_outcome_records_live_price():
    outcome = resolve_outcome(Decimal("50000"), "buy", settings(TradeMode.DISABLED), live_price=Decimal("50000"))
    assert outcome.result == "loss"
    assert outcome.exit_price == Decimal("50000")
    assert outcome.source == "market"


def test_market_mode_requires_live_price():
    with pytest.raises(ValueError):
        resolve_outcome(Decimal("50000"), "buy", settings(TradeMode.AUTOMATIC))


def test_needs_live_price():
    assert needs_live_price(None, settings(TradeMode.AUTOMATIC))
    assert needs_live_price(None, settings(TradeMode.DISABLED))
    assert not needs_live_price("LOSS", settings(TradeMode.AUTOMATIC))
    assert not needs_live_price(None, settings(TradeMode.CUSTOM))
    assert not needs_live_price(None, settings(TradeMode.WIN))


def test_synthetic_exit_price_is_quantized():
    assert synthetic_exit_price(Decimal("3"), "buy", "loss", Decimal("0.001")) == Decimal("2.99997")
