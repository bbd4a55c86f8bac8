from decimal import Decimal

import pytest
from sqlalchemy import select

from tradedesk.core.exceptions import InsufficientFunds, PriceUnavailable, ValidationFailed
from tradedesk.database.models import LedgerEntry
from tradedesk.services.conversion import conversion_rate, convert

WALLET = "0xabc0000000000000000000000000000000000001"


async def test_rate_is_ratio_of_usd_prices(price_oracle):
    assert await conversion_rate(price_oracle, "BTC", "ETH") == Decimal("50000") / Decimal("3000")
    assert await conversion_rate(price_oracle, "USDT", "SOL") == Decimal("0.01")


async def test_btc_to_usdt(session_factory, price_oracle, publisher, make_user, fund, get_balance):
    await make_user()
    await fund(amount="0.5", currency="BTC")

    source, target = await convert(session_factory, price_oracle, publisher, WALLET, "btc", "usdt", Decimal("0.1"))

    assert source.available == Decimal("0.4")
    assert source.real_balance == Decimal("0.4")
    assert target.available == Decimal("5000")
    assert target.real_balance == Decimal("5000")
    assert publisher.names() == ["balance:updated"]

    async with session_factory() as db:
        entries = (await db.execute(
            select(LedgerEntry.entry_type).filter(LedgerEntry.entry_type.like("conversion_%"))
        )).scalars().all()
    assert sorted(entries) == ["conversion_in", "conversion_out"]


async def test_price_outage_leaves_balances_alone(session_factory, price_oracle, publisher, make_user, fund, get_balance):
    await make_user()
    await fund(amount="100")
    price_oracle.fail()

    with pytest.raises(PriceUnavailable):
        await convert(session_factory, price_oracle, publisher, WALLET, "USDT", "ETH", Decimal("50"))

    assert (await get_balance()).available == Decimal("100")
    assert await get_balance(currency="ETH") is None
    assert publisher.events == []


async def test_overdraw_credits_nothing(session_factory, price_oracle, publisher, make_user, fund, get_balance):
    await make_user()
    await fund(amount="10")

    with pytest.raises(InsufficientFunds):
        await convert(session_factory, price_oracle, publisher, WALLET, "USDT", "BTC", Decimal("11"))

    assert (await get_balance()).available == Decimal("10")
    assert await get_balance(currency="BTC") is None


async def test_same_currency_is_refused(session_factory, price_oracle, publisher):
    with pytest.raises(ValidationFailed):
        await convert(session_factory, price_oracle, publisher, WALLET, "usdt", "USDT", Decimal("1"))
