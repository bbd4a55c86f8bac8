import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tradedesk.core.exceptions import InsufficientFunds, ValidationFailed
from tradedesk.crud import balance as ledger
from tradedesk.database.models import LedgerEntry

WALLET = "0xabc0000000000000000000000000000000000001"


async def test_credit_creates_missing_balance_row(session_factory, get_balance):
    async with session_factory() as db:
        async with db.begin():
            balance = await ledger.adjust(db, WALLET, "usdt", available=Decimal("250"), real_balance=Decimal("250"),
                                          entry_type="deposit_approved")

    assert balance.currency == "USDT"
    assert balance.available == Decimal("250")
    assert balance.frozen == Decimal("0")
    stored = await get_balance()
    assert stored.real_balance == Decimal("250")


async def test_debit_of_missing_row_is_rejected(session_factory, get_balance):
    with pytest.raises(InsufficientFunds):
        async with session_factory() as db:
            async with db.begin():
                await ledger.adjust(db, WALLET, "USDT", available=Decimal("-1"), entry_type="manual")
    assert await get_balance() is None


async def test_overdraft_leaves_balance_untouched(session_factory, fund, get_balance):
    await fund(amount="100")

    with pytest.raises(InsufficientFunds):
        async with session_factory() as db:
            async with db.begin():
                await ledger.adjust(db, WALLET, "USDT", available=Decimal("-100.01"), entry_type="manual")

    balance = await get_balance()
    assert balance.available == Decimal("100")
    assert balance.real_balance == Decimal("100")


async def test_zero_adjustment_is_invalid(session_factory):
    async with session_factory() as db:
        with pytest.raises(ValidationFailed):
            await ledger.adjust(db, WALLET, "USDT", entry_type="noop")


async def test_spend_consumes_principal_before_winnings(session_factory, get_balance):
    async with session_factory() as db:
        async with db.begin():
            await ledger.adjust(db, WALLET, "USDT", available=Decimal("80"), real_balance=Decimal("50"),
                                real_winnings=Decimal("30"), entry_type="seed")

    async with session_factory() as db:
        async with db.begin():
            await ledger.spend(db, WALLET, "USDT", Decimal("60"), entry_type="trade_open")

    balance = await get_balance()
    assert balance.available == Decimal("20")
    assert balance.real_balance == Decimal("0")
    assert balance.real_winnings == Decimal("20")


async def test_spend_to_frozen_reserves_funds(session_factory, fund, get_balance):
    await fund(amount="500")

    async with session_factory() as db:
        async with db.begin():
            await ledger.spend(db, WALLET, "USDT", Decimal("120"), move_to_frozen=True, entry_type="withdrawal_request")

    balance = await get_balance()
    assert balance.available == Decimal("380")
    assert balance.frozen == Decimal("120")
    assert balance.real_balance == Decimal("380")


async def test_every_mutation_writes_a_ledger_entry(session_factory, fund):
    await fund(amount="100")
    async with session_factory() as db:
        async with db.begin():
            await ledger.spend(db, WALLET, "USDT", Decimal("40"), entry_type="trade_open", reference_id="7")

    async with session_factory() as db:
        entries = (await db.execute(select(LedgerEntry).order_by(LedgerEntry.id))).scalars().all()

    assert [e.entry_type for e in entries] == ["deposit_approved", "trade_open"]
    assert entries[1].available_delta == Decimal("-40")
    assert entries[1].reference_id == "7"


async def test_failed_spend_writes_no_ledger_entry(session_factory, fund):
    await fund(amount="10")
    with pytest.raises(InsufficientFunds):
        async with session_factory() as db:
            async with db.begin():
                await ledger.spend(db, WALLET, "USDT", Decimal("11"), entry_type="trade_open")

    async with session_factory() as db:
        count = (await db.execute(select(func.count(LedgerEntry.id)))).scalar_one()
    assert count == 1


async def test_concurrent_spends_never_overdraw(session_factory, fund, get_balance):
    await fund(amount="100")

    async def spend_30():
        async with session_factory() as db:
            async with db.begin():
                await ledger.spend(db, WALLET, "USDT", Decimal("30"), entry_type="trade_open")

    results = await asyncio.gather(*(spend_30() for _ in range(5)), return_exceptions=True)

    succeeded = [r for r in results if r is None]
    rejected = [r for r in results if isinstance(r, InsufficientFunds)]
    assert len(succeeded) == 3
    assert len(rejected) == 2
    balance = await get_balance()
    assert balance.available == Decimal("10")
    assert balance.real_balance == Decimal("10")
