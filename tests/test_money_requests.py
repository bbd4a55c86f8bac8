import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from tradedesk.core.exceptions import (
    AlreadyProcessed,
    Forbidden,
    InsufficientFunds,
    NotFound,
    PriceUnavailable,
    ValidationFailed,
)
from tradedesk.crud import user as crud_user
from tradedesk.crud import withdrawal as crud_withdrawal
from tradedesk.database.models import Withdrawal
from tradedesk.services import approvals

WALLET = "0xabc0000000000000000000000000000000000001"


async def _request(session_factory, price_oracle, publisher, amount="100", currency="USDT"):
    return await approvals.request_withdrawal(
        session_factory, price_oracle, publisher, WALLET, currency, Decimal(amount), "0xdestination"
    )


# --- Withdrawals ---

async def test_withdrawal_request_freezes_funds(session_factory, price_oracle, publisher, make_user, fund, get_balance):
    await make_user()
    await fund(amount="500")

    withdrawal = await _request(session_factory, price_oracle, publisher)

    assert withdrawal.status == "pending"
    balance = await get_balance()
    assert balance.available == Decimal("400")
    assert balance.frozen == Decimal("100")
    assert "withdrawal:created" in publisher.names()


async def test_withdrawal_below_minimum_is_rejected(session_factory, price_oracle, publisher, make_user, fund):
    await make_user()
    await fund(amount="500")
    with pytest.raises(ValidationFailed):
        await _request(session_factory, price_oracle, publisher, amount="5")


async def test_withdrawal_without_funds_creates_nothing(session_factory, price_oracle, publisher, make_user, fund):
    await make_user()
    await fund(amount="50")

    with pytest.raises(InsufficientFunds):
        await _request(session_factory, price_oracle, publisher, amount="100")

    async with session_factory() as db:
        count = (await db.execute(select(func.count(Withdrawal.id)))).scalar_one()
    assert count == 0


async def test_crypto_withdrawal_freezes_converted_amount(session_factory, price_oracle, publisher, make_user, fund, get_balance):
    await make_user()
    await fund(amount="1", currency="BTC")

    withdrawal = await _request(session_factory, price_oracle, publisher, amount="100", currency="BTC")

    assert withdrawal.crypto_amount == Decimal("0.002")
    assert withdrawal.conversion_rate == Decimal("50000")
    assert withdrawal.usdt_amount == Decimal("100")
    balance = await get_balance(currency="BTC")
    assert balance.frozen == Decimal("0.002")
    assert balance.available == Decimal("0.998")


async def test_withdrawal_without_price_freezes_nothing(session_factory, price_oracle, publisher, make_user, fund, get_balance):
    await make_user()
    await fund(amount="1", currency="BTC")
    price_oracle.fail()

    with pytest.raises(PriceUnavailable):
        await _request(session_factory, price_oracle, publisher, amount="100", currency="BTC")

    balance = await get_balance(currency="BTC")
    assert balance.available == Decimal("1")
    assert balance.frozen == Decimal("0")
    assert publisher.events == []


async def test_withdrawal_of_unpriced_currency_is_refused(session_factory, price_oracle, publisher, make_user, fund):
    await make_user()
    await fund(amount="1000", currency="DOGE")

    with pytest.raises(PriceUnavailable):
        await _request(session_factory, price_oracle, publisher, amount="100", currency="DOGE")


async def test_concurrent_approvals_release_once(session_factory, price_oracle, publisher, make_user, make_admin, fund, get_balance):
    await make_user()
    await fund(amount="500")
    admin = await make_admin()
    withdrawal = await _request(session_factory, price_oracle, publisher)

    publisher.events.clear()
    results = await asyncio.gather(
        approvals.approve_withdrawal(session_factory, publisher, withdrawal.id, "0xtx1", admin),
        approvals.approve_withdrawal(session_factory, publisher, withdrawal.id, "0xtx2", admin),
        return_exceptions=True,
    )

    assert sum(1 for r in results if not isinstance(r, Exception)) == 1
    assert all(isinstance(r, AlreadyProcessed) for r in results if isinstance(r, Exception))

    balance = await get_balance()
    assert balance.frozen == Decimal("0")
    assert balance.available == Decimal("400")

    async with session_factory() as db:
        stored = await crud_withdrawal.get_withdrawal_by_id(db, withdrawal.id)
    assert stored.status == "approved"
    assert stored.tx_hash in ("0xtx1", "0xtx2")
    assert stored.processed_by == admin.username

    assert publisher.names().count("withdrawal:updated") == 1
    assert publisher.names().count("balance:updated") == 1
    assert publisher.of_type("withdrawal:updated")[0]["status"] == "approved"


async def test_reject_restores_pre_request_balance(session_factory, price_oracle, publisher, make_user, make_admin, fund, get_balance):
    await make_user()
    await fund(amount="500")
    admin = await make_admin()
    withdrawal = await _request(session_factory, price_oracle, publisher, amount="120")

    balance = await approvals.reject_withdrawal(session_factory, publisher, withdrawal.id, admin, admin_notes="bad address")

    assert balance.available == Decimal("500")
    assert balance.frozen == Decimal("0")
    assert balance.real_balance == Decimal("500")

    with pytest.raises(AlreadyProcessed):
        await approvals.approve_withdrawal(session_factory, publisher, withdrawal.id, "0xtx", admin)
    assert (await get_balance()).available == Decimal("500")
    assert publisher.of_type("withdrawal:updated") == [
        {"id": withdrawal.id, "walletAddress": WALLET, "status": "rejected"}
    ]


async def test_approve_requires_tx_hash(session_factory, price_oracle, publisher, make_user, make_admin, fund):
    await make_user()
    await fund(amount="500")
    admin = await make_admin()
    withdrawal = await _request(session_factory, price_oracle, publisher)

    with pytest.raises(ValidationFailed):
        await approvals.approve_withdrawal(session_factory, publisher, withdrawal.id, "  ", admin)


async def test_approve_unknown_withdrawal(session_factory, publisher, make_admin):
    admin = await make_admin()
    with pytest.raises(NotFound):
        await approvals.approve_withdrawal(session_factory, publisher, 404, "0xtx", admin)


async def test_employee_only_handles_assigned_users(session_factory, price_oracle, publisher, make_user, make_admin, fund, get_balance):
    user = await make_user()
    await fund(amount="500")
    employee = await make_admin(username="emp", role="EMPLOYEE")
    withdrawal = await _request(session_factory, price_oracle, publisher)

    with pytest.raises(Forbidden):
        await approvals.approve_withdrawal(session_factory, publisher, withdrawal.id, "0xtx", employee)

    async with session_factory() as db:
        stored = await crud_user.get_user_by_wallet(db, user.wallet_address)
        await crud_user.assign_employee(db, stored, employee.id)
        await db.commit()

    await approvals.approve_withdrawal(session_factory, publisher, withdrawal.id, "0xtx", employee)
    assert (await get_balance()).frozen == Decimal("0")


# --- Deposits ---

async def test_deposit_approval_credits_principal(session_factory, publisher, make_user, make_admin, get_balance):
    await make_user()
    admin = await make_admin()
    deposit = await approvals.submit_deposit(session_factory, publisher, WALLET, "usdt", Decimal("250"), "0xdep1")
    assert deposit.status == "pending"
    assert await get_balance() is None

    balance = await approvals.approve_deposit(session_factory, publisher, deposit.id, admin)

    assert balance.available == Decimal("250")
    assert balance.real_balance == Decimal("250")
    assert publisher.names() == ["deposit:created", "deposit:updated", "balance:updated"]
    assert publisher.of_type("deposit:updated")[0]["status"] == "approved"
    with pytest.raises(AlreadyProcessed):
        await approvals.approve_deposit(session_factory, publisher, deposit.id, admin)
    assert (await get_balance()).available == Decimal("250")


async def test_deposit_adjusted_amount(session_factory, publisher, make_user, make_admin, get_balance):
    await make_user()
    admin = await make_admin()
    deposit = await approvals.submit_deposit(session_factory, publisher, WALLET, "USDT", Decimal("250"), "0xdep2")

    balance = await approvals.approve_deposit(session_factory, publisher, deposit.id, admin, adjusted_amount=Decimal("240"))
    assert balance.available == Decimal("240")


async def test_duplicate_tx_hash_is_rejected(session_factory, publisher, make_user):
    await make_user()
    await approvals.submit_deposit(session_factory, publisher, WALLET, "USDT", Decimal("10"), "0xsame")
    with pytest.raises(ValidationFailed):
        await approvals.submit_deposit(session_factory, publisher, WALLET, "USDT", Decimal("10"), "0xsame")


async def test_rejected_deposit_credits_nothing(session_factory, publisher, make_user, make_admin, get_balance):
    await make_user()
    admin = await make_admin()
    deposit = await approvals.submit_deposit(session_factory, publisher, WALLET, "USDT", Decimal("99"), "0xdep3")

    rejected = await approvals.reject_deposit(session_factory, publisher, deposit.id, admin)

    assert rejected.status == "rejected"
    assert await get_balance() is None
    assert publisher.names() == ["deposit:created", "deposit:updated"]
    with pytest.raises(AlreadyProcessed):
        await approvals.approve_deposit(session_factory, publisher, deposit.id, admin)
