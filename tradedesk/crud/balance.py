# tradedesk/crud/balance.py

"""
Balance ledger.

All mutations are expressed as SQL increments guarded by non-negativity
conditions, so concurrent writers never overwrite each other's deltas:

    UPDATE balances SET available = available + :d
    WHERE wallet_address = :w AND currency = :c AND available + :d >= 0

Each mutation also appends a LedgerEntry row in the same transaction.
Callers own the transaction (``async with db.begin()``) and publish
realtime events after it commits.
"""

from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tradedesk.core.exceptions import InsufficientFunds, ValidationFailed
from tradedesk.core.logging_config import ledger_logger
from tradedesk.database.models import Balance, LedgerEntry, utcnow

ZERO = Decimal("0")

PARTITIONS = ("available", "frozen", "real_balance", "real_winnings")


def _to_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


async def _apply_deltas(db: AsyncSession, wallet_address: str, currency: str, deltas: Dict[str, Decimal]) -> int:
    conditions = [Balance.wallet_address == wallet_address, Balance.currency == currency]
    values = {"updated_at": utcnow()}
    for name, delta in deltas.items():
        column = getattr(Balance, name)
        values[name] = column + delta
        if delta < 0:
            conditions.append(column + delta >= 0)

    stmt = (
        update(Balance)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount


async def get_balance(db: AsyncSession, wallet_address: str, currency: str) -> Optional[Balance]:
    result = await db.execute(
        select(Balance)
        .filter(Balance.wallet_address == wallet_address, Balance.currency == currency.upper())
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_balance_for_update(db: AsyncSession, wallet_address: str, currency: str) -> Optional[Balance]:
    """Reads a balance row with a row-level lock (no-op on SQLite)."""
    result = await db.execute(
        select(Balance)
        .filter(Balance.wallet_address == wallet_address, Balance.currency == currency.upper())
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def list_balances(db: AsyncSession, wallet_address: str) -> List[Balance]:
    result = await db.execute(
        select(Balance)
        .filter(Balance.wallet_address == wallet_address)
        .order_by(Balance.currency)
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()


async def record_entry(
    db: AsyncSession,
    wallet_address: str,
    currency: str,
    entry_type: str,
    deltas: Dict[str, Decimal],
    reference_id: Optional[str] = None,
    description: Optional[str] = None,
) -> LedgerEntry:
    entry = LedgerEntry(
        wallet_address=wallet_address,
        currency=currency,
        entry_type=entry_type,
        available_delta=deltas.get("available", ZERO),
        frozen_delta=deltas.get("frozen", ZERO),
        real_balance_delta=deltas.get("real_balance", ZERO),
        real_winnings_delta=deltas.get("real_winnings", ZERO),
        reference_id=reference_id,
        description=description,
    )
    db.add(entry)
    await db.flush()
    return entry


async def adjust(
    db: AsyncSession,
    wallet_address: str,
    currency: str,
    available=ZERO,
    frozen=ZERO,
    real_balance=ZERO,
    real_winnings=ZERO,
    *,
    entry_type: str,
    reference_id: Optional[str] = None,
    description: Optional[str] = None,
) -> Balance:
    """
    Applies the given deltas to one (wallet, currency) balance atomically.

    A missing balance row is created when every delta is non-negative.
    Raises InsufficientFunds when any partition would go negative.
    """
    currency = currency.upper()
    deltas = {
        "available": _to_decimal(available),
        "frozen": _to_decimal(frozen),
        "real_balance": _to_decimal(real_balance),
        "real_winnings": _to_decimal(real_winnings),
    }
    deltas = {name: delta for name, delta in deltas.items() if delta != 0}
    if not deltas:
        raise ValidationFailed("Balance adjustment requires at least one non-zero delta.")

    rowcount = await _apply_deltas(db, wallet_address, currency, deltas)

    if rowcount == 0:
        existing = await get_balance(db, wallet_address, currency)
        if existing is not None or any(delta < 0 for delta in deltas.values()):
            ledger_logger.warning(
                f"Insufficient funds for {wallet_address} {currency}: deltas={deltas} ({entry_type})"
            )
            raise InsufficientFunds(f"Insufficient {currency} balance.")

        try:
            async with db.begin_nested():
                db.add(Balance(
                    wallet_address=wallet_address,
                    currency=currency,
                    **{name: deltas.get(name, ZERO) for name in PARTITIONS}
                ))
            ledger_logger.info(f"Created {currency} balance for {wallet_address}")
        except IntegrityError:
            # Another transaction created the row first; apply as an increment instead
            rowcount = await _apply_deltas(db, wallet_address, currency, deltas)
            if rowcount == 0:
                raise InsufficientFunds(f"Insufficient {currency} balance.")

    await record_entry(db, wallet_address, currency, entry_type, deltas, reference_id, description)
    ledger_logger.info(
        f"Ledger {entry_type} for {wallet_address} {currency}: "
        + ", ".join(f"{name}{delta:+}" for name, delta in deltas.items())
        + (f" ref={reference_id}" if reference_id else "")
    )
    return await get_balance(db, wallet_address, currency)


async def spend(
    db: AsyncSession,
    wallet_address: str,
    currency: str,
    amount,
    *,
    move_to_frozen: bool = False,
    entry_type: str,
    reference_id: Optional[str] = None,
    description: Optional[str] = None,
) -> Balance:
    """
    Debits ``amount`` from available funds, consuming deposited principal
    (real_balance) before trading winnings (real_winnings).

    With ``move_to_frozen`` the debited amount is reserved in ``frozen``
    instead of leaving the balance (withdrawal requests).
    """
    currency = currency.upper()
    amount = _to_decimal(amount)
    if amount <= 0:
        raise ValidationFailed("Amount must be positive.")

    balance = await get_balance_for_update(db, wallet_address, currency)
    if balance is None:
        raise InsufficientFunds(f"No {currency} balance.")

    principal = _to_decimal(balance.real_balance)
    winnings = _to_decimal(balance.real_winnings)
    if _to_decimal(balance.available) < amount or principal + winnings < amount:
        ledger_logger.warning(
            f"Insufficient funds for {wallet_address} {currency}: spend {amount}, "
            f"available={balance.available}, real_balance={principal}, real_winnings={winnings}"
        )
        raise InsufficientFunds(f"Insufficient {currency} balance.")

    from_principal = min(principal, amount)
    from_winnings = amount - from_principal

    return await adjust(
        db,
        wallet_address,
        currency,
        available=-amount,
        frozen=amount if move_to_frozen else ZERO,
        real_balance=-from_principal,
        real_winnings=-from_winnings,
        entry_type=entry_type,
        reference_id=reference_id,
        description=description,
    )
