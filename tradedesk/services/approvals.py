# tradedesk/services/approvals.py

"""
Withdrawal and deposit requests: ``pending -> approved | rejected``.

Every decision is one transaction whose first statement is the guarded
status transition. A duplicate approve or reject (double click, retried
request, concurrent admin) loses that transition and raises
AlreadyProcessed before touching any balance.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from tradedesk.core.config import get_settings
from tradedesk.core.events import EventPublisher
from tradedesk.core.exceptions import (
    AlreadyProcessed,
    Forbidden,
    InsufficientFunds,
    NotFound,
    ValidationFailed,
)
from tradedesk.core.logging_config import error_logger, money_requests_logger
from tradedesk.core.permissions import Action, is_allowed
from tradedesk.crud import balance as ledger
from tradedesk.crud import deposit as crud_deposit
from tradedesk.crud import user as crud_user
from tradedesk.crud import withdrawal as crud_withdrawal
from tradedesk.crud.state_guard import transition_or_raise
from tradedesk.database.models import Admin, Balance, Deposit, RequestStatus, Withdrawal, utcnow
from tradedesk.services.price_oracle import PriceOracle

QUANT = Decimal("0.00000001")


async def ensure_can_manage_wallet(db: AsyncSession, admin: Admin, wallet_address: str) -> None:
    """
    Roles without users:view_all (employees) may only act on users
    assigned to them.
    """
    if is_allowed(admin.role, Action.VIEW_ALL_USERS):
        return
    user = await crud_user.get_user_by_wallet(db, wallet_address)
    if user is None or user.assigned_employee_id != admin.id:
        money_requests_logger.warning(f"Admin {admin.username} denied access to unassigned wallet {wallet_address}")
        raise Forbidden("This user is not assigned to you.")


# --- Withdrawals ---

async def request_withdrawal(
    session_factory: sessionmaker,
    price_oracle: PriceOracle,
    publisher: EventPublisher,
    wallet_address: str,
    currency: str,
    usdt_amount: Decimal,
    destination_address: str,
    fee: Decimal = Decimal("0"),
) -> Withdrawal:
    """
    Freezes ``usdt_amount / price(currency) + fee`` of ``currency`` and
    records a pending withdrawal in the same transaction. The price comes
    from the oracle before the transaction opens.
    """
    currency = currency.upper()
    usdt_amount = Decimal(usdt_amount)
    if usdt_amount < get_settings().MIN_WITHDRAWAL_USDT:
        raise ValidationFailed(f"Minimum withdrawal is {get_settings().MIN_WITHDRAWAL_USDT} USDT.")
    if not destination_address or not destination_address.strip():
        raise ValidationFailed("Destination address is required.")

    conversion_rate = await price_oracle.get_price(currency)
    crypto_amount = (usdt_amount / conversion_rate).quantize(QUANT)
    fee = Decimal(fee)

    async with session_factory() as db:
        async with db.begin():
            withdrawal = await crud_withdrawal.create_withdrawal(
                db,
                wallet_address=wallet_address,
                currency=currency,
                crypto_amount=crypto_amount,
                usdt_amount=usdt_amount,
                conversion_rate=conversion_rate,
                fee=fee,
                status=RequestStatus.PENDING,
                destination_address=destination_address.strip(),
            )
            await ledger.spend(
                db,
                wallet_address,
                currency,
                crypto_amount + fee,
                move_to_frozen=True,
                entry_type="withdrawal_request",
                reference_id=str(withdrawal.id),
                description=f"Withdrawal {withdrawal.id} to {withdrawal.destination_address}",
            )

    money_requests_logger.info(
        f"Withdrawal {withdrawal.id} requested by {wallet_address}: {crypto_amount} {currency} (~{usdt_amount} USDT), fee {fee}"
    )
    await publisher.request_created("withdrawal", withdrawal.id, wallet_address,
                                    currency=currency, usdtAmount=usdt_amount)
    await publisher.balance_updated(wallet_address)
    return withdrawal


async def _load_pending(db: AsyncSession, getter, kind: str, request_id: int, admin: Admin):
    record = await getter(db, request_id)
    if record is None:
        raise NotFound(f"{kind.capitalize()} {request_id} not found.")
    await ensure_can_manage_wallet(db, admin, record.wallet_address)
    if record.status != RequestStatus.PENDING:
        raise AlreadyProcessed(f"{kind.capitalize()} {request_id} has already been processed.")
    return record


async def approve_withdrawal(
    session_factory: sessionmaker,
    publisher: EventPublisher,
    withdrawal_id: int,
    tx_hash: str,
    admin: Admin,
    admin_notes: Optional[str] = None,
) -> Balance:
    """
    Marks the withdrawal paid out and releases the frozen reservation.
    Returns the resulting balance.
    """
    if not tx_hash or not tx_hash.strip():
        raise ValidationFailed("Transaction hash is required.")

    async with session_factory() as db:
        withdrawal = await _load_pending(db, crud_withdrawal.get_withdrawal_by_id, "withdrawal", withdrawal_id, admin)

    async with session_factory() as db:
        async with db.begin():
            await transition_or_raise(
                db, Withdrawal, withdrawal_id, RequestStatus.PENDING, RequestStatus.APPROVED,
                tx_hash=tx_hash.strip(),
                admin_notes=admin_notes,
                processed_by=admin.username,
                processed_at=utcnow(),
            )
            try:
                balance = await ledger.adjust(
                    db,
                    withdrawal.wallet_address,
                    withdrawal.currency,
                    frozen=-withdrawal.frozen_amount,
                    entry_type="withdrawal_approved",
                    reference_id=str(withdrawal_id),
                    description=f"Withdrawal {withdrawal_id} paid out, tx {tx_hash.strip()}",
                )
            except InsufficientFunds as e:
                error_logger.error(f"Frozen balance short while approving withdrawal {withdrawal_id}: {e.detail}")
                raise

    money_requests_logger.info(f"Withdrawal {withdrawal_id} approved by {admin.username}, tx {tx_hash}")
    await publisher.request_updated("withdrawal", withdrawal_id, RequestStatus.APPROVED, withdrawal.wallet_address)
    await publisher.balance_updated(withdrawal.wallet_address)
    return balance


async def reject_withdrawal(
    session_factory: sessionmaker,
    publisher: EventPublisher,
    withdrawal_id: int,
    admin: Admin,
    admin_notes: Optional[str] = None,
) -> Balance:
    """
    Returns the frozen reservation to available funds, restoring the
    balance to its pre-request state.
    """
    async with session_factory() as db:
        withdrawal = await _load_pending(db, crud_withdrawal.get_withdrawal_by_id, "withdrawal", withdrawal_id, admin)

    refund = withdrawal.frozen_amount
    async with session_factory() as db:
        async with db.begin():
            await transition_or_raise(
                db, Withdrawal, withdrawal_id, RequestStatus.PENDING, RequestStatus.REJECTED,
                admin_notes=admin_notes or "Rejected by admin",
                processed_by=admin.username,
                processed_at=utcnow(),
                rejected_at=utcnow(),
            )
            try:
                balance = await ledger.adjust(
                    db,
                    withdrawal.wallet_address,
                    withdrawal.currency,
                    available=refund,
                    real_balance=refund,
                    frozen=-refund,
                    entry_type="withdrawal_rejected",
                    reference_id=str(withdrawal_id),
                    description=f"Withdrawal {withdrawal_id} rejected, funds returned",
                )
            except InsufficientFunds as e:
                error_logger.error(f"Frozen balance short while rejecting withdrawal {withdrawal_id}: {e.detail}")
                raise

    money_requests_logger.info(f"Withdrawal {withdrawal_id} rejected by {admin.username}, {refund} {withdrawal.currency} returned")
    await publisher.request_updated("withdrawal", withdrawal_id, RequestStatus.REJECTED, withdrawal.wallet_address)
    await publisher.balance_updated(withdrawal.wallet_address)
    return balance


# --- Deposits ---

async def submit_deposit(
    session_factory: sessionmaker,
    publisher: EventPublisher,
    wallet_address: str,
    currency: str,
    crypto_amount: Decimal,
    tx_hash: str,
    usdt_amount: Optional[Decimal] = None,
    conversion_rate: Decimal = Decimal("1"),
) -> Deposit:
    currency = currency.upper()
    crypto_amount = Decimal(crypto_amount)
    if crypto_amount <= 0:
        raise ValidationFailed("Amount must be positive.")
    tx_hash = (tx_hash or "").strip()
    if not tx_hash:
        raise ValidationFailed("Transaction hash is required.")
    conversion_rate = Decimal(conversion_rate)
    if usdt_amount is None:
        usdt_amount = (crypto_amount * conversion_rate).quantize(QUANT)

    async with session_factory() as db:
        if await crud_deposit.get_deposit_by_tx_hash(db, tx_hash):
            raise ValidationFailed("This transaction hash has already been submitted.")

    try:
        async with session_factory() as db:
            async with db.begin():
                deposit = await crud_deposit.create_deposit(
                    db,
                    wallet_address=wallet_address,
                    currency=currency,
                    crypto_amount=crypto_amount,
                    usdt_amount=Decimal(usdt_amount),
                    conversion_rate=conversion_rate,
                    tx_hash=tx_hash,
                    status=RequestStatus.PENDING,
                )
    except IntegrityError:
        # Lost the race against a concurrent submission of the same hash
        raise ValidationFailed("This transaction hash has already been submitted.")

    money_requests_logger.info(f"Deposit {deposit.id} submitted by {wallet_address}: {crypto_amount} {currency}, tx {tx_hash}")
    await publisher.request_created("deposit", deposit.id, wallet_address, currency=currency, amount=crypto_amount)
    return deposit


async def approve_deposit(
    session_factory: sessionmaker,
    publisher: EventPublisher,
    deposit_id: int,
    admin: Admin,
    admin_notes: Optional[str] = None,
    adjusted_amount: Optional[Decimal] = None,
) -> Balance:
    """
    Credits the deposit (or the amount the admin verified on chain,
    ``adjusted_amount``) to available funds and deposited principal.
    """
    if adjusted_amount is not None and Decimal(adjusted_amount) <= 0:
        raise ValidationFailed("Adjusted amount must be positive.")

    async with session_factory() as db:
        deposit = await _load_pending(db, crud_deposit.get_deposit_by_id, "deposit", deposit_id, admin)

    amount = Decimal(adjusted_amount) if adjusted_amount is not None else Decimal(deposit.crypto_amount)
    values = {"admin_notes": admin_notes, "processed_by": admin.username, "processed_at": utcnow()}
    if adjusted_amount is not None:
        values["crypto_amount"] = amount
        values["usdt_amount"] = (amount * Decimal(deposit.conversion_rate)).quantize(QUANT)

    async with session_factory() as db:
        async with db.begin():
            await transition_or_raise(db, Deposit, deposit_id, RequestStatus.PENDING, RequestStatus.APPROVED, **values)
            balance = await ledger.adjust(
                db,
                deposit.wallet_address,
                deposit.currency,
                available=amount,
                real_balance=amount,
                entry_type="deposit_approved",
                reference_id=str(deposit_id),
                description=f"Deposit {deposit_id} approved, tx {deposit.tx_hash}",
            )

    money_requests_logger.info(f"Deposit {deposit_id} approved by {admin.username}: {amount} {deposit.currency}")
    await publisher.request_updated("deposit", deposit_id, RequestStatus.APPROVED, deposit.wallet_address)
    await publisher.balance_updated(deposit.wallet_address)
    return balance


async def reject_deposit(
    session_factory: sessionmaker,
    publisher: EventPublisher,
    deposit_id: int,
    admin: Admin,
    admin_notes: Optional[str] = None,
) -> Deposit:
    async with session_factory() as db:
        deposit = await _load_pending(db, crud_deposit.get_deposit_by_id, "deposit", deposit_id, admin)

    async with session_factory() as db:
        async with db.begin():
            await transition_or_raise(
                db, Deposit, deposit_id, RequestStatus.PENDING, RequestStatus.REJECTED,
                admin_notes=admin_notes or "Rejected by admin",
                processed_by=admin.username,
                processed_at=utcnow(),
            )
        deposit = await crud_deposit.get_deposit_by_id(db, deposit_id)

    money_requests_logger.info(f"Deposit {deposit_id} rejected by {admin.username}")
    await publisher.request_updated("deposit", deposit_id, RequestStatus.REJECTED, deposit.wallet_address)
    return deposit
