# tradedesk/services/balance_admin.py

from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import sessionmaker

from tradedesk.core.events import EventPublisher
from tradedesk.core.exceptions import NotFound, ValidationFailed
from tradedesk.core.logging_config import ledger_logger
from tradedesk.crud import balance as ledger
from tradedesk.crud import user as crud_user
from tradedesk.database.models import Admin, Balance
from tradedesk.services.approvals import ensure_can_manage_wallet


async def adjust_user_balance(
    session_factory: sessionmaker,
    publisher: EventPublisher,
    admin: Admin,
    wallet_address: str,
    currency: str,
    amount: Decimal,
    note: Optional[str] = None,
) -> Balance:
    """
    Manual credit (positive ``amount``) or debit (negative) by an admin.
    Credits count as principal; debits consume principal before winnings.
    """
    amount = Decimal(amount)
    if amount == 0:
        raise ValidationFailed("Amount must not be zero.")

    async with session_factory() as db:
        user = await crud_user.get_user_by_wallet(db, wallet_address)
        if user is None:
            raise NotFound(f"User {wallet_address} not found.")
        await ensure_can_manage_wallet(db, admin, user.wallet_address)
        wallet_address = user.wallet_address

    description = note or f"Manual adjustment by {admin.username}"
    async with session_factory() as db:
        async with db.begin():
            if amount > 0:
                balance = await ledger.adjust(
                    db, wallet_address, currency,
                    available=amount, real_balance=amount,
                    entry_type="admin_credit", reference_id=admin.username, description=description,
                )
            else:
                balance = await ledger.spend(
                    db, wallet_address, currency, -amount,
                    entry_type="admin_debit", reference_id=admin.username, description=description,
                )

    ledger_logger.info(f"Admin {admin.username} adjusted {wallet_address} {currency.upper()} by {amount}")
    await publisher.balance_updated(wallet_address)
    return balance
