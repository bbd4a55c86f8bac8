# tradedesk/services/conversion.py

from decimal import Decimal
from typing import Tuple

from sqlalchemy.orm import sessionmaker

from tradedesk.core.events import EventPublisher
from tradedesk.core.exceptions import ValidationFailed
from tradedesk.core.logging_config import ledger_logger
from tradedesk.crud import balance as ledger
from tradedesk.database.models import Balance
from tradedesk.services.price_oracle import PriceOracle

QUANT = Decimal("0.00000001")


async def conversion_rate(price_oracle: PriceOracle, from_currency: str, to_currency: str) -> Decimal:
    """Units of ``to_currency`` per unit of ``from_currency`` at current USD prices."""
    from_price = await price_oracle.get_price(from_currency)
    to_price = await price_oracle.get_price(to_currency)
    return from_price / to_price


async def convert(
    session_factory: sessionmaker,
    price_oracle: PriceOracle,
    publisher: EventPublisher,
    wallet_address: str,
    from_currency: str,
    to_currency: str,
    amount: Decimal,
) -> Tuple[Balance, Balance]:
    """
    Swaps ``amount`` of one currency into the other at the oracle rate in
    a single transaction. The credited side counts as deposited principal.

    Prices are fetched before the transaction opens; PriceUnavailable
    aborts the conversion without touching any balance.
    """
    from_currency, to_currency = from_currency.upper(), to_currency.upper()
    if from_currency == to_currency:
        raise ValidationFailed("Cannot convert a currency into itself.")
    amount = Decimal(amount)
    if amount <= 0:
        raise ValidationFailed("Amount must be positive.")

    rate = await conversion_rate(price_oracle, from_currency, to_currency)
    credited = (amount * rate).quantize(QUANT)
    if credited <= 0:
        raise ValidationFailed("Amount is too small to convert.")
    reference = f"{from_currency}->{to_currency}"

    async with session_factory() as db:
        async with db.begin():
            source = await ledger.spend(
                db, wallet_address, from_currency, amount,
                entry_type="conversion_out", reference_id=reference,
                description=f"Converted {amount} {from_currency} at {rate}",
            )
            target = await ledger.adjust(
                db, wallet_address, to_currency,
                available=credited, real_balance=credited,
                entry_type="conversion_in", reference_id=reference,
                description=f"Received {credited} {to_currency} from {amount} {from_currency}",
            )

    ledger_logger.info(f"{wallet_address} converted {amount} {from_currency} -> {credited} {to_currency} @ {rate}")
    await publisher.balance_updated(wallet_address)
    return source, target
