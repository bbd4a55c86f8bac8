# tradedesk/api/v1/endpoints/wallet.py

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from tradedesk.core.events import EventPublisher
from tradedesk.core.security import get_current_user
from tradedesk.crud import balance as ledger
from tradedesk.database.models import User
from tradedesk.database.session import get_db
from tradedesk.dependencies.services import get_event_publisher, get_price_oracle, get_session_factory
from tradedesk.schemas.wallet import BalanceResponse, ConversionCreate, ConversionResponse
from tradedesk.services.conversion import convert
from tradedesk.services.price_oracle import PriceOracle

router = APIRouter(tags=["wallet"])


@router.get("/wallet/balances", response_model=List[BalanceResponse], summary="My balances")
async def get_balances(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await ledger.list_balances(db, current_user.wallet_address)


@router.post("/conversions", response_model=ConversionResponse, summary="Convert between currencies")
async def create_conversion(
    body: ConversionCreate,
    current_user: User = Depends(get_current_user),
    session_factory: sessionmaker = Depends(get_session_factory),
    price_oracle: PriceOracle = Depends(get_price_oracle),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    source, target = await convert(
        session_factory, price_oracle, publisher, current_user.wallet_address,
        body.from_currency, body.to_currency, body.amount,
    )
    return ConversionResponse(
        source=BalanceResponse.model_validate(source),
        target=BalanceResponse.model_validate(target),
    )
