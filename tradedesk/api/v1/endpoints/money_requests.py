# tradedesk/api/v1/endpoints/money_requests.py

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from tradedesk.core.events import EventPublisher
from tradedesk.core.security import get_current_user
from tradedesk.crud import deposit as crud_deposit
from tradedesk.crud import withdrawal as crud_withdrawal
from tradedesk.database.models import User
from tradedesk.database.session import get_db
from tradedesk.dependencies.services import get_event_publisher, get_price_oracle, get_session_factory
from tradedesk.schemas.money_request import DepositCreate, DepositResponse, WithdrawalCreate, WithdrawalResponse
from tradedesk.services import approvals
from tradedesk.services.price_oracle import PriceOracle

router = APIRouter(tags=["Money Requests"])


@router.post("/withdrawals", response_model=WithdrawalResponse, summary="Request a withdrawal")
async def request_withdrawal(
    body: WithdrawalCreate,
    current_user: User = Depends(get_current_user),
    session_factory: sessionmaker = Depends(get_session_factory),
    price_oracle: PriceOracle = Depends(get_price_oracle),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """
    Freezes the requested amount until an admin approves or rejects it.
    """
    return await approvals.request_withdrawal(
        session_factory,
        price_oracle,
        publisher,
        current_user.wallet_address,
        body.currency,
        body.usdt_amount,
        body.destination_address,
    )


@router.get("/withdrawals", response_model=List[WithdrawalResponse], summary="My withdrawals")
async def list_withdrawals(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await crud_withdrawal.get_withdrawals_by_wallet(db, current_user.wallet_address, skip, limit)


@router.post("/deposits", response_model=DepositResponse, summary="Submit a deposit transaction hash")
async def submit_deposit(
    body: DepositCreate,
    current_user: User = Depends(get_current_user),
    session_factory: sessionmaker = Depends(get_session_factory),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    return await approvals.submit_deposit(
        session_factory,
        publisher,
        current_user.wallet_address,
        body.currency,
        body.amount,
        body.tx_hash,
        usdt_amount=body.usdt_amount,
        conversion_rate=body.conversion_rate,
    )


@router.get("/deposits", response_model=List[DepositResponse], summary="My deposits")
async def list_deposits(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await crud_deposit.get_deposits_by_wallet(db, current_user.wallet_address, skip, limit)
