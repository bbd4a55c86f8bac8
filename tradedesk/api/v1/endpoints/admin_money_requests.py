# tradedesk/api/v1/endpoints/admin_money_requests.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from tradedesk.core.events import EventPublisher
from tradedesk.core.permissions import Action, is_allowed
from tradedesk.core.security import require_action
from tradedesk.crud import deposit as crud_deposit
from tradedesk.crud import user as crud_user
from tradedesk.crud import withdrawal as crud_withdrawal
from tradedesk.database.models import Admin
from tradedesk.database.session import get_db
from tradedesk.dependencies.services import get_event_publisher, get_session_factory
from tradedesk.schemas.money_request import (
    DepositApprove,
    DepositReject,
    DepositResponse,
    WithdrawalApprove,
    WithdrawalReject,
    WithdrawalResponse,
)
from tradedesk.schemas.wallet import BalanceResponse
from tradedesk.services import approvals

import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin money requests"])

STATUS_PATTERN = "^(pending|approved|rejected)$"


async def _visible_wallets(db: AsyncSession, admin: Admin) -> Optional[List[str]]:
    """None means every wallet; employees only see their assigned users."""
    if is_allowed(admin.role, Action.VIEW_ALL_USERS):
        return None
    return await crud_user.get_assigned_wallets(db, admin.id)


# --- Withdrawals ---

@router.get("/withdrawals", response_model=List[WithdrawalResponse], summary="List withdrawals (Admin)")
async def list_withdrawals(
    status_filter: Optional[str] = Query(None, alias="status", pattern=STATUS_PATTERN),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
    admin: Admin = Depends(require_action(Action.MANAGE_WITHDRAWALS)),
    db: AsyncSession = Depends(get_db),
):
    wallets = await _visible_wallets(db, admin)
    return await crud_withdrawal.get_all_withdrawals(db, skip, limit, status_filter, wallets)


@router.post("/withdrawals/approve", summary="Approve a withdrawal (Admin)")
async def approve_withdrawal(
    body: WithdrawalApprove,
    admin: Admin = Depends(require_action(Action.MANAGE_WITHDRAWALS)),
    session_factory: sessionmaker = Depends(get_session_factory),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """
    404 when the withdrawal does not exist, 400 when it was already
    processed, otherwise the balance after the frozen funds are released.
    """
    balance = await approvals.approve_withdrawal(
        session_factory, publisher, body.withdrawal_id, body.tx_hash, admin, admin_notes=body.admin_notes
    )
    return {
        "success": True,
        "withdrawalId": body.withdrawal_id,
        "status": "approved",
        "balance": BalanceResponse.model_validate(balance),
    }


@router.post("/withdrawals/reject", summary="Reject a withdrawal (Admin)")
async def reject_withdrawal(
    body: WithdrawalReject,
    admin: Admin = Depends(require_action(Action.MANAGE_WITHDRAWALS)),
    session_factory: sessionmaker = Depends(get_session_factory),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    balance = await approvals.reject_withdrawal(
        session_factory, publisher, body.withdrawal_id, admin, admin_notes=body.admin_notes
    )
    return {
        "success": True,
        "withdrawalId": body.withdrawal_id,
        "status": "rejected",
        "balance": BalanceResponse.model_validate(balance),
    }


# --- Deposits ---

@router.get("/deposits", response_model=List[DepositResponse], summary="List deposits (Admin)")
async def list_deposits(
    status_filter: Optional[str] = Query(None, alias="status", pattern=STATUS_PATTERN),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
    admin: Admin = Depends(require_action(Action.MANAGE_DEPOSITS)),
    db: AsyncSession = Depends(get_db),
):
    wallets = await _visible_wallets(db, admin)
    return await crud_deposit.get_all_deposits(db, skip, limit, status_filter, wallets)


@router.post("/deposits/approve", summary="Approve a deposit (Admin)")
async def approve_deposit(
    body: DepositApprove,
    admin: Admin = Depends(require_action(Action.MANAGE_DEPOSITS)),
    session_factory: sessionmaker = Depends(get_session_factory),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    balance = await approvals.approve_deposit(
        session_factory, publisher, body.deposit_id, admin,
        admin_notes=body.admin_notes, adjusted_amount=body.adjusted_amount,
    )
    return {
        "success": True,
        "depositId": body.deposit_id,
        "status": "approved",
        "balance": BalanceResponse.model_validate(balance),
    }


@router.post("/deposits/reject", response_model=DepositResponse, summary="Reject a deposit (Admin)")
async def reject_deposit(
    body: DepositReject,
    admin: Admin = Depends(require_action(Action.MANAGE_DEPOSITS)),
    session_factory: sessionmaker = Depends(get_session_factory),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    return await approvals.reject_deposit(session_factory, publisher, body.deposit_id, admin, admin_notes=body.admin_notes)
