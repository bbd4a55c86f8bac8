# tradedesk/api/v1/endpoints/admin_users.py

from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from tradedesk.core.events import EventPublisher
from tradedesk.core.exceptions import NotFound, ValidationFailed
from tradedesk.core.permissions import Action, AdminRole, is_allowed
from tradedesk.core.security import require_action
from tradedesk.crud import balance as crud_balance
from tradedesk.crud import user as crud_user
from tradedesk.database.models import Admin, User
from tradedesk.database.session import get_db
from tradedesk.dependencies.services import get_event_publisher, get_session_factory
from tradedesk.schemas.auth import (
    AdminCreate,
    AdminResponse,
    EmployeeAssignment,
    TradeStatusUpdate,
    UserControlUpdate,
    UserResponse,
)
from tradedesk.schemas.wallet import BalanceAdjustment, BalanceResponse
from tradedesk.services.approvals import ensure_can_manage_wallet
from tradedesk.services.balance_admin import adjust_user_balance

import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin users"])


async def _get_managed_user(db: AsyncSession, admin: Admin, wallet_address: str) -> User:
    user = await crud_user.get_user_by_wallet(db, wallet_address)
    if user is None:
        raise NotFound(f"User {wallet_address} not found.")
    await ensure_can_manage_wallet(db, admin, user.wallet_address)
    return user


@router.get("/users", response_model=List[UserResponse], summary="List users (Admin)")
async def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    admin: Admin = Depends(require_action(Action.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db),
):
    """
    Employees only get the users assigned to them.
    """
    assigned_to = None if is_allowed(admin.role, Action.VIEW_ALL_USERS) else admin.id
    return await crud_user.get_all_users(db, skip, limit, assigned_employee_id=assigned_to)


@router.get("/users/{wallet_address}/balances", response_model=List[BalanceResponse], summary="Get a user's balances")
async def get_user_balances(
    wallet_address: str,
    admin: Admin = Depends(require_action(Action.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db),
):
    user = await _get_managed_user(db, admin, wallet_address)
    return await crud_balance.list_balances(db, user.wallet_address)


@router.post("/users/{wallet_address}/trade-status", response_model=UserResponse, summary="Set a user's trade outcome control")
async def update_trade_status(
    wallet_address: str,
    body: TradeStatusUpdate,
    admin: Admin = Depends(require_action(Action.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db),
):
    user = await _get_managed_user(db, admin, wallet_address)
    user = await crud_user.set_trade_status(db, user, body.trade_status)
    await db.commit()
    logger.info(f"Admin {admin.username} set trade status of {user.wallet_address} to {body.trade_status}")
    return user


@router.post("/users/{wallet_address}/controls", response_model=UserResponse, summary="Suspend a user or set a trade limit")
async def update_user_controls(
    wallet_address: str,
    body: UserControlUpdate,
    admin: Admin = Depends(require_action(Action.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db),
):
    user = await _get_managed_user(db, admin, wallet_address)
    user = await crud_user.update_user_controls(
        db, user,
        is_suspended=body.is_suspended,
        trade_limit=body.trade_limit,
        clear_trade_limit=body.clear_trade_limit,
    )
    await db.commit()
    return user


@router.post("/users/{wallet_address}/balance", response_model=BalanceResponse, summary="Credit or debit a user's balance")
async def adjust_balance(
    wallet_address: str,
    body: BalanceAdjustment,
    admin: Admin = Depends(require_action(Action.MANAGE_USERS)),
    session_factory: sessionmaker = Depends(get_session_factory),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    return await adjust_user_balance(
        session_factory, publisher, admin, wallet_address, body.currency, body.amount, body.note
    )


@router.post("/users/assign-employee", response_model=UserResponse, summary="Assign a user to an employee")
async def assign_employee(
    body: EmployeeAssignment,
    admin: Admin = Depends(require_action(Action.VIEW_ALL_USERS)),
    db: AsyncSession = Depends(get_db),
):
    user = await crud_user.get_user_by_wallet(db, body.wallet_address)
    if user is None:
        raise NotFound(f"User {body.wallet_address} not found.")
    if body.employee_id is not None:
        employee = await crud_user.get_admin_by_id(db, body.employee_id)
        if employee is None or employee.role != AdminRole.EMPLOYEE.value:
            raise ValidationFailed(f"Admin {body.employee_id} is not an employee.")
    user = await crud_user.assign_employee(db, user, body.employee_id)
    await db.commit()
    return user


@router.post("/admins", response_model=AdminResponse, status_code=status.HTTP_201_CREATED, summary="Create an admin account (Super admin)")
async def create_admin(
    body: AdminCreate,
    admin: Admin = Depends(require_action(Action.MANAGE_ADMINS)),
    db: AsyncSession = Depends(get_db),
):
    if await crud_user.get_admin_by_username(db, body.username):
        raise ValidationFailed(f"Username {body.username} is already taken.")
    created = await crud_user.create_admin(db, body.username, body.password, body.role)
    await db.commit()
    return created
