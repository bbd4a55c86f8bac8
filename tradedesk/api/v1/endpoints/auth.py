# tradedesk/api/v1/endpoints/auth.py

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tradedesk.core.security import create_admin_token, create_user_token, verify_password
from tradedesk.crud import user as crud_user
from tradedesk.database.session import get_db
from tradedesk.schemas.auth import AdminLogin, AdminSession, UserSession, WalletLogin

import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


@router.post("/auth/wallet-login", response_model=UserSession, summary="Log in with a wallet address")
async def wallet_login(body: WalletLogin, db: AsyncSession = Depends(get_db)):
    """
    Finds or creates the user for the wallet address and returns a token.
    """
    user = await crud_user.get_or_create_user(db, body.wallet_address)
    await db.commit()
    if user.is_suspended:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is suspended.")
    logger.info(f"Wallet login: UID {user.uid}, wallet {user.wallet_address}")
    return UserSession(
        access_token=create_user_token(user.wallet_address),
        wallet_address=user.wallet_address,
        uid=user.uid,
    )


@router.post("/admin/auth/login", response_model=AdminSession, summary="Admin login")
async def admin_login(body: AdminLogin, db: AsyncSession = Depends(get_db)):
    admin = await crud_user.get_admin_by_username(db, body.username)
    if admin is None or not verify_password(body.password, admin.hashed_password):
        logger.warning(f"Failed admin login for '{body.username}'")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not admin.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin account is disabled.")
    logger.info(f"Admin '{admin.username}' ({admin.role}) logged in")
    return AdminSession(access_token=create_admin_token(admin), username=admin.username, role=admin.role)
