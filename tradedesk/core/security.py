# tradedesk/core/security.py
from typing import Any, Optional
from passlib.context import CryptContext
from jose import jwt, JWTError
from redis import asyncio as aioredis
from datetime import datetime, timedelta

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from tradedesk.database.models import User, Admin
from tradedesk.database.session import get_db
from tradedesk.core.config import get_settings
from tradedesk.core.permissions import Action, is_allowed

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

settings = get_settings()

USER_TOKEN_TYPE = "user"
ADMIN_TOKEN_TYPE = "admin"


# --- Password Hashing Functions ---
def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verifies a plain password against a hashed password.
    """
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


# --- JWT Functions ---

def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire, "iat": datetime.utcnow()})
    logger.debug(f"Creating {to_encode.get('user_type')} token for sub={to_encode.get('sub')}")
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_user_token(wallet_address: str) -> str:
    return create_access_token({"sub": wallet_address, "user_type": USER_TOKEN_TYPE})


def create_admin_token(admin: Admin) -> str:
    return create_access_token({"sub": str(admin.id), "user_type": ADMIN_TOKEN_TYPE, "role": admin.role})


def decode_token(token: str) -> dict[str, Any]:
    """
    Decodes a JWT token and returns the payload.
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWTError in decode_token: {type(e).__name__} - {str(e)}")
        raise JWTError("Could not validate credentials")


# --- Redis Integration ---

async def connect_to_redis() -> Optional[aioredis.Redis]:
    logger.info(f"Attempting to connect to Redis at {settings.REDIS_HOST}:{settings.REDIS_PORT} (db {settings.REDIS_DB})...")
    try:
        client = aioredis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            password=settings.REDIS_PASSWORD,
            decode_responses=True
        )
        await client.ping()
        logger.info(f"[SUCCESS] Connected to Redis at {settings.REDIS_HOST}:{settings.REDIS_PORT}")
        return client
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}", exc_info=True)
        return None


async def close_redis_connection(client: Optional[aioredis.Redis]):
    """
    Closes the Redis connection.
    Called during application shutdown. Accepts the client instance to close.
    """
    if client:
        logger.info("Closing Redis connection...")
        try:
            await client.close()
            logger.info("Redis connection closed.")
        except Exception as e:
            logger.error(f"Error closing Redis connection: {e}", exc_info=True)


# --- Authentication Dependencies (for protecting routes) ---

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/admin/auth/login", auto_error=False)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_user_from_token(db: AsyncSession, token: Optional[str]) -> User:
    if token is None:
        logger.warning("Access token is missing.")
        raise _credentials_exception()
    try:
        payload = decode_token(token)
    except JWTError:
        raise _credentials_exception()

    wallet_address = payload.get("sub")
    if wallet_address is None or payload.get("user_type") != USER_TOKEN_TYPE:
        logger.warning(f"Access token payload missing 'sub' or not a user token. Payload: {payload}")
        raise _credentials_exception()

    result = await db.execute(select(User).filter(User.wallet_address == wallet_address))
    user = result.scalars().first()
    if user is None:
        logger.warning(f"User {wallet_address} from access token not found in database.")
        raise _credentials_exception()
    return user


async def get_admin_from_token(db: AsyncSession, token: Optional[str]) -> Admin:
    if token is None:
        raise _credentials_exception()
    try:
        payload = decode_token(token)
    except JWTError:
        raise _credentials_exception()

    admin_id = payload.get("sub")
    if admin_id is None or payload.get("user_type") != ADMIN_TOKEN_TYPE:
        logger.warning(f"Non-admin token used on an admin resource. Payload: {payload}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to access this resource. Admin privileges required."
        )

    result = await db.execute(select(Admin).filter(Admin.id == int(admin_id)))
    admin = result.scalars().first()
    if admin is None:
        raise _credentials_exception()
    if not admin.is_active:
        logger.warning(f"Inactive admin {admin.username} attempted access.")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin account is disabled.")
    return admin


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Resolves the wallet user from a user access token.
    """
    user = await get_user_from_token(db, token)
    if user.is_suspended:
        logger.warning(f"Suspended user {user.wallet_address} attempted access.")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is suspended.")
    return user


async def get_current_admin(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> Admin:
    return await get_admin_from_token(db, token)


def require_action(action: Action):
    """
    Dependency factory: the current admin must hold ``action``.

        @router.post("/x")
        async def x(admin: Admin = Depends(require_action(Action.MANAGE_TRADES))): ...
    """
    async def dependency(admin: Admin = Depends(get_current_admin)) -> Admin:
        if not is_allowed(admin.role, action):
            logger.warning(f"Admin {admin.username} ({admin.role}) denied {action.value}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Your role does not allow {action.value}."
            )
        return admin

    return dependency
