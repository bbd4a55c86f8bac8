# tradedesk/api/v1/endpoints/realtime.py

import asyncio
import json
from typing import Callable, Iterable, Optional

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from redis.asyncio import Redis
from sqlalchemy.orm import sessionmaker
from starlette.websockets import WebSocketState

from tradedesk.core.events import REDIS_ADMIN_CHANNEL, user_channel
from tradedesk.core.logging_config import realtime_logger
from tradedesk.core.permissions import Action, is_allowed
from tradedesk.core.security import get_admin_from_token, get_user_from_token
from tradedesk.crud import user as crud_user
from tradedesk.database.models import Admin
from tradedesk.dependencies.redis_client import get_redis_client_or_none
from tradedesk.dependencies.services import get_session_factory

logger = realtime_logger

router = APIRouter(tags=["realtime"])

MessageFilter = Callable[[str], bool]


def admin_feed_filter(admin: Admin, assigned_wallets: Iterable[str]) -> Optional[MessageFilter]:
    """
    None for admins who see every user. Employees get a filter that only
    passes events about wallets assigned to them when they connected.
    """
    if is_allowed(admin.role, Action.VIEW_ALL_USERS):
        return None
    allowed = {crud_user.normalize_wallet_address(w) for w in assigned_wallets}

    def accept(message: str) -> bool:
        try:
            wallet = json.loads(message).get("walletAddress")
        except (ValueError, AttributeError):
            return False
        return isinstance(wallet, str) and wallet.lower() in allowed

    return accept


async def relay_channel(websocket: WebSocket, redis_client: Redis, channel: str, label: str,
                        accept: Optional[MessageFilter] = None):
    """
    Forwards every message published on ``channel`` to the socket until
    the client goes away. ``accept`` drops messages it returns False for.
    """
    pubsub = redis_client.pubsub()
    await pubsub.subscribe(channel)
    try:
        while websocket.client_state == WebSocketState.CONNECTED:
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message is None:
                await asyncio.sleep(0.01)
                continue
            data = message.get("data")
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            if accept is not None and not accept(data):
                continue
            await websocket.send_text(data)
    except WebSocketDisconnect:
        logger.info(f"{label}: WebSocket disconnected.")
    except asyncio.CancelledError:
        logger.info(f"{label}: relay task cancelled.")
        raise
    except Exception as e:
        logger.error(f"{label}: relay error on {channel}: {e}", exc_info=True)
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.close()


async def watch_disconnect(websocket: WebSocket):
    """Drains client frames; returns once the client disconnects."""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


async def serve_channel(websocket: WebSocket, redis_client: Redis, channel: str, label: str,
                        accept: Optional[MessageFilter] = None):
    await websocket.accept()
    await websocket.send_text(json.dumps({"type": "connected", "channel": channel}))

    relay = asyncio.create_task(relay_channel(websocket, redis_client, channel, label, accept))
    watcher = asyncio.create_task(watch_disconnect(websocket))
    done, pending = await asyncio.wait({relay, watcher}, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)

    if websocket.client_state == WebSocketState.CONNECTED:
        await websocket.close()


@router.websocket("/ws/user")
async def user_updates(
    websocket: WebSocket,
    token: Optional[str] = None,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Live balance, trade and request events for the authenticated wallet.
    Connect with ``/ws/user?token=<access token>``.
    """
    async with session_factory() as db:
        try:
            user = await get_user_from_token(db, token)
        except HTTPException:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
            return

    redis_client = get_redis_client_or_none()
    if redis_client is None:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR, reason="Realtime unavailable")
        return

    await serve_channel(websocket, redis_client, user_channel(user.wallet_address), f"User {user.wallet_address}")


@router.websocket("/ws/admin")
async def admin_updates(
    websocket: WebSocket,
    token: Optional[str] = None,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Published events for the admin dashboard. Employees only receive
    events about the users assigned to them.
    """
    async with session_factory() as db:
        try:
            admin = await get_admin_from_token(db, token)
        except HTTPException:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Admin token required")
            return
        assigned = [] if is_allowed(admin.role, Action.VIEW_ALL_USERS) else await crud_user.get_assigned_wallets(db, admin.id)
    accept = admin_feed_filter(admin, assigned)

    redis_client = get_redis_client_or_none()
    if redis_client is None:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR, reason="Realtime unavailable")
        return

    await serve_channel(websocket, redis_client, REDIS_ADMIN_CHANNEL, f"Admin {admin.username}", accept)
