# tradedesk/core/events.py

import json
import decimal
import datetime
from typing import Any, Dict, List, Optional, Tuple

from redis.asyncio import Redis

from tradedesk.core.logging_config import realtime_logger

# Event names
BALANCE_UPDATED = "balance:updated"
TRADE_SETTLED = "trade:settled"
TRADE_CREATED = "trade:created"
WITHDRAWAL_CREATED = "withdrawal:created"
WITHDRAWAL_UPDATED = "withdrawal:updated"
DEPOSIT_CREATED = "deposit:created"
DEPOSIT_UPDATED = "deposit:updated"

# Redis channels for real-time updates
REDIS_USER_CHANNEL_PREFIX = "realtime:user:"
REDIS_ADMIN_CHANNEL = "realtime:admin"


class DecimalEncoder(json.JSONEncoder):
    def default(self, o):
        if isinstance(o, decimal.Decimal):
            return str(o)
        if isinstance(o, (datetime.datetime, datetime.date)):
            return o.isoformat()
        return super().default(o)


def user_channel(wallet_address: str) -> str:
    return f"{REDIS_USER_CHANNEL_PREFIX}{wallet_address.lower()}"


def encode_event(event: str, payload: Dict[str, Any], wallet_address: Optional[str] = None) -> str:
    return json.dumps({
        "type": event,
        "walletAddress": wallet_address.lower() if wallet_address else None,
        "data": payload,
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat()
    }, cls=DecimalEncoder)


class EventPublisher:
    """
    Fan-out of state changes to connected clients.

    Callers publish only after their transaction has committed. Delivery
    is best effort: a failed publish is logged and never undoes the
    committed state change.
    """

    async def publish(self, event: str, payload: Dict[str, Any], wallet_address: Optional[str] = None) -> None:
        raise NotImplementedError

    async def balance_updated(self, wallet_address: str) -> None:
        await self.publish(BALANCE_UPDATED, {"walletAddress": wallet_address}, wallet_address)

    async def trade_settled(self, wallet_address: str, trade_id: int, result: str,
                            pnl: decimal.Decimal | None = None, exit_price: decimal.Decimal | None = None) -> None:
        await self.publish(TRADE_SETTLED, {
            "walletAddress": wallet_address,
            "tradeId": trade_id,
            "result": result,
            "pnl": pnl,
            "exitPrice": exit_price,
        }, wallet_address)

    async def trade_created(self, wallet_address: str, trade_id: int) -> None:
        await self.publish(TRADE_CREATED, {"walletAddress": wallet_address, "tradeId": trade_id}, wallet_address)

    async def request_updated(self, kind: str, request_id: int, status: str, wallet_address: str) -> None:
        event = WITHDRAWAL_UPDATED if kind == "withdrawal" else DEPOSIT_UPDATED
        await self.publish(event, {"id": request_id, "walletAddress": wallet_address, "status": status}, wallet_address)

    async def request_created(self, kind: str, request_id: int, wallet_address: str, **details: Any) -> None:
        event = WITHDRAWAL_CREATED if kind == "withdrawal" else DEPOSIT_CREATED
        await self.publish(event, {"id": request_id, "walletAddress": wallet_address, **details}, wallet_address)


class RedisEventPublisher(EventPublisher):
    """Publishes JSON events on the user's channel and the admin channel."""

    def __init__(self, redis_client: Optional[Redis]):
        self.redis_client = redis_client

    async def publish(self, event: str, payload: Dict[str, Any], wallet_address: Optional[str] = None) -> None:
        if not self.redis_client:
            realtime_logger.warning(f"Redis client not available for publishing {event}.")
            return

        message = encode_event(event, payload, wallet_address)
        try:
            if wallet_address:
                await self.redis_client.publish(user_channel(wallet_address), message)
            await self.redis_client.publish(REDIS_ADMIN_CHANNEL, message)
            realtime_logger.info(f"Published {event} for {wallet_address or 'admin'}")
        except Exception as e:
            realtime_logger.error(f"Error publishing {event} for {wallet_address}: {e}", exc_info=True)


class InMemoryEventPublisher(EventPublisher):
    """Collects events in a list; used by tests and one-off scripts."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any], Optional[str]]] = []

    async def publish(self, event: str, payload: Dict[str, Any], wallet_address: Optional[str] = None) -> None:
        self.events.append((event, payload, wallet_address))

    def names(self) -> List[str]:
        return [name for name, _, _ in self.events]

    def of_type(self, event: str) -> List[Dict[str, Any]]:
        return [payload for name, payload, _ in self.events if name == event]
