# scripts/settle_expired_trades.py

"""
One-off settlement sweep, for running from cron when the API's own
scheduler is disabled (SETTLEMENT_ENABLED=false).
"""

import asyncio
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from tradedesk.core.events import RedisEventPublisher
from tradedesk.core.security import close_redis_connection, connect_to_redis
from tradedesk.dependencies.services import build_settlement_engine, get_settings_cache
from tradedesk.database.session import AsyncSessionLocal
from tradedesk.services.price_oracle import build_price_oracle


async def main() -> int:
    redis_client = await connect_to_redis()
    price_oracle = build_price_oracle(redis_client)
    engine = build_settlement_engine(
        AsyncSessionLocal,
        price_oracle,
        RedisEventPublisher(redis_client),
        get_settings_cache(),
    )
    try:
        report = await engine.settle_expired(limit=None)
    finally:
        await price_oracle.close()
        await close_redis_connection(redis_client)

    print(
        f"found={report.found} settled={report.settled} already_processed={report.already_processed} "
        f"price_unavailable={report.price_unavailable} failed={report.failed}"
    )
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
