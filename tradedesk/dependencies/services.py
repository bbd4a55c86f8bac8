# tradedesk/dependencies/services.py

"""
Providers for the collaborators shared by the routes. Each one is a plain
FastAPI dependency so tests can swap it through ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends

from sqlalchemy.orm import sessionmaker

from tradedesk.core.config import get_settings
from tradedesk.core.events import EventPublisher, RedisEventPublisher
from tradedesk.core.settings_cache import SettingsCache
from tradedesk.database.session import AsyncSessionLocal
from tradedesk.dependencies import redis_client
from tradedesk.services.price_oracle import PriceOracle, build_price_oracle
from tradedesk.services.settlement import SettlementEngine

_price_oracle: PriceOracle | None = None


def get_session_factory() -> sessionmaker:
    return AsyncSessionLocal


def get_event_publisher() -> EventPublisher:
    return RedisEventPublisher(redis_client.get_redis_client_or_none())


def get_price_oracle() -> PriceOracle:
    global _price_oracle
    if _price_oracle is None:
        _price_oracle = build_price_oracle(client_provider=redis_client.get_redis_client_or_none)
    return _price_oracle


async def close_price_oracle() -> None:
    global _price_oracle
    if _price_oracle is not None:
        await _price_oracle.close()
        _price_oracle = None


@lru_cache()
def get_settings_cache() -> SettingsCache:
    return SettingsCache(ttl_seconds=get_settings().SETTINGS_CACHE_TTL_SECONDS)


def build_settlement_engine(
    session_factory: sessionmaker,
    price_oracle: PriceOracle,
    publisher: EventPublisher,
    settings_cache: SettingsCache,
) -> SettlementEngine:
    return SettlementEngine(
        session_factory,
        price_oracle,
        publisher,
        settings_cache,
        batch_size=get_settings().SETTLEMENT_BATCH_SIZE,
    )


def get_settlement_engine(
    session_factory: sessionmaker = Depends(get_session_factory),
    price_oracle: PriceOracle = Depends(get_price_oracle),
    publisher: EventPublisher = Depends(get_event_publisher),
    settings_cache: SettingsCache = Depends(get_settings_cache),
) -> SettlementEngine:
    return build_settlement_engine(session_factory, price_oracle, publisher, settings_cache)
