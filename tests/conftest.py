import datetime
import os
import random
import tempfile
from decimal import Decimal

# Must be set before tradedesk.core.config is imported
_scratch = tempfile.mkdtemp(prefix="tradedesk-tests-")
os.environ.setdefault("LOG_DIR", os.path.join(_scratch, "logs"))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_scratch, 'unused.db')}")
os.environ.setdefault("SETTLEMENT_ENABLED", "false")

import httpx
import pytest

from tradedesk.core.events import InMemoryEventPublisher
from tradedesk.core.security import create_admin_token, create_user_token
from tradedesk.core.settings_cache import SettingsCache
from tradedesk.crud import admin_settings as crud_settings
from tradedesk.crud import balance as ledger
from tradedesk.crud import trade as crud_trade
from tradedesk.crud import user as crud_user
from tradedesk.database.models import utcnow
from tradedesk.database.session import build_engine, build_session_factory, create_all_tables
from tradedesk.services.price_oracle import StaticPriceOracle
from tradedesk.services.settlement import SettlementEngine

WALLET = "0xabc0000000000000000000000000000000000001"
OTHER_WALLET = "0xabc0000000000000000000000000000000000002"


class FakeClock:
    """utcnow() shifted by a controllable offset."""

    def __init__(self):
        self.offset = datetime.timedelta()

    def advance(self, seconds: float) -> None:
        self.offset += datetime.timedelta(seconds=seconds)

    def __call__(self) -> datetime.datetime:
        return utcnow() + self.offset


@pytest.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_all_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def publisher():
    return InMemoryEventPublisher()


@pytest.fixture
def price_oracle():
    return StaticPriceOracle({"BTC": "50000", "ETH": "3000", "SOL": "100"})


@pytest.fixture
def settings_cache():
    # Zero TTL: every read goes to the database
    return SettingsCache(ttl_seconds=0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settlement_engine(session_factory, price_oracle, publisher, settings_cache, clock):
    return SettlementEngine(
        session_factory,
        price_oracle,
        publisher,
        settings_cache,
        batch_size=5,
        clock=clock,
        rng=random.Random(7),
    )


@pytest.fixture
def make_user(session_factory):
    async def _make(wallet_address=WALLET, trade_status=None):
        async with session_factory() as db:
            user = await crud_user.get_or_create_user(db, wallet_address)
            if trade_status:
                user = await crud_user.set_trade_status(db, user, trade_status)
            await db.commit()
            return user
    return _make


@pytest.fixture
def make_admin(session_factory):
    async def _make(username="root", role="SUPER_ADMIN", password="s3cret-pass"):
        async with session_factory() as db:
            admin = await crud_user.create_admin(db, username, password, role)
            await db.commit()
            return admin
    return _make


@pytest.fixture
def fund(session_factory):
    async def _fund(wallet_address=WALLET, amount="1000", currency="USDT"):
        async with session_factory() as db:
            async with db.begin():
                return await ledger.adjust(
                    db, wallet_address, currency,
                    available=Decimal(amount), real_balance=Decimal(amount),
                    entry_type="deposit_approved",
                )
    return _fund


@pytest.fixture
def get_balance(session_factory):
    async def _get(wallet_address=WALLET, currency="USDT"):
        async with session_factory() as db:
            return await ledger.get_balance(db, wallet_address, currency)
    return _get


@pytest.fixture
def trading_setup(session_factory):
    """Enables BTC, ETH and SOL with a 30s / 80% tier (minimum 10 USDT)."""
    async def _setup():
        async with session_factory() as db:
            for symbol in ("BTC", "ETH", "SOL"):
                await crud_settings.set_asset_enabled(db, symbol, True)
            await crud_settings.create_asset_tier(db, "30s", Decimal("80"), Decimal("10"))
            await db.commit()
    return _setup


@pytest.fixture
def make_trade(session_factory):
    """Inserts an active trade directly, with its stake already taken."""
    async def _make(
        wallet_address=WALLET,
        asset="BTC",
        side="buy",
        entry_price="50000",
        amount_usd="100",
        multiplier="1.8",
        expires_in=-1,
    ):
        now = utcnow()
        async with session_factory() as db:
            async with db.begin():
                trade = await crud_trade.create_trade(
                    db,
                    wallet_address=wallet_address,
                    asset=asset,
                    side=side,
                    entry_price=Decimal(entry_price),
                    amount_usd=Decimal(amount_usd),
                    duration="30s",
                    profit_multiplier=Decimal(multiplier),
                    fee=Decimal("0"),
                    created_at=now - datetime.timedelta(seconds=30),
                    expires_at=now + datetime.timedelta(seconds=expires_in),
                )
                await ledger.spend(db, wallet_address, "USDT", Decimal(amount_usd), entry_type="trade_open",
                                   reference_id=str(trade.id))
            return trade
    return _make


@pytest.fixture
def user_headers():
    def _headers(wallet_address=WALLET):
        return {"Authorization": f"Bearer {create_user_token(wallet_address)}"}
    return _headers


@pytest.fixture
def admin_headers():
    def _headers(admin):
        return {"Authorization": f"Bearer {create_admin_token(admin)}"}
    return _headers


@pytest.fixture
async def client(session_factory, publisher, price_oracle, settings_cache, settlement_engine):
    from tradedesk.database.session import get_db
    from tradedesk.dependencies.services import (
        get_event_publisher,
        get_price_oracle,
        get_session_factory,
        get_settings_cache,
        get_settlement_engine,
    )
    from tradedesk.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    app.dependency_overrides[get_price_oracle] = lambda: price_oracle
    app.dependency_overrides[get_settings_cache] = lambda: settings_cache
    app.dependency_overrides[get_settlement_engine] = lambda: settlement_engine

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
