# tradedesk/services/price_oracle.py

"""
Live price lookups used when opening trades and when settling them
against the market.

Every oracle exposes ``async get_price(symbol) -> Decimal`` and raises
PriceUnavailable when no usable price exists. There is no failover
between providers.
"""

import json
import time
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, Optional

import httpx
from redis.asyncio import Redis

from tradedesk.core.config import get_settings
from tradedesk.core.exceptions import PriceUnavailable
from tradedesk.core.logging_config import price_oracle_logger

LAST_KNOWN_PRICE_KEY_PREFIX = "last_price:"

# Stablecoins are the quote currency and are pinned to exactly 1 USD
STABLECOINS = {"USDT", "USDC", "DAI"}


def normalize_symbol(symbol: str) -> str:
    """'btc/usdt', 'BTCUSDT' and 'BTC' all map to 'BTC'."""
    symbol = symbol.upper().replace("/", "").replace("-", "").strip()
    if symbol.endswith("USDT") and symbol not in STABLECOINS:
        symbol = symbol[:-4]
    return symbol


def _positive_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        return None
    return price if price.is_finite() and price > 0 else None


class PriceOracle:
    async def get_price(self, symbol: str) -> Decimal:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class StaticPriceOracle(PriceOracle):
    """Dict-backed prices; ``set_price`` and ``fail`` let callers script scenarios."""

    def __init__(self, prices: Optional[Dict[str, Decimal]] = None):
        self.prices: Dict[str, Decimal] = {}
        self.unavailable = False
        self.calls = 0
        for symbol, price in (prices or {}).items():
            self.set_price(symbol, price)

    def set_price(self, symbol: str, price) -> None:
        self.prices[normalize_symbol(symbol)] = Decimal(str(price))

    def fail(self, unavailable: bool = True) -> None:
        self.unavailable = unavailable

    async def get_price(self, symbol: str) -> Decimal:
        self.calls += 1
        if self.unavailable:
            raise PriceUnavailable(f"Price for {symbol} is unavailable.")
        key = normalize_symbol(symbol)
        if key in STABLECOINS:
            return Decimal("1")
        if key not in self.prices:
            raise PriceUnavailable(f"No price for {symbol}.")
        return self.prices[key]


class RedisPriceOracle(PriceOracle):
    """
    Reads the last known price written by the market feed under
    ``last_price:{SYMBOL}``. The JSON value carries either ``price`` or
    the bid/ask pair ``b``/``o`` (the mid is used) and optionally a
    ``timestamp`` in epoch seconds or milliseconds.

    With ``client_provider`` the client is looked up on every call, so a
    Redis connection made after the oracle was built is picked up.
    """

    def __init__(
        self,
        redis_client: Optional[Redis] = None,
        max_age_seconds: Optional[int] = None,
        clock=time.time,
        client_provider: Optional[Callable[[], Optional[Redis]]] = None,
    ):
        self.redis_client = redis_client
        self.client_provider = client_provider
        self.max_age_seconds = max_age_seconds
        self._clock = clock

    def _client(self) -> Optional[Redis]:
        if self.client_provider is not None:
            return self.client_provider()
        return self.redis_client

    async def get_price(self, symbol: str) -> Decimal:
        key_symbol = normalize_symbol(symbol)
        if key_symbol in STABLECOINS:
            return Decimal("1")
        client = self._client()
        if not client:
            price_oracle_logger.warning(f"Redis client not available for getting last known price for {symbol}.")
            raise PriceUnavailable()

        key = f"{LAST_KNOWN_PRICE_KEY_PREFIX}{key_symbol}"
        try:
            data_json = await client.get(key)
        except Exception as e:
            price_oracle_logger.error(f"Error reading {key}: {e}", exc_info=True)
            raise PriceUnavailable() from e
        if not data_json:
            price_oracle_logger.warning(f"No last known price cached under {key}")
            raise PriceUnavailable(f"No price for {symbol}.")

        try:
            data = json.loads(data_json)
        except json.JSONDecodeError as e:
            price_oracle_logger.error(f"Malformed price payload under {key}: {data_json!r}")
            raise PriceUnavailable() from e

        if not isinstance(data, dict):
            price_oracle_logger.error(f"Price payload under {key} is not an object: {data_json!r}")
            raise PriceUnavailable(f"No price for {symbol}.")

        self._check_age(key, data)

        price = _positive_decimal(data.get("price"))
        if price is None:
            bid, ask = _positive_decimal(data.get("b")), _positive_decimal(data.get("o"))
            if bid is not None and ask is not None:
                price = (bid + ask) / 2
            else:
                price = bid or ask
        if price is None:
            price_oracle_logger.error(f"Price payload under {key} has no usable price: {data}")
            raise PriceUnavailable(f"No price for {symbol}.")

        price_oracle_logger.debug(f"{key_symbol} = {price} (redis)")
        return price

    def _check_age(self, key: str, data: dict) -> None:
        if not self.max_age_seconds or data.get("timestamp") is None:
            return
        try:
            ts = float(data["timestamp"])
        except (TypeError, ValueError):
            return
        if ts > 1e12:  # milliseconds
            ts /= 1000
        age = self._clock() - ts
        if age > self.max_age_seconds:
            price_oracle_logger.warning(f"Stale price under {key}: {age:.1f}s old (max {self.max_age_seconds}s)")
            raise PriceUnavailable("Market price is stale. Please try again.")


class CoinMarketCapPriceOracle(PriceOracle):
    """
    Quote lookup against the CoinMarketCap ``quotes/latest`` API.
    Any transport, HTTP or parse error becomes PriceUnavailable.
    """

    def __init__(self, api_url: str, api_key: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.api_url = api_url
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def get_price(self, symbol: str) -> Decimal:
        key_symbol = normalize_symbol(symbol)
        if key_symbol in STABLECOINS:
            return Decimal("1")

        try:
            res = await self._client.get(
                self.api_url,
                params={"symbol": key_symbol, "convert": "USD"},
                headers={"X-CMC_PRO_API_KEY": self.api_key, "Accept": "application/json"},
            )
            res.raise_for_status()
            payload = res.json()
        except httpx.HTTPStatusError as e:
            price_oracle_logger.error(f"CoinMarketCap HTTP {e.response.status_code} for {key_symbol}: {e.response.text[:200]}")
            raise PriceUnavailable() from e
        except (httpx.HTTPError, ValueError) as e:
            price_oracle_logger.error(f"CoinMarketCap request for {key_symbol} failed: {e}")
            raise PriceUnavailable() from e

        price = self._parse_price(payload, key_symbol)
        if price is None:
            price_oracle_logger.error(f"CoinMarketCap returned no USD quote for {key_symbol}")
            raise PriceUnavailable(f"No price for {symbol}.")
        price_oracle_logger.debug(f"{key_symbol} = {price} (coinmarketcap)")
        return price

    @staticmethod
    def _parse_price(payload: dict, symbol: str) -> Optional[Decimal]:
        coin = (payload.get("data") or {}).get(symbol)
        # v2 returns a list of coins per symbol, v1 a single object
        if isinstance(coin, list):
            coin = coin[0] if coin else None
        if not isinstance(coin, dict):
            return None
        quote = (coin.get("quote") or {}).get("USD") or {}
        return _positive_decimal(quote.get("price"))

    async def close(self) -> None:
        await self._client.aclose()


def build_price_oracle(
    redis_client: Optional[Redis] = None,
    client_provider: Optional[Callable[[], Optional[Redis]]] = None,
) -> PriceOracle:
    """Oracle selected by the PRICE_ORACLE setting."""
    settings = get_settings()
    if settings.PRICE_ORACLE == "coinmarketcap":
        return CoinMarketCapPriceOracle(
            settings.PRICE_API_URL,
            settings.PRICE_API_KEY,
            timeout=settings.PRICE_TIMEOUT_SECONDS,
        )
    if settings.PRICE_ORACLE != "redis":
        price_oracle_logger.warning(f"Unknown PRICE_ORACLE {settings.PRICE_ORACLE!r}, using redis")
    return RedisPriceOracle(
        redis_client,
        max_age_seconds=settings.PRICE_MAX_AGE_SECONDS,
        client_provider=client_provider,
    )
