# tradedesk/core/settings_cache.py

import time
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

GLOBAL_TRADE_SETTINGS_KEY = "global_trade_settings"


class SettingsCache:
    """
    Process-local TTL cache for admin settings read on hot paths
    (every settlement reads the global trade mode).

    Writers must call ``invalidate`` after persisting a change.
    """

    def __init__(self, ttl_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    async def get(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl_seconds: Optional[float] = None,
    ) -> Any:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        now = self._clock()
        cached = self._entries.get(key)
        if cached is not None and now - cached[0] < ttl:
            logger.debug(f"Settings cache HIT for key: {key}")
            return cached[1]

        logger.debug(f"Settings cache MISS for key: {key}, loading fresh value")
        value = await loader()
        self._entries[key] = (now, value)
        return value

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)
        logger.info(f"Settings cache invalidated key: {key}")

    def invalidate_all(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        return {"size": len(self._entries), "entries": list(self._entries.keys())}
