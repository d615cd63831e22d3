from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from auth.token_store import TokenStore

from .api import HackatimeApi
from .constants import LOGGER, RANGE_CACHE_TTL_DAYS, STREAK_CACHE_TTL_DAYS
from .errors import PersistenceError, RemoteFetchFailed, RemoteUnavailable
from .storage import CacheStore

SECONDS_PER_DAY = 24 * 60 * 60


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def range_cache_key(start_date: date, end_date: date) -> str:
    return f"hours:{start_date.isoformat()}:{end_date.isoformat()}"


def streak_cache_key(today: date) -> str:
    return f"streak:{today.isoformat()}"


def _as_date(value: date | str) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


class StatsCache:
    def __init__(
        self,
        *,
        api: HackatimeApi,
        token_store: TokenStore,
        cache_store: CacheStore,
        today_fn=utc_today,
    ) -> None:
        self.api = api
        self.token_store = token_store
        self.cache_store = cache_store
        self._today_fn = today_fn

    def today(self) -> date:
        return self._today_fn()

    async def fetch_range(self, start_date: date | str, end_date: date | str) -> dict[str, Any]:
        start = _as_date(start_date)
        end = _as_date(end_date)
        credential = await self.token_store.require_credential()

        today = self.today()
        # Ranges touching today are still accumulating time.
        cacheable = start != today and end != today
        key = range_cache_key(start, end)

        if cacheable:
            cached = await self._read(key)
            if cached is not None:
                LOGGER.debug("Cache hit for %s", key)
                return cached

        payload = await self._remote(self.api.hours(credential.access_token, start, end))

        if cacheable:
            await self._write(key, payload, RANGE_CACHE_TTL_DAYS * SECONDS_PER_DAY)
        return payload

    async def fetch_streak(self) -> dict[str, Any]:
        credential = await self.token_store.require_credential()
        key = streak_cache_key(self.today())

        cached = await self._read(key)
        if cached is not None:
            return cached

        payload = await self._remote(self.api.streak(credential.access_token))
        await self._write(key, payload, STREAK_CACHE_TTL_DAYS * SECONDS_PER_DAY)
        return payload

    async def clear(self) -> None:
        removed = await self.cache_store.cleanup_expired()
        if removed:
            LOGGER.info("Cleaned up %s expired cache entries", removed)
        await self.cache_store.clear()
        LOGGER.info("Statistics cache cleared")

    @staticmethod
    async def _remote(call) -> Any:
        try:
            return await call
        except RemoteFetchFailed:
            raise
        except RemoteUnavailable as error:
            raise RemoteFetchFailed(str(error), remote_status=error.remote_status) from error

    async def _read(self, key: str) -> Any | None:
        try:
            return await self.cache_store.get(key)
        except PersistenceError as error:
            LOGGER.warning("Failed to read cache entry %s: %s", key, error)
            return None

    async def _write(self, key: str, value: Any, ttl: float) -> None:
        try:
            await self.cache_store.set(key, value, ttl)
        except PersistenceError as error:
            LOGGER.warning("Failed to write cache entry %s: %s", key, error)
