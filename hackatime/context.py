from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from auth.oauth_engine import OAuthEngine
from auth.token_store import PkceSlot, TokenStore

from .api import HackatimeApi
from .constants import LOGGER
from .env import Config
from .errors import PersistenceError
from .http import build_http_client
from .presence import DiscordPresence, NullPresence, PresenceError, PresenceSink
from .session import SessionEngine
from .statistics import load_programmer_classes
from .stats_cache import StatsCache
from .storage import CacheStore, FileStore, MemoryCacheStore, MemorySessionStore, SessionStore

STORE_FILENAME = "hackatime.json"
SESSION_RETENTION_DAYS = 30


@dataclass
class AppContext:
    config: Config
    http_client: httpx.AsyncClient
    api: HackatimeApi
    session_store: SessionStore
    cache_store: CacheStore
    token_store: TokenStore
    pkce_slot: PkceSlot
    oauth: OAuthEngine
    presence: PresenceSink
    sessions: SessionEngine
    stats: StatsCache

    @property
    def api_base_url(self) -> str:
        return self.config.api_base_url

    def programmer_classes(self) -> list[dict[str, Any]]:
        return load_programmer_classes(self.config.programmer_classes_path)

    async def startup(self) -> None:
        try:
            removed = await self.session_store.cleanup_old_sessions(SESSION_RETENTION_DAYS)
            if removed:
                LOGGER.info("Removed %s stale sessions", removed)
        except PersistenceError as error:
            LOGGER.warning("Failed to clean up old sessions: %s", error)

        await self.token_store.load()

        if isinstance(self.presence, DiscordPresence):
            try:
                await self.presence.connect()
            except PresenceError as error:
                LOGGER.warning("Discord presence unavailable: %s", error)

    async def logout(self) -> None:
        await self.oauth.logout()
        await self.sessions.reset()

    async def get_api_key(self) -> str:
        credential = await self.token_store.require_credential()
        return await self.api.api_key(credential.access_token)

    async def status(self) -> dict[str, Any]:
        return await self.sessions.status()

    async def aclose(self) -> None:
        if isinstance(self.presence, DiscordPresence):
            await self.presence.disconnect()
        await self.http_client.aclose()


def build_stores(config: Config) -> tuple[SessionStore, CacheStore]:
    if config.data_dir is None:
        return MemorySessionStore(), MemoryCacheStore()
    store = FileStore(config.data_dir / STORE_FILENAME)
    return store, store.cache()


def create_context(
    config: Config,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    presence: PresenceSink | None = None,
    session_store: SessionStore | None = None,
    cache_store: CacheStore | None = None,
    open_browser=None,
) -> AppContext:
    http_client = build_http_client(
        config.api_base_url,
        timeout=config.timeout,
        max_retries=config.max_retries,
        debug=config.debug,
        transport=transport,
    )
    api = HackatimeApi(http_client)

    if session_store is None or cache_store is None:
        default_sessions, default_cache = build_stores(config)
        session_store = session_store or default_sessions
        cache_store = cache_store or default_cache

    if presence is None:
        presence = (
            DiscordPresence(config.discord_client_id) if config.discord_client_id else NullPresence()
        )

    token_store = TokenStore(session_store)
    pkce_slot = PkceSlot()
    engine_options: dict[str, Any] = {}
    if open_browser is not None:
        engine_options["open_browser"] = open_browser
    oauth = OAuthEngine(
        token_store=token_store,
        pkce_slot=pkce_slot,
        client_id=config.client_id,
        redirect_uri=config.redirect_uri,
        scopes=config.scopes,
        cache_store=cache_store,
        http_client=http_client,
        **engine_options,
    )

    return AppContext(
        config=config,
        http_client=http_client,
        api=api,
        session_store=session_store,
        cache_store=cache_store,
        token_store=token_store,
        pkce_slot=pkce_slot,
        oauth=oauth,
        presence=presence,
        sessions=SessionEngine(
            api=api,
            token_store=token_store,
            presence=presence,
            recency_threshold_seconds=config.heartbeat_threshold_seconds,
        ),
        stats=StatsCache(api=api, token_store=token_store, cache_store=cache_store),
    )
