from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from hackatime.constants import LOGGER
from hackatime.errors import AuthenticationRequired, PersistenceError
from hackatime.storage import SessionStore, new_session_record

from auth.models import AuthState, Credential, PkceState


class TokenStore:
    def __init__(self, session_store: SessionStore) -> None:
        self._session_store = session_store
        self._state = AuthState()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["_AuthTransaction"]:
        async with self._lock:
            yield _AuthTransaction(self)

    async def snapshot(self) -> AuthState:
        async with self._lock:
            return self._state

    def peek(self) -> AuthState:
        return self._state

    async def require_credential(self) -> Credential:
        state = await self.snapshot()
        if state.credential is None:
            raise AuthenticationRequired()
        return state.credential

    async def load(self) -> AuthState:
        try:
            record = await self._session_store.load()
        except PersistenceError as error:
            LOGGER.error("Failed to load saved authentication state: %s", error)
            return await self.snapshot()

        if record is None:
            LOGGER.info("No saved authentication state found")
            return await self.snapshot()

        user_info = None
        if record.user_info_json:
            try:
                user_info = json.loads(record.user_info_json)
            except ValueError:
                user_info = None

        credential = None
        if record.is_authenticated and record.access_token:
            credential = Credential(access_token=record.access_token, user_info=user_info or {})

        async with self._lock:
            self._state = AuthState(credential)
        LOGGER.info("Loaded saved authentication state (authenticated=%s)", credential is not None)
        return self._state

    async def _persist(self, state: AuthState) -> None:
        record = new_session_record(
            is_authenticated=state.is_authenticated,
            access_token=state.access_token,
            user_info=state.user_info,
        )
        try:
            await self._session_store.save(record)
        except PersistenceError as error:
            LOGGER.error("Failed to save auth state: %s", error)
            return
        LOGGER.info("Session saved with ID: %s", record.id)

    async def _clear_persisted(self) -> None:
        try:
            await self._session_store.clear()
        except PersistenceError as error:
            LOGGER.error("Failed to clear auth state: %s", error)


class _AuthTransaction:
    def __init__(self, store: TokenStore) -> None:
        self._store = store

    @property
    def state(self) -> AuthState:
        return self._store._state

    async def commit(self, credential: Credential) -> AuthState:
        self._store._state = AuthState(credential)
        await self._store._persist(self._store._state)
        return self._store._state

    async def reset(self) -> AuthState:
        self._store._state = AuthState()
        await self._store._clear_persisted()
        return self._store._state


class PkceSlot:
    def __init__(self) -> None:
        self._pending: PkceState | None = None
        self._lock = asyncio.Lock()

    async def put(self, pkce: PkceState) -> PkceState | None:
        async with self._lock:
            previous, self._pending = self._pending, pkce
            return previous

    async def take(self) -> PkceState | None:
        async with self._lock:
            pending, self._pending = self._pending, None
            return pending

    async def peek(self) -> PkceState | None:
        async with self._lock:
            return self._pending
