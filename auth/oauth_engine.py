from __future__ import annotations

import time
import webbrowser
from dataclasses import dataclass

import httpx

from auth import pkce
from auth.models import AuthState, Credential, PkceState
from auth.token_store import PkceSlot, TokenStore
from auth.urls import is_callback_url, parse_callback_url
from hackatime.constants import DEFAULT_SCOPES, LOGGER, PKCE_MAX_AGE_SECONDS
from hackatime.errors import (
    CallbackError,
    InvalidToken,
    NoPendingFlow,
    PersistenceError,
    PkceExpired,
    ProfileFetchFailed,
    RemoteUnavailable,
    StateMismatch,
)
from hackatime.storage import CacheStore


@dataclass
class AuthorizationRequest:
    url: str
    opened: bool


class OAuthEngine:
    def __init__(
        self,
        *,
        token_store: TokenStore,
        pkce_slot: PkceSlot,
        client_id: str,
        redirect_uri: str,
        scopes: list[str] | None = None,
        cache_store: CacheStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        pkce_max_age_seconds: int = PKCE_MAX_AGE_SECONDS,
        open_browser=webbrowser.open,
        exchange_code_fn=pkce.exchange_code,
        fetch_profile_fn=pkce.fetch_profile,
        clock=time.time,
    ) -> None:
        self.token_store = token_store
        self.pkce_slot = pkce_slot
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.scopes = scopes or list(DEFAULT_SCOPES)
        self.cache_store = cache_store
        self.pkce_max_age_seconds = pkce_max_age_seconds

        self._http_client = http_client
        self._open_browser = open_browser
        self._exchange_code_fn = exchange_code_fn
        self._fetch_profile_fn = fetch_profile_fn
        self._clock = clock

    # -- authorization-code flow -----------------------------------------------

    async def begin_authorization(self, api_base_url: str) -> AuthorizationRequest:
        verifier = pkce.generate_code_verifier()
        pending = PkceState(
            code_verifier=verifier,
            state=pkce.generate_state(),
            created_at=self._clock(),
        )
        previous = await self.pkce_slot.put(pending)
        if previous is not None:
            LOGGER.info("Replacing an unfinished authorization flow")

        url = pkce.build_authorization_url(
            api_base_url,
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            scopes=self.scopes,
            state=pending.state,
            code_challenge=pkce.generate_code_challenge(verifier),
        )

        try:
            opened = bool(self._open_browser(url))
        except (webbrowser.Error, OSError) as error:
            LOGGER.error("Failed to open authentication URL: %s", error)
            opened = False

        if opened:
            LOGGER.info("OAuth authentication URL opened in browser. Waiting for callback...")
        else:
            LOGGER.warning("Browser did not open; authentication URL returned for manual use")
        return AuthorizationRequest(url=url, opened=opened)

    async def complete_authorization(self, code: str, state: str, api_base_url: str) -> AuthState:
        pending = await self.pkce_slot.take()
        if pending is None:
            raise NoPendingFlow()
        if pending.is_expired(self.pkce_max_age_seconds, now=self._clock()):
            raise PkceExpired()
        if pending.state != state:
            raise StateMismatch()

        LOGGER.info("Exchanging authorization code for access token")
        token = await self._exchange_code_fn(
            api_base_url,
            client_id=self.client_id,
            code=code,
            redirect_uri=self.redirect_uri,
            code_verifier=pending.code_verifier,
            client=self._http_client,
        )

        try:
            user_info = await self._fetch_profile_fn(
                api_base_url, token.access_token, client=self._http_client
            )
        except (ProfileFetchFailed, RemoteUnavailable) as error:
            LOGGER.warning("Continuing without user profile: %s", error)
            user_info = {}

        async with self.token_store.transaction() as transaction:
            auth_state = await transaction.commit(
                Credential(access_token=token.access_token, user_info=user_info)
            )

        LOGGER.info("OAuth authentication completed successfully")
        return auth_state

    # -- other entry points ----------------------------------------------------

    async def validate_opaque_token(self, token: str, api_base_url: str) -> AuthState:
        token = token.strip()
        if not token:
            raise InvalidToken("Access token is empty.")

        LOGGER.info("Validating access token directly")
        try:
            user_info = await self._fetch_profile_fn(api_base_url, token, client=self._http_client)
        except ProfileFetchFailed as error:
            raise InvalidToken(f"Access token validation failed: {error}") from error

        async with self.token_store.transaction() as transaction:
            auth_state = await transaction.commit(Credential(access_token=token, user_info=user_info))

        LOGGER.info("Access token validation completed successfully")
        return auth_state

    async def handle_deep_link(self, url: str, api_base_url: str) -> AuthState:
        if not is_callback_url(url, self.redirect_uri):
            return await self.validate_opaque_token(url, api_base_url)

        params = parse_callback_url(url)
        if params.error:
            await self.pkce_slot.take()
            detail = params.error_description or params.error
            raise CallbackError(f"OAuth error: {detail}")
        if not params.code:
            raise CallbackError("No authorization code found in deep link URL.")
        if not params.state:
            raise CallbackError("No state found in deep link URL.")

        return await self.complete_authorization(params.code, params.state, api_base_url)

    async def logout(self) -> None:
        async with self.token_store.transaction() as transaction:
            await transaction.reset()

        if self.cache_store is None:
            return
        LOGGER.info("Clearing statistics cache on logout...")
        try:
            await self.cache_store.clear()
        except PersistenceError as error:
            LOGGER.error("Failed to clear statistics cache on logout: %s", error)
            return
        LOGGER.info("Statistics cache cleared on logout")
