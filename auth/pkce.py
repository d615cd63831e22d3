from __future__ import annotations

import base64
import hashlib
import secrets
import string
import urllib.parse
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator

import httpx
from pydantic import ValidationError

from hackatime.errors import ProfileFetchFailed, RemoteUnavailable, TokenExchangeFailed
from hackatime.schemas import TokenPayload, as_profile

TOKEN_PATH = "/oauth/token"
AUTHORIZE_PATH = "/oauth/authorize"
PROFILE_PATH = "/api/v1/authenticated/me"

_STATE_ALPHABET = string.ascii_letters + string.digits


@dataclass
class TokenResponse:
    access_token: str
    token_type: str
    scope: str

    @classmethod
    def from_payload(cls, payload: Any) -> "TokenResponse":
        try:
            token = TokenPayload.model_validate(payload)
        except ValidationError as error:
            raise TokenExchangeFailed("No access token in response.") from error
        if not token.access_token:
            raise TokenExchangeFailed("No access token in response.")
        return cls(access_token=token.access_token, token_type=token.token_type, scope=token.scope)


def generate_code_verifier() -> str:
    return base64.urlsafe_b64encode(secrets.token_bytes(32)).decode("utf-8").rstrip("=")


def generate_code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


def generate_state(length: int = 32) -> str:
    return "".join(secrets.choice(_STATE_ALPHABET) for _ in range(length))


def build_authorization_url(
    api_base_url: str,
    client_id: str,
    redirect_uri: str,
    scopes: list[str],
    state: str,
    code_challenge: str,
) -> str:
    query = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(scopes),
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    return f"{api_base_url.rstrip('/')}{AUTHORIZE_PATH}?{urllib.parse.urlencode(query)}"


@asynccontextmanager
async def _client_scope(client: httpx.AsyncClient | None) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient() as scoped:
        yield scoped


async def exchange_code(
    api_base_url: str,
    client_id: str,
    code: str,
    redirect_uri: str,
    code_verifier: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    form = {
        "grant_type": "authorization_code",
        "code": code,
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "code_verifier": code_verifier,
    }
    async with _client_scope(client) as http:
        try:
            response = await http.post(f"{api_base_url.rstrip('/')}{TOKEN_PATH}", data=form)
        except httpx.HTTPError as error:
            raise TokenExchangeFailed(f"Failed to exchange authorization code: {error}") from error

    if not response.is_success:
        raise TokenExchangeFailed(
            f"Token exchange failed with status {response.status_code}: {response.text}"
        )
    try:
        payload = response.json()
    except ValueError as error:
        raise TokenExchangeFailed(f"Failed to parse token response: {error}") from error
    return TokenResponse.from_payload(payload)


async def fetch_profile(
    api_base_url: str,
    access_token: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    async with _client_scope(client) as http:
        try:
            response = await http.get(
                f"{api_base_url.rstrip('/')}{PROFILE_PATH}",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as error:
            raise RemoteUnavailable(f"Failed to fetch user info: {error}") from error

    if not response.is_success:
        raise ProfileFetchFailed(f"User info request failed with status {response.status_code}")
    try:
        return as_profile(response.json())
    except ValueError as error:
        raise ProfileFetchFailed(f"Failed to parse user info response: {error}") from error
