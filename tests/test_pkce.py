import string
import urllib.parse

import httpx
import pytest

from auth.pkce import (
    PROFILE_PATH,
    TOKEN_PATH,
    TokenResponse,
    build_authorization_url,
    exchange_code,
    fetch_profile,
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
)
from hackatime.errors import ProfileFetchFailed, RemoteUnavailable, TokenExchangeFailed
from tests.helpers import API_BASE_URL


def test_code_verifier_is_32_bytes_unpadded() -> None:
    verifier = generate_code_verifier()

    assert len(verifier) == 43
    assert "=" not in verifier


def test_code_verifier_url_safe() -> None:
    verifier = generate_code_verifier()
    allowed = set(string.ascii_letters + string.digits + "-_")

    assert all(char in allowed for char in verifier)


def test_code_verifier_is_random() -> None:
    assert generate_code_verifier() != generate_code_verifier()


def test_code_challenge_is_s256() -> None:
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"

    assert generate_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_state_is_32_alphanumeric_chars() -> None:
    state = generate_state()

    assert len(state) == 32
    assert state.isalnum()
    assert state.isascii()


def test_build_authorization_url_contains_required_params() -> None:
    url = build_authorization_url(
        API_BASE_URL + "/",
        client_id="client123",
        redirect_uri="hackatime://auth/callback",
        scopes=["profile"],
        state="state123",
        code_challenge="challenge123",
    )

    parsed = urllib.parse.urlparse(url)
    query = urllib.parse.parse_qs(parsed.query)

    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == f"{API_BASE_URL}/oauth/authorize"
    assert query["client_id"] == ["client123"]
    assert query["redirect_uri"] == ["hackatime://auth/callback"]
    assert query["response_type"] == ["code"]
    assert query["scope"] == ["profile"]
    assert query["state"] == ["state123"]
    assert query["code_challenge"] == ["challenge123"]
    assert query["code_challenge_method"] == ["S256"]


@pytest.mark.asyncio
async def test_exchange_code_success(httpx_mock) -> None:
    httpx_mock.add_response(
        url=API_BASE_URL + TOKEN_PATH,
        method="POST",
        json={"access_token": "access-1", "token_type": "Bearer", "scope": "profile", "created_at": 1},
    )

    token = await exchange_code(
        API_BASE_URL,
        client_id="id",
        code="code123",
        redirect_uri="hackatime://auth/callback",
        code_verifier="verifier123",
    )

    assert token == TokenResponse(access_token="access-1", token_type="Bearer", scope="profile")

    request = httpx_mock.get_request()
    form = urllib.parse.parse_qs(request.content.decode())
    assert form == {
        "grant_type": ["authorization_code"],
        "code": ["code123"],
        "client_id": ["id"],
        "redirect_uri": ["hackatime://auth/callback"],
        "code_verifier": ["verifier123"],
    }


@pytest.mark.asyncio
async def test_exchange_code_error_status(httpx_mock) -> None:
    httpx_mock.add_response(
        url=API_BASE_URL + TOKEN_PATH, method="POST", status_code=400, text="invalid_grant"
    )

    with pytest.raises(TokenExchangeFailed, match="status 400: invalid_grant"):
        await exchange_code(
            API_BASE_URL,
            client_id="id",
            code="bad-code",
            redirect_uri="hackatime://auth/callback",
            code_verifier="verifier123",
        )


@pytest.mark.asyncio
async def test_exchange_code_without_access_token(httpx_mock) -> None:
    httpx_mock.add_response(url=API_BASE_URL + TOKEN_PATH, method="POST", json={"token_type": "Bearer"})

    with pytest.raises(TokenExchangeFailed, match="No access token"):
        await exchange_code(
            API_BASE_URL,
            client_id="id",
            code="code123",
            redirect_uri="hackatime://auth/callback",
            code_verifier="verifier123",
        )


@pytest.mark.asyncio
async def test_exchange_code_transport_error(httpx_mock) -> None:
    httpx_mock.add_exception(httpx.ConnectError("connection refused"))

    with pytest.raises(TokenExchangeFailed, match="connection refused"):
        await exchange_code(
            API_BASE_URL,
            client_id="id",
            code="code123",
            redirect_uri="hackatime://auth/callback",
            code_verifier="verifier123",
        )


@pytest.mark.asyncio
async def test_fetch_profile_success(httpx_mock) -> None:
    httpx_mock.add_response(
        url=API_BASE_URL + PROFILE_PATH,
        method="GET",
        json={"id": 7, "username": "orpheus"},
    )

    profile = await fetch_profile(API_BASE_URL, "access-1")

    assert profile == {"id": 7, "username": "orpheus"}
    assert httpx_mock.get_request().headers["Authorization"] == "Bearer access-1"


@pytest.mark.asyncio
async def test_fetch_profile_rejected(httpx_mock) -> None:
    httpx_mock.add_response(url=API_BASE_URL + PROFILE_PATH, method="GET", status_code=401)

    with pytest.raises(ProfileFetchFailed, match="status 401"):
        await fetch_profile(API_BASE_URL, "bad-token")


@pytest.mark.asyncio
async def test_fetch_profile_unparseable(httpx_mock) -> None:
    httpx_mock.add_response(url=API_BASE_URL + PROFILE_PATH, method="GET", text="<html>")

    with pytest.raises(ProfileFetchFailed, match="parse"):
        await fetch_profile(API_BASE_URL, "access-1")


@pytest.mark.asyncio
async def test_fetch_profile_transport_error(httpx_mock) -> None:
    httpx_mock.add_exception(httpx.ConnectError("offline"))

    with pytest.raises(RemoteUnavailable):
        await fetch_profile(API_BASE_URL, "access-1")
