import json
from datetime import date

import httpx

from auth.models import Credential
from auth.token_store import TokenStore
from hackatime.api import HackatimeApi
from hackatime.errors import PersistenceError
from hackatime.presence import PresenceError, PresenceSink
from hackatime.storage import CacheStore, MemorySessionStore, SessionStore

API_BASE_URL = "https://hackatime.example.com"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingPresence(PresenceSink):
    def __init__(self, *, connected: bool = True, fail: bool = False) -> None:
        self.connected = connected
        self.fail = fail
        self.calls: list[tuple] = []

    def is_connected(self) -> bool:
        return self.connected

    async def set_activity(self, project, language, editor, file, start_time) -> None:
        self.calls.append(("set", project, language, editor, file, start_time))
        if self.fail:
            raise PresenceError("discord went away")

    async def clear_activity(self) -> None:
        self.calls.append(("clear",))
        if self.fail:
            raise PresenceError("discord went away")


class FailingSessionStore(SessionStore):
    async def save(self, record) -> None:
        raise PersistenceError("disk full")

    async def load(self):
        raise PersistenceError("disk unreadable")

    async def clear(self) -> None:
        raise PersistenceError("disk full")

    async def cleanup_old_sessions(self, days_old: int) -> int:
        raise PersistenceError("disk full")


class FailingCacheStore(CacheStore):
    async def get(self, key):
        raise PersistenceError("cache unreadable")

    async def set(self, key, value, ttl) -> None:
        raise PersistenceError("cache unwritable")

    async def clear(self) -> None:
        raise PersistenceError("cache unwritable")

    async def cleanup_expired(self) -> int:
        raise PersistenceError("cache unwritable")


class RecordingHandler:
    """MockTransport handler that answers by path and remembers every request."""

    def __init__(self, routes: dict[str, object] | None = None) -> None:
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []

    def count(self, path: str) -> int:
        return sum(1 for request in self.requests if request.url.path == path)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(route):
            return route(request)
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)


def build_api(handler) -> HackatimeApi:
    client = httpx.AsyncClient(base_url=API_BASE_URL, transport=httpx.MockTransport(handler))
    return HackatimeApi(client)


async def authenticated_store(
    token: str = "token-abc",
    user_info: dict | None = None,
    session_store: SessionStore | None = None,
) -> TokenStore:
    store = TokenStore(session_store or MemorySessionStore())
    async with store.transaction() as transaction:
        await transaction.commit(Credential(access_token=token, user_info=user_info or {}))
    return store


def heartbeat_payload(heartbeat_id: int, timestamp: int, **extra) -> dict:
    payload = {
        "id": heartbeat_id,
        "project": "hackatime-desktop",
        "editor": "VS Code",
        "language": "Python",
        "entity": "/home/dev/project/main.py",
        "time": float(timestamp),
        "timestamp": timestamp,
    }
    payload.update(extra)
    return payload


def hours_route(seconds_by_range: dict[tuple[str, str], int]):
    def route(request: httpx.Request) -> httpx.Response:
        key = (request.url.params["start_date"], request.url.params["end_date"])
        return httpx.Response(
            200,
            content=json.dumps(
                {
                    "start_date": key[0],
                    "end_date": key[1],
                    "total_seconds": seconds_by_range.get(key, 0),
                }
            ),
            headers={"content-type": "application/json"},
        )

    return route


def fixed_today(value: date):
    return lambda: value
