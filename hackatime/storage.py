from __future__ import annotations

import json
import os
import tempfile
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from .constants import LOGGER
from .errors import PersistenceError


@dataclass
class SessionRecord:
    id: str
    is_authenticated: bool
    access_token: str | None
    user_info_json: str | None
    created_at: str
    updated_at: str
    last_accessed_at: str


@dataclass
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    ttl: float

    def is_expired(self, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current >= self.inserted_at + self.ttl


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_session_record(
    *,
    is_authenticated: bool,
    access_token: str | None,
    user_info: dict[str, Any] | None,
) -> SessionRecord:
    now = _utcnow()
    return SessionRecord(
        id=str(uuid.uuid4()),
        is_authenticated=is_authenticated,
        access_token=access_token,
        user_info_json=json.dumps(user_info) if user_info is not None else None,
        created_at=now,
        updated_at=now,
        last_accessed_at=now,
    )


class SessionStore(ABC):
    @abstractmethod
    async def save(self, record: SessionRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    async def load(self) -> SessionRecord | None:
        raise NotImplementedError

    @abstractmethod
    async def clear(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def cleanup_old_sessions(self, days_old: int) -> int:
        raise NotImplementedError


class CacheStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> Any | None:
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: float) -> None:
        raise NotImplementedError

    @abstractmethod
    async def clear(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def cleanup_expired(self) -> int:
        raise NotImplementedError


def _latest(records: list[SessionRecord]) -> SessionRecord | None:
    if not records:
        return None
    return max(records, key=lambda record: record.last_accessed_at)


def _cutoff(days_old: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days_old)).isoformat()


def _session_record(payload: Any) -> SessionRecord | None:
    try:
        record = SessionRecord(**payload)
    except TypeError:
        record = None
    if (
        record is None
        or not isinstance(record.last_accessed_at, str)
        or not isinstance(record.access_token, (str, type(None)))
        or not isinstance(record.user_info_json, (str, type(None)))
    ):
        LOGGER.warning("Dropping malformed session record from store")
        return None
    return record


def _cache_entry(payload: Any) -> CacheEntry | None:
    try:
        entry = CacheEntry(**payload)
    except TypeError:
        entry = None
    if entry is None or not all(
        isinstance(value, (int, float)) and not isinstance(value, bool)
        for value in (entry.inserted_at, entry.ttl)
    ):
        LOGGER.warning("Dropping malformed cache entry from store")
        return None
    return entry


class MemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._sessions: list[SessionRecord] = []

    async def save(self, record: SessionRecord) -> None:
        self._sessions.append(record)

    async def load(self) -> SessionRecord | None:
        record = _latest(self._sessions)
        if record is not None:
            record.last_accessed_at = _utcnow()
        return record

    async def clear(self) -> None:
        self._sessions.clear()

    async def cleanup_old_sessions(self, days_old: int) -> int:
        cutoff = _cutoff(days_old)
        before = len(self._sessions)
        self._sessions = [r for r in self._sessions if r.last_accessed_at >= cutoff]
        return before - len(self._sessions)


class MemoryCacheStore(CacheStore):
    def __init__(self) -> None:
        self._cache: dict[str, CacheEntry] = {}

    async def get(self, key: str) -> Any | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.is_expired():
            del self._cache[key]
            return None
        return entry.value

    async def set(self, key: str, value: Any, ttl: float) -> None:
        self._cache[key] = CacheEntry(key=key, value=value, inserted_at=time.time(), ttl=ttl)

    async def clear(self) -> None:
        self._cache.clear()

    async def cleanup_expired(self) -> int:
        expired = [key for key, entry in self._cache.items() if entry.is_expired()]
        for key in expired:
            del self._cache[key]
        return len(expired)


class FileStore(SessionStore):
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def save(self, record: SessionRecord) -> None:
        document = self._read_all()
        document["sessions"].append(asdict(record))
        self._write_all(document)

    async def load(self) -> SessionRecord | None:
        document = self._read_all()
        records = [r for r in map(_session_record, document["sessions"]) if r is not None]
        record = _latest(records)
        if record is None:
            if document["sessions"]:
                document["sessions"] = []
                self._write_all(document)
            return None

        record.last_accessed_at = _utcnow()
        document["sessions"] = [
            asdict(record) if item.id == record.id else asdict(item) for item in records
        ]
        self._write_all(document)
        return record

    async def clear(self) -> None:
        document = self._read_all()
        document["sessions"] = []
        self._write_all(document)

    async def cleanup_old_sessions(self, days_old: int) -> int:
        cutoff = _cutoff(days_old)
        document = self._read_all()
        records = [r for r in map(_session_record, document["sessions"]) if r is not None]
        kept = [asdict(r) for r in records if r.last_accessed_at >= cutoff]
        removed = len(document["sessions"]) - len(kept)
        document["sessions"] = kept
        self._write_all(document)
        return removed

    def cache(self) -> "FileCacheStore":
        return FileCacheStore(self)

    def _read_all(self) -> dict[str, Any]:
        if not self._path.exists():
            return {"sessions": [], "cache": {}}

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as error:
            raise PersistenceError(f"Failed to read {self._path}: {error}") from error
        if not isinstance(raw, dict):
            raise PersistenceError("Store file is invalid; expected top-level JSON object.")
        raw.setdefault("sessions", [])
        raw.setdefault("cache", {})
        if not isinstance(raw["sessions"], list) or not isinstance(raw["cache"], dict):
            raise PersistenceError("Store file is invalid; unexpected sessions or cache section.")
        return raw

    def _write_all(self, payload: dict[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f"{self._path.name}.",
                suffix=".tmp",
                dir=self._path.parent,
            )
        except OSError as error:
            raise PersistenceError(f"Failed to write {self._path}: {error}") from error
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as error:
            raise PersistenceError(f"Failed to write {self._path}: {error}") from error
        finally:
            if tmp_path.exists():
                tmp_path.unlink()


class FileCacheStore(CacheStore):
    def __init__(self, store: FileStore) -> None:
        self._store = store

    async def get(self, key: str) -> Any | None:
        document = self._store._read_all()
        payload = document["cache"].get(key)
        if payload is None:
            return None
        entry = _cache_entry(payload)
        if entry is None or entry.is_expired():
            del document["cache"][key]
            self._store._write_all(document)
            return None
        return entry.value

    async def set(self, key: str, value: Any, ttl: float) -> None:
        document = self._store._read_all()
        entry = CacheEntry(key=key, value=value, inserted_at=time.time(), ttl=ttl)
        document["cache"][key] = asdict(entry)
        self._store._write_all(document)

    async def clear(self) -> None:
        document = self._store._read_all()
        document["cache"] = {}
        self._store._write_all(document)

    async def cleanup_expired(self) -> int:
        document = self._store._read_all()
        now = time.time()
        expired = []
        for key, payload in document["cache"].items():
            entry = _cache_entry(payload)
            if entry is None or entry.is_expired(now):
                expired.append(key)
        for key in expired:
            del document["cache"][key]
        if expired:
            self._store._write_all(document)
        return len(expired)
