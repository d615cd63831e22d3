from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any

from .constants import LOGGER


class PresenceError(RuntimeError):
    pass


@dataclass
class Activity:
    project: str
    language: str | None = None
    editor: str | None = None
    file: str | None = None
    start_time: int | None = None

    def details(self) -> str | None:
        parts: list[str] = []
        if self.language:
            parts.append(f"Language: {self.language}")
        if self.editor:
            parts.append(f"Editor: {self.editor}")
        if self.file:
            parts.append(f"File: {self.file.replace(chr(92), '/').rsplit('/', 1)[-1]}")
        return " • ".join(parts) if parts else None


class PresenceSink(ABC):
    @abstractmethod
    def is_connected(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def set_activity(
        self,
        project: str | None,
        language: str | None,
        editor: str | None,
        file: str | None,
        start_time: int | None,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    async def clear_activity(self) -> None:
        raise NotImplementedError

    def state(self) -> dict[str, Any]:
        return {"is_connected": self.is_connected()}


class NullPresence(PresenceSink):
    def is_connected(self) -> bool:
        return False

    async def set_activity(self, project, language, editor, file, start_time) -> None:
        return None

    async def clear_activity(self) -> None:
        return None


class DiscordPresence(PresenceSink):
    def __init__(self, client_id: str, *, presence_factory=None) -> None:
        self.client_id = client_id
        self._presence_factory = presence_factory
        self._rpc = None
        self._current: Activity | None = None
        self._lock = asyncio.Lock()

    def _create(self):
        if self._presence_factory is not None:
            return self._presence_factory(self.client_id)
        from pypresence import AioPresence

        return AioPresence(self.client_id)

    def is_connected(self) -> bool:
        return self._rpc is not None

    def state(self) -> dict[str, Any]:
        return {
            "is_connected": self.is_connected(),
            "client_id": self.client_id if self.is_connected() else None,
            "current_activity": asdict(self._current) if self._current else None,
        }

    async def connect(self) -> None:
        async with self._lock:
            if self._rpc is not None:
                self._close_locked()
            rpc = self._create()
            try:
                await rpc.connect()
            except Exception as error:
                raise PresenceError(f"Failed to connect to Discord: {error}") from error
            self._rpc = rpc
        LOGGER.info("Discord RPC connected")

    async def disconnect(self) -> None:
        async with self._lock:
            self._close_locked()

    def _close_locked(self) -> None:
        rpc, self._rpc = self._rpc, None
        self._current = None
        if rpc is None:
            return
        try:
            rpc.close()
        except Exception as error:
            LOGGER.warning("Failed to disconnect from Discord: %s", error)

    async def set_activity(self, project, language, editor, file, start_time) -> None:
        activity = Activity(
            project=project or "Unknown Project",
            language=language,
            editor=editor,
            file=file,
            start_time=start_time,
        )
        payload: dict[str, Any] = {
            "state": activity.project,
            "large_image": "hackatime",
            "large_text": "Hackatime - Time Tracking",
            "small_image": "coding",
            "small_text": "Coding",
        }
        details = activity.details()
        if details:
            payload["details"] = details
        if activity.start_time is not None:
            payload["start"] = activity.start_time

        async with self._lock:
            if self._rpc is None:
                raise PresenceError("Discord client not connected")
            try:
                await self._rpc.update(**payload)
            except Exception as error:
                raise PresenceError(f"Failed to set Discord activity: {error}") from error
            self._current = activity

    async def clear_activity(self) -> None:
        async with self._lock:
            if self._rpc is None:
                raise PresenceError("Discord client not connected")
            try:
                await self._rpc.clear()
            except Exception as error:
                raise PresenceError(f"Failed to clear Discord activity: {error}") from error
            self._current = None
