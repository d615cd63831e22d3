from __future__ import annotations

import asyncio
import enum
import time
from dataclasses import asdict, dataclass, replace
from typing import Any

from auth.token_store import TokenStore

from .api import HackatimeApi
from .constants import HEARTBEAT_RECENCY_SECONDS, LOGGER
from .errors import AuthenticationRequired
from .presence import PresenceError, PresenceSink
from .schemas import Heartbeat


class Transition(str, enum.Enum):
    NOOP = "noop"
    START = "start"
    CONTINUE = "continue"
    END = "end"


@dataclass(frozen=True)
class SessionState:
    is_active: bool = False
    start_time: int | None = None
    last_heartbeat_id: int | None = None
    heartbeat_count: int = 0
    project: str | None = None
    editor: str | None = None
    language: str | None = None
    entity: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


INACTIVE = SessionState()


def decide(
    session: SessionState,
    heartbeat: Heartbeat | None,
    now: float,
    threshold_seconds: int = HEARTBEAT_RECENCY_SECONDS,
) -> Transition:
    """Pick the transition for one observed heartbeat.

    A heartbeat is recent when it is younger than the threshold. A heartbeat
    whose id matches the last one seen is a duplicate: it keeps an active
    session alive while recent and ends it once stale.
    """
    if heartbeat is None:
        return Transition.END if session.is_active else Transition.NOOP

    recent = now - heartbeat.timestamp < threshold_seconds
    duplicate = session.last_heartbeat_id == heartbeat.id

    if not session.is_active:
        return Transition.START if recent and not duplicate else Transition.NOOP
    if not recent:
        return Transition.END
    if duplicate:
        return Transition.NOOP
    return Transition.CONTINUE


def apply(session: SessionState, transition: Transition, heartbeat: Heartbeat | None) -> SessionState:
    if transition is Transition.END:
        return INACTIVE
    if transition is Transition.START and heartbeat is not None:
        return SessionState(
            is_active=True,
            start_time=heartbeat.timestamp,
            last_heartbeat_id=heartbeat.id,
            heartbeat_count=1,
            project=heartbeat.project,
            editor=heartbeat.editor,
            language=heartbeat.language,
            entity=heartbeat.entity,
        )
    if transition is Transition.CONTINUE and heartbeat is not None:
        return replace(
            session,
            last_heartbeat_id=heartbeat.id,
            heartbeat_count=session.heartbeat_count + 1,
            project=heartbeat.project,
            editor=heartbeat.editor,
            language=heartbeat.language,
            entity=heartbeat.entity,
        )
    return session


@dataclass
class PollResult:
    heartbeat: Heartbeat | None
    session: SessionState
    transition: Transition

    def to_dict(self) -> dict[str, Any]:
        return {
            "heartbeat": self.heartbeat.model_dump() if self.heartbeat is not None else None,
            "session": self.session.to_dict(),
            "transition": self.transition.value,
        }


class SessionEngine:
    def __init__(
        self,
        *,
        api: HackatimeApi,
        token_store: TokenStore,
        presence: PresenceSink,
        recency_threshold_seconds: int = HEARTBEAT_RECENCY_SECONDS,
        clock=time.time,
    ) -> None:
        self.api = api
        self.token_store = token_store
        self.presence = presence
        self.recency_threshold_seconds = recency_threshold_seconds
        self._clock = clock
        self._state = INACTIVE
        self._lock = asyncio.Lock()

    async def poll(self) -> PollResult:
        credential = await self.token_store.require_credential()

        # Network I/O happens without holding any lock.
        heartbeat = await self.api.latest_heartbeat(credential.access_token)

        async with self._lock:
            if self.token_store.peek().credential is not credential:
                raise AuthenticationRequired("Signed out while polling for heartbeats.")

            transition = decide(self._state, heartbeat, self._clock(), self.recency_threshold_seconds)
            self._state = apply(self._state, transition, heartbeat)
            session = self._state

        await self._notify(transition, heartbeat, session)
        if transition is not Transition.NOOP:
            LOGGER.info("Session %s (heartbeats=%s)", transition.value, session.heartbeat_count)
        return PollResult(heartbeat=heartbeat, session=session, transition=transition)

    async def _notify(
        self, transition: Transition, heartbeat: Heartbeat | None, session: SessionState
    ) -> None:
        if transition is Transition.NOOP or not self.presence.is_connected():
            return
        try:
            if transition is Transition.END:
                await self.presence.clear_activity()
            elif heartbeat is not None:
                await self.presence.set_activity(
                    heartbeat.project,
                    heartbeat.language,
                    heartbeat.editor,
                    heartbeat.entity,
                    session.start_time if session.start_time is not None else heartbeat.timestamp,
                )
        except PresenceError as error:
            LOGGER.warning("Failed to update presence: %s", error)

    async def current(self) -> SessionState:
        async with self._lock:
            return self._state

    async def reset(self) -> None:
        async with self._lock:
            was_active = self._state.is_active
            self._state = INACTIVE
        if was_active:
            await self._notify(Transition.END, None, INACTIVE)

    async def status(self) -> dict[str, Any]:
        async with self._lock:
            session = self._state
        duration = 0
        if session.is_active and session.start_time is not None:
            duration = int(self._clock()) - session.start_time
        return {
            "authenticated": self.token_store.peek().is_authenticated,
            "session_active": session.is_active,
            "session_duration": duration,
            "project": session.project or "No project",
            "editor": session.editor or "No editor",
            "language": session.language or "No language",
            "discord_connected": self.presence.is_connected(),
            "heartbeat_count": session.heartbeat_count,
        }
