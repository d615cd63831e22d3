from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


class TokenPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    access_token: str
    token_type: str = "bearer"
    scope: str = ""
    created_at: int | None = None


class Heartbeat(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    project: str | None = None
    editor: str | None = None
    language: str | None = None
    entity: str | None = None
    time: float = 0.0
    timestamp: int = 0
    created_at: str | None = None
    category: str | None = None
    operating_system: str | None = None
    machine: str | None = None

    @model_validator(mode="after")
    def _fill_timestamp(self) -> "Heartbeat":
        if self.timestamp == 0:
            self.timestamp = int(self.time)
        return self


class HoursResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    total_seconds: float = 0
    start_date: str | None = None
    end_date: str | None = None


class StreakResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    streak_days: int = 0
    longest_streak: int = 0


class ApiKeyResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    token: str


def as_profile(payload: Any) -> dict[str, Any]:
    if isinstance(payload, dict):
        return dict(payload)
    return {}
