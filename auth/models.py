from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Credential:
    access_token: str
    user_info: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthState:
    credential: Credential | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.credential is not None

    @property
    def access_token(self) -> str | None:
        return self.credential.access_token if self.credential else None

    @property
    def user_info(self) -> dict[str, Any] | None:
        return self.credential.user_info if self.credential else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_authenticated": self.is_authenticated,
            "access_token": self.access_token,
            "user_info": self.user_info,
        }


@dataclass(frozen=True)
class PkceState:
    code_verifier: str
    state: str
    created_at: float

    def is_expired(self, max_age_seconds: float, *, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current - self.created_at > max_age_seconds
