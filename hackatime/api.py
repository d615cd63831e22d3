from __future__ import annotations

import json
import urllib.parse
from datetime import date
from typing import Any

import httpx
from pydantic import ValidationError

from .constants import LOGGER
from .errors import AuthenticationRequired, RemoteUnavailable, ResponseParseError
from .http import raise_for_api_status
from .schemas import ApiKeyResponse, Heartbeat, HoursResponse, StreakResponse

API_PREFIX = "/api/v1/authenticated"


def _date_param(value: date | str) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return value


class HackatimeApi:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def _get(self, path: str, token: str, what: str, params: dict | None = None) -> httpx.Response:
        try:
            response = await self._client.get(
                f"{API_PREFIX}{path}",
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as error:
            raise RemoteUnavailable(f"{what}: {error}") from error

        if response.status_code == 401:
            raise AuthenticationRequired(f"{what}: token was rejected by Hackatime.")
        raise_for_api_status(response, what)
        return response

    @staticmethod
    def _json(response: httpx.Response, what: str) -> Any:
        try:
            return response.json()
        except ValueError as error:
            raise ResponseParseError(f"Failed to parse {what} response: {error}") from error

    async def me(self, token: str) -> dict[str, Any]:
        response = await self._get("/me", token, "Failed to fetch user info")
        payload = self._json(response, "user info")
        if not isinstance(payload, dict):
            raise ResponseParseError("User info response must be a JSON object.")
        return payload

    async def latest_heartbeat(self, token: str) -> Heartbeat | None:
        response = await self._get("/heartbeats/latest", token, "Failed to get latest heartbeat")

        text = response.text.strip()
        if not text or text == "null":
            return None
        try:
            payload = json.loads(text)
        except ValueError as error:
            raise ResponseParseError(f"Failed to parse heartbeat JSON: {error}") from error
        if payload is None:
            return None
        if isinstance(payload, dict) and "heartbeat" in payload and "id" not in payload:
            payload = payload["heartbeat"]
            if payload is None:
                return None

        try:
            heartbeat = Heartbeat.model_validate(payload)
        except ValidationError as error:
            raise ResponseParseError(f"Failed to parse heartbeat JSON: {error}") from error

        LOGGER.debug(
            "Heartbeat id=%s project=%s language=%s editor=%s timestamp=%s",
            heartbeat.id,
            heartbeat.project,
            heartbeat.language,
            heartbeat.editor,
            heartbeat.timestamp,
        )
        return heartbeat

    async def hours(self, token: str, start_date: date | str, end_date: date | str) -> dict[str, Any]:
        response = await self._get(
            "/hours",
            token,
            "Failed to fetch hours",
            params={"start_date": _date_param(start_date), "end_date": _date_param(end_date)},
        )
        payload = self._json(response, "hours")
        try:
            HoursResponse.model_validate(payload)
        except ValidationError as error:
            raise ResponseParseError(f"Failed to parse hours response: {error}") from error
        return payload

    async def streak(self, token: str) -> dict[str, Any]:
        response = await self._get("/streak", token, "Failed to fetch streak")
        payload = self._json(response, "streak")
        try:
            StreakResponse.model_validate(payload)
        except ValidationError as error:
            raise ResponseParseError(f"Failed to parse streak response: {error}") from error
        return payload

    async def projects(self, token: str) -> Any:
        response = await self._get("/projects", token, "Failed to fetch projects")
        return self._json(response, "projects")

    async def project_details(self, token: str, project_name: str) -> Any:
        quoted = urllib.parse.quote(project_name, safe="")
        response = await self._get(f"/projects/{quoted}", token, "Failed to fetch project details")
        return self._json(response, "project details")

    async def api_key(self, token: str) -> str:
        response = await self._get("/api_keys", token, "Failed to fetch API key")
        try:
            return ApiKeyResponse.model_validate(self._json(response, "API key")).token
        except ValidationError as error:
            raise ResponseParseError("No token in API key response.") from error
