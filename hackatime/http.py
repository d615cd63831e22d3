from __future__ import annotations

import asyncio
import logging
import time

import httpx

from .constants import APP_VERSION, LOGGER
from .errors import RateLimited, RemoteFetchFailed

MAX_ERROR_DETAIL = 500

_STATUS_MESSAGES = {
    401: "Authentication failed. Your Hackatime token may have expired.",
    403: "You don't have permission to perform this action.",
    404: "The requested resource was not found on Hackatime.",
}


def _redacted_url(request: httpx.Request) -> str:
    # Query strings may carry dates or codes; logs keep only the path.
    return str(request.url.copy_with(query=None))


def _parse_seconds(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def retry_after_seconds(response: httpx.Response, *, now: float | None = None) -> int | None:
    delay = _parse_seconds(response.headers.get("retry-after"))
    if delay is not None:
        return max(0, delay)

    reset_at = _parse_seconds(response.headers.get("x-ratelimit-reset"))
    if reset_at is None:
        return None
    clock = time.time() if now is None else now
    return max(0, reset_at - int(clock))


class RetryTransport(httpx.AsyncBaseTransport):
    def __init__(
        self,
        transport: httpx.AsyncBaseTransport,
        *,
        max_retries: int = 2,
        sleep=asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._inner = transport
        self._attempts = 1 + max(0, max_retries)
        self._sleep = sleep
        self._logger = logger or LOGGER

    def _replay(self, original: httpx.Request, body: bytes) -> httpx.Request:
        return httpx.Request(
            original.method,
            original.url,
            headers=original.headers,
            content=body,
            extensions=original.extensions,
        )

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        body = request.content
        attempt = 0
        while True:
            response = await self._inner.handle_async_request(self._replay(request, body))
            if response.status_code < 500 or attempt + 1 >= self._attempts:
                return response

            delay = 2**attempt
            self._logger.warning(
                "Hackatime returned %s for %s %s, attempt %s of %s, waiting %ss",
                response.status_code,
                request.method,
                _redacted_url(request),
                attempt + 1,
                self._attempts,
                delay,
            )
            await response.aclose()
            await self._sleep(delay)
            attempt += 1

    async def aclose(self) -> None:
        await self._inner.aclose()


def _describe_status(status_code: int, wait_seconds: int | None = None) -> str:
    if status_code == 429:
        return f"Rate limit exceeded. Please wait {wait_seconds or 0} seconds."
    if status_code >= 500:
        return "Hackatime is experiencing issues. Please try again later."
    return _STATUS_MESSAGES.get(status_code, f"Hackatime request failed with status {status_code}.")


async def handle_rate_limits(response: httpx.Response) -> None:
    remaining = response.headers.get("x-ratelimit-remaining")
    if response.status_code != 429 and remaining != "0":
        return
    LOGGER.warning(
        "Rate limit warning endpoint=%s status=%s remaining=%s wait=%s",
        _redacted_url(response.request),
        response.status_code,
        remaining,
        retry_after_seconds(response),
    )


def _error_detail(response: httpx.Response) -> str:
    try:
        text = response.text
    except httpx.ResponseNotRead:
        return ""
    if len(text) <= MAX_ERROR_DETAIL:
        return text
    return text[:MAX_ERROR_DETAIL] + "...<truncated>"


def raise_for_api_status(response: httpx.Response, what: str) -> None:
    if response.is_success:
        return

    status = response.status_code
    wait_seconds = retry_after_seconds(response) if status == 429 else None
    message = " ".join(
        part for part in (f"{what}:", _describe_status(status, wait_seconds), _error_detail(response)) if part
    )
    if status == 429:
        raise RateLimited(message, wait_seconds=wait_seconds)
    raise RemoteFetchFailed(message, remote_status=status)


def build_http_client(
    base_url: str,
    *,
    timeout: float = 30.0,
    max_retries: int = 2,
    debug: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    response_hooks = [handle_rate_limits]
    request_hooks = []

    if debug:

        async def trace_request(request: httpx.Request) -> None:
            LOGGER.info("-> %s %s", request.method, _redacted_url(request))

        async def trace_response(response: httpx.Response) -> None:
            LOGGER.info(
                "<- %s %s %s", response.status_code, response.request.method, _redacted_url(response.request)
            )

        request_hooks.append(trace_request)
        response_hooks.append(trace_response)

    return httpx.AsyncClient(
        base_url=base_url,
        headers={"User-Agent": f"hackatime-desktop/{APP_VERSION}"},
        timeout=timeout,
        transport=RetryTransport(transport or httpx.AsyncHTTPTransport(), max_retries=max_retries),
        event_hooks={"request": request_hooks, "response": response_hooks},
    )
