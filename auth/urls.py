from __future__ import annotations

import urllib.parse
from dataclasses import dataclass


@dataclass
class CallbackParams:
    code: str | None
    state: str | None
    error: str | None
    error_description: str | None = None


def _without_query(uri: str) -> tuple[str, str, str]:
    parsed = urllib.parse.urlparse(uri)
    return parsed.scheme.lower(), parsed.netloc.lower(), parsed.path.rstrip("/")


def is_callback_url(uri: str, redirect_uri: str) -> bool:
    return _without_query(uri.strip()) == _without_query(redirect_uri)


def parse_callback_url(uri: str) -> CallbackParams:
    parsed = urllib.parse.urlparse(uri.strip())
    query = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)

    def first(key: str) -> str | None:
        values = query.get(key)
        if not values or not values[0]:
            return None
        return values[0]

    return CallbackParams(
        code=first("code"),
        state=first("state"),
        error=first("error"),
        error_description=first("error_description"),
    )


def build_callback_url(redirect_uri: str, params: dict[str, str]) -> str:
    parsed = urllib.parse.urlparse(redirect_uri)
    existing = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)
    for key, value in params.items():
        existing[key] = [value]

    new_query = urllib.parse.urlencode(existing, doseq=True)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))
