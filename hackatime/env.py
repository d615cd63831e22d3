from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv

from .constants import (
    DEFAULT_API_BASE_URL,
    DEFAULT_CLIENT_ID,
    DEFAULT_DISCORD_CLIENT_ID,
    DEFAULT_REDIRECT_URI,
    DEFAULT_SCOPES,
    HEARTBEAT_RECENCY_SECONDS,
    LOGGER,
)


@dataclass
class Config:
    api_base_url: str = DEFAULT_API_BASE_URL
    client_id: str = DEFAULT_CLIENT_ID
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scopes: list[str] = field(default_factory=lambda: list(DEFAULT_SCOPES))
    timeout: float = 30.0
    max_retries: int = 2
    heartbeat_threshold_seconds: int = HEARTBEAT_RECENCY_SECONDS
    data_dir: Path | None = None
    programmer_classes_path: Path = Path("programmer_classes.json")
    discord_client_id: str = DEFAULT_DISCORD_CLIENT_ID
    debug: bool = True


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")


def default_data_dir() -> Path:
    home = Path(os.getenv("HOME", str(Path.home())))
    if sys.platform.startswith("win"):
        appdata = os.getenv("APPDATA")
        if not appdata:
            raise RuntimeError("Failed to get APPDATA directory.")
        return Path(appdata) / ".hackatime"
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / ".hackatime"
    return home / ".local" / "share" / ".hackatime"


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=True)


def load_config() -> Config:
    data_dir = os.getenv("HACKATIME_DATA_DIR", "").strip()
    return Config(
        api_base_url=os.getenv("HACKATIME_API_BASE_URL", "").strip().rstrip("/")
        or DEFAULT_API_BASE_URL,
        client_id=os.getenv("HACKATIME_OAUTH_CLIENT_ID", "").strip() or DEFAULT_CLIENT_ID,
        redirect_uri=os.getenv("HACKATIME_REDIRECT_URI", "").strip() or DEFAULT_REDIRECT_URI,
        scopes=os.getenv("HACKATIME_OAUTH_SCOPES", " ".join(DEFAULT_SCOPES)).split(),
        timeout=_get_env_float("HACKATIME_API_TIMEOUT", 30.0),
        max_retries=_get_env_int("HACKATIME_API_MAX_RETRIES", 2),
        heartbeat_threshold_seconds=_get_env_int(
            "HACKATIME_HEARTBEAT_THRESHOLD_SECONDS", HEARTBEAT_RECENCY_SECONDS
        ),
        data_dir=Path(data_dir) if data_dir else default_data_dir(),
        programmer_classes_path=Path(
            os.getenv("HACKATIME_PROGRAMMER_CLASSES", "programmer_classes.json")
        ),
        discord_client_id=os.getenv("HACKATIME_DISCORD_CLIENT_ID", DEFAULT_DISCORD_CLIENT_ID).strip(),
        debug=is_truthy(os.getenv("HACKATIME_DEBUG", "1")),
    )


def validate_env(config: Config) -> None:
    parsed_base_url = urlparse(config.api_base_url)
    if parsed_base_url.scheme not in {"http", "https"} or not parsed_base_url.netloc:
        raise RuntimeError(
            "HACKATIME_API_BASE_URL must be an http(s) URL (for example: "
            "https://hackatime.hackclub.com)."
        )

    parsed_redirect = urlparse(config.redirect_uri)
    if not parsed_redirect.scheme or parsed_redirect.scheme in {"http", "https"}:
        raise RuntimeError(
            "HACKATIME_REDIRECT_URI must use a custom URI scheme (for example: "
            "hackatime://auth/callback)."
        )

    if config.heartbeat_threshold_seconds <= 0:
        raise RuntimeError("HACKATIME_HEARTBEAT_THRESHOLD_SECONDS must be positive.")

    if not config.scopes:
        LOGGER.warning("HACKATIME_OAUTH_SCOPES is empty; the profile endpoint may reject the token.")


def setup_logging(config: Config) -> bool:
    if config.debug:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return config.debug
