from __future__ import annotations

import logging

LOGGER = logging.getLogger("hackatime")
APP_VERSION = "0.1.0"

DEFAULT_API_BASE_URL = "https://hackatime.hackclub.com"
DEFAULT_CLIENT_ID = "BPr5VekIV-xuQ2ZhmxbGaahJ3XVd7gM83pql-HYGYxQ"
DEFAULT_REDIRECT_URI = "hackatime://auth/callback"
DEFAULT_SCOPES = ["profile"]
DEFAULT_DISCORD_CLIENT_ID = "1423077619183779872"

PKCE_MAX_AGE_SECONDS = 600
HEARTBEAT_RECENCY_SECONDS = 120
RANGE_CACHE_TTL_DAYS = 30
STREAK_CACHE_TTL_DAYS = 1
