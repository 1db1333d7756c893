"""API authentication and request limits."""

from datetime import timedelta

from decouple import config

from .base import SECRET_KEY

# Session JWTs issued to people signing in.
NINJA_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(hours=config("ACCESS_TOKEN_LIFETIME_HOURS", default=1, cast=int)),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=config("REFRESH_TOKEN_LIFETIME_DAYS", default=30, cast=int)),
    "ROTATE_REFRESH_TOKENS": True,
    "ALGORITHM": config("JWT_ALGORITHM", default="HS256"),
    "SIGNING_KEY": SECRET_KEY,
    "AUDIENCE": config("JWT_AUDIENCE", default="gatherly.app"),
}

# Long-lived EventsTokens used by check-in devices and other integrations.
EVENTS_TOKEN_PREFIX = config("EVENTS_TOKEN_PREFIX", default="gev_")
EVENTS_TOKEN_RATE_LIMIT = config("EVENTS_TOKEN_RATE_LIMIT", default=60, cast=int)
EVENTS_TOKEN_RATE_WINDOW_SECONDS = config("EVENTS_TOKEN_RATE_WINDOW_SECONDS", default=300, cast=int)

NINJA_EXTRA = {
    "THROTTLE_RATES": {
        "user": config("THROTTLE_RATE_USER", default="1000/day"),
        "anon": config("THROTTLE_RATE_ANON", default="250/day"),
    },
    "NUM_PROXIES": config("NUM_PROXIES", default=None, cast=lambda v: None if v in (None, "") else int(v)),
    "PAGINATION_PER_PAGE": 50,
}
