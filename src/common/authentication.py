import typing as t

import structlog
from django.http import HttpRequest
from django.utils import translation
from ninja.security import HttpBearer
from ninja_jwt.authentication import JWTAuth

from common.ratelimit import FixedWindowRateLimiter, get_events_token_rate_limiter
from common.utils import get_client_ip

logger = structlog.get_logger(__name__)


class I18nJWTAuth(JWTAuth):
    """JWT authentication that activates user's preferred language.

    The language is activated immediately after successful JWT validation,
    before the view handler executes, so error messages and emails are
    rendered in the user's chosen language.

    Usage:
        @route.get("/endpoint", auth=I18nJWTAuth())
        def my_endpoint(request):
            return {"message": str(_("Hello!"))}
    """

    def authenticate(self, request: HttpRequest, token: str) -> t.Any:
        """Authenticate the request and activate user's language preference.

        Args:
            request: The HTTP request object
            token: The JWT token string

        Returns:
            The authenticated user object

        Raises:
            AuthenticationFailed: If authentication fails
            InvalidToken: If the token is invalid
        """
        user = super().authenticate(request, token)
        structlog.contextvars.bind_contextvars(user_id=str(user.pk), auth_method="jwt")
        activate_user_language(request, user)
        return user


class EventsTokenAuth(HttpBearer):
    """Authentication for machine clients: ``Authorization: EventsToken <token>``.

    The presented token is hashed and looked up among live tokens. Each admitted
    request counts against the token's fixed-window quota; exceeding it raises
    ``RateLimitExceededError``, which the API turns into a 429 with ``Retry-After``.

    Usage:
        @route.post("/checkin", auth=[I18nJWTAuth(), EventsTokenAuth()])
    """

    openapi_scheme = "eventstoken"

    def __init__(self, rate_limiter: FixedWindowRateLimiter | None = None) -> None:
        """Optionally inject the limiter; by default it is built from settings per request."""
        self.rate_limiter = rate_limiter
        super().__init__()

    def authenticate(self, request: HttpRequest, token: str) -> t.Any:
        """Resolve the token to its user, apply the quota and record usage."""
        from accounts.service import api_tokens

        api_token = api_tokens.resolve_events_token(token)
        if api_token is None or not api_token.user.is_active:
            logger.info("events_token_rejected", token_last_four=token[-4:] if token else None)
            return None

        limiter = self.rate_limiter or get_events_token_rate_limiter()
        limiter.check(str(api_token.id))

        api_tokens.record_events_token_usage(
            api_token,
            ip=get_client_ip(request),
            user_agent=request.headers.get("User-Agent", ""),
        )
        user = api_token.user
        request.user = user
        structlog.contextvars.bind_contextvars(user_id=str(user.pk), auth_method="events_token")
        activate_user_language(request, user)
        return user


def activate_user_language(request: HttpRequest, user: t.Any) -> None:
    """Activate the user's preferred language for the rest of the request."""
    user_language = getattr(user, "language", None) if user else None
    if user_language:
        translation.activate(user_language)
        request.LANGUAGE_CODE = user_language
