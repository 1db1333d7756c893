from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import HttpRequest
from ninja_extra import NinjaExtraAPI

from accounts.controllers.account import AccountController
from common.ratelimit import RateLimitExceededError
from common.schema import ResponseOk, VersionResponse
from common.throttling import AnonDefaultThrottle, UserDefaultThrottle
from common.transitions import InvalidTransitionError
from communications.controllers import COMMUNICATION_CONTROLLERS
from communications.exceptions import (
    CommunicationQuotaExceededError,
    NoRetryableRecordsError,
    NoValidRecipientsError,
)
from events.controllers import EVENT_CONTROLLERS
from events.exceptions import UnpurchasableQuantityError

from .exception_handlers import (
    handle_conflict_error,
    handle_django_validation_error,
    handle_general_exception,
    handle_rate_limit_exceeded_error,
)

api = NinjaExtraAPI(
    title="Gatherly Backend API",
    docs_url="/docs",
    version=settings.VERSION,
    description=f"Gatherly API {settings.VERSION}",
    app_name=f"gatherly-api-{settings.VERSION}",
    urls_namespace="api",
    servers=[
        {"url": settings.SERVICE_URL, "description": settings.SERVICE_DESCRIPTION},
    ],
    throttle=[AnonDefaultThrottle(), UserDefaultThrottle()],
)


@api.get("/version", tags=["Version"], response={200: VersionResponse})
def version(request: HttpRequest) -> VersionResponse:
    """The running release."""
    return VersionResponse(version=settings.VERSION)


@api.get("/healthcheck", tags=["Healthcheck"], response={200: ResponseOk})
def healthcheck(request: HttpRequest) -> ResponseOk:
    """Liveness check; does not touch the database or broker."""
    return ResponseOk()


api.register_controllers(AccountController, *EVENT_CONTROLLERS, *COMMUNICATION_CONTROLLERS)

EXCEPTION_HANDLERS = {
    Exception: handle_general_exception,
    ValidationError: handle_django_validation_error,
    RateLimitExceededError: handle_rate_limit_exceeded_error,
    InvalidTransitionError: handle_conflict_error,
    UnpurchasableQuantityError: handle_conflict_error,
    CommunicationQuotaExceededError: handle_conflict_error,
    NoValidRecipientsError: handle_conflict_error,
    NoRetryableRecordsError: handle_conflict_error,
}

for exc, handler in EXCEPTION_HANDLERS.items():
    api.add_exception_handler(exc, handler)
