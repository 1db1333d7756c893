"""Map domain exceptions to HTTP responses.

Business-rule violations become a 400 with a ``detail`` message, an exhausted
EventsToken quota a 429 with ``Retry-After``, and anything unexpected a logged 500.
"""

import traceback
import typing as t

import orjson
import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import HttpRequest
from ninja.responses import Response

from common.ratelimit import RateLimitExceededError

logger = structlog.get_logger(__name__)

BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def _json_body(request: HttpRequest) -> t.Any:
    if request.method not in BODY_METHODS or request.content_type != "application/json":
        return None
    try:
        return orjson.loads(request.body)
    except orjson.JSONDecodeError:
        return None


def handle_general_exception(request: HttpRequest, exc: Exception | type[Exception]) -> Response:
    """Log the failing request and answer with an opaque 500.

    Credentials in headers and payload are redacted by the logging chain.
    """
    logger.exception(
        "unhandled_exception",
        method=request.method,
        path=request.path,
        headers=dict(request.headers),
        query=request.GET.dict(),
        json_payload=_json_body(request),
    )
    data = {"detail": "Internal Server Error."}
    if settings.DEBUG or getattr(getattr(request, "user", None), "is_staff", False):  # pragma: no cover
        data["traceback"] = traceback.format_exc()
    return Response(status=500, data=data)


def handle_django_validation_error(request: HttpRequest, exc: ValidationError | type[ValidationError]) -> Response:
    """Model validation failures, keyed by field (``__all__`` for non-field errors)."""
    if hasattr(exc, "error_dict"):
        errors = {
            field: [msg for error in field_errors for msg in error] for field, field_errors in exc.error_dict.items()
        }
    else:
        errors = {"__all__": list(exc.messages)}  # type: ignore[union-attr]
    logger.info("validation_error", path=request.path, fields=sorted(errors))
    return Response(status=400, data={"errors": errors})


def handle_conflict_error(request: HttpRequest, exc: Exception | type[Exception]) -> Response:
    """A request the current state of the resource does not allow."""
    logger.info("request_conflict", error=type(exc).__name__, path=request.path)
    return Response(status=400, data={"detail": str(exc)})


def handle_rate_limit_exceeded_error(
    request: HttpRequest, exc: RateLimitExceededError | type[RateLimitExceededError]
) -> Response:
    logger.info("rate_limit_exceeded", path=request.path, retry_after=exc.retry_after)
    response = Response(status=429, data={"detail": str(exc), "retry_after": exc.retry_after})
    response["Retry-After"] = str(exc.retry_after)
    return response
