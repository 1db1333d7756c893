"""Request-scoped logging context."""

import typing as t
import uuid

import structlog
from django.conf import settings
from django.http import HttpRequest, HttpResponse

from common.utils import get_client_ip

REQUEST_ID_HEADER = "X-Request-ID"


class StructlogContextMiddleware:
    """Bind a request id, the route and the caller's address to every log line.

    The id is taken from ``X-Request-ID`` when the client sends one and echoed
    back on the response. API callers are authenticated inside the view, so the
    authentication classes bind ``user_id`` themselves.
    """

    def __init__(self, get_response: t.Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        if not settings.ENABLE_OBSERVABILITY:
            return self.get_response(request)

        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.path,
            ip_address=get_client_ip(request),
        )
        try:
            response = self.get_response(request)
        finally:
            structlog.contextvars.clear_contextvars()
        response[REQUEST_ID_HEADER] = request_id
        return response
