"""Small helpers shared across apps."""

from django.http import HttpRequest


def get_client_ip(request: HttpRequest) -> str:
    """Extract the client IP address from a request.

    Checks X-Forwarded-For first (for proxied requests), then falls back to REMOTE_ADDR.
    """
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        return str(x_forwarded_for.split(",")[0].strip())
    return str(request.META.get("REMOTE_ADDR", "unknown"))
