"""URL configuration for the Gatherly project."""

from django.conf import settings
from django.http import HttpRequest, HttpResponseRedirect
from django.shortcuts import redirect
from django.urls import path, reverse

from api.api import api


def redirect_to_docs(request: HttpRequest) -> HttpResponseRedirect:
    """Redirect to the API documentation."""
    return redirect(reverse("api:openapi-view"))


urlpatterns = [
    path("api/", api.urls),
]

if settings.DEBUG:
    urlpatterns.insert(0, path("", redirect_to_docs, name="redirect_to_docs"))  # type: ignore[arg-type]
