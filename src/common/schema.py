"""Schemas shared across the API."""

import typing as t

from ninja import Schema
from pydantic import StringConstraints

StrippedString = t.Annotated[str, StringConstraints(strip_whitespace=True)]


class VersionResponse(Schema):
    version: str


class ResponseOk(Schema):
    status: t.Literal["ok"] = "ok"


class ResponseMessage(Schema):
    message: str


class ValidationErrorResponse(Schema):
    """Body of a 400: field name to message(s), or ``detail`` for whole-request errors."""

    errors: dict[str, str | list[str]]


class RateLimitedResponse(Schema):
    """Body of a 429. ``retry_after`` mirrors the ``Retry-After`` header, in seconds."""

    detail: str
    retry_after: int
