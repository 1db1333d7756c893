"""Schema for accounts module."""

import datetime

from ninja import ModelSchema, Schema
from pydantic import UUID4

from .models import ApiToken, GatherlyUser


class GatherlyUserSchema(ModelSchema):
    id: UUID4
    display_name: str

    class Meta:
        model = GatherlyUser
        fields = [
            "email",
            "email_verified",
            "phone_number",
            "phone_number_verified",
            "first_name",
            "last_name",
            "preferred_name",
            "language",
        ]


class MinimalUserSchema(Schema):
    id: UUID4
    display_name: str
    email: str


class ApiTokenSchema(ModelSchema):
    is_active: bool

    class Meta:
        model = ApiToken
        fields = ["token_last_four", "issued_at", "last_used_at", "last_used_ip", "revoked_at"]


class IssuedApiTokenSchema(Schema):
    token: str
    token_last_four: str
    issued_at: datetime.datetime
