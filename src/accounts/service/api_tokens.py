"""Issuing, resolving and revoking EventsToken machine credentials."""

import hashlib
import secrets
import typing as t

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import validate_ipv46_address
from django.db import DatabaseError, transaction
from django.utils import timezone

from accounts.models import ApiToken, GatherlyUser

logger = structlog.get_logger(__name__)

TOKEN_RANDOM_BYTES = 32


class IssuedToken(t.NamedTuple):
    token: str
    api_token: ApiToken


def generate_events_token() -> str:
    """Return a new plaintext token: the configured prefix plus 32 random bytes in hex."""
    return f"{settings.EVENTS_TOKEN_PREFIX}{secrets.token_hex(TOKEN_RANDOM_BYTES)}"


def hash_events_token(token: str) -> str:
    """SHA-256 hex digest of a plaintext token."""
    return hashlib.sha256(token.encode()).hexdigest()


@transaction.atomic
def issue_events_token(user: GatherlyUser) -> IssuedToken:
    """Issue a fresh token for the user, replacing any previous one.

    The user's ApiToken row is upserted, so the previous token stops matching
    the moment the new digest is written. The plaintext is returned only here.
    """
    token = generate_events_token()
    api_token, created = ApiToken.objects.select_for_update().update_or_create(
        user=user,
        defaults={
            "token_hash": hash_events_token(token),
            "token_last_four": token[-4:],
            "issued_at": timezone.now(),
            "revoked_at": None,
            "last_used_at": None,
            "last_used_ip": None,
            "last_used_user_agent": "",
        },
    )
    logger.info(
        "events_token_issued",
        user_id=str(user.id),
        token_id=str(api_token.id),
        token_last_four=api_token.token_last_four,
        replaced_existing=not created,
    )
    return IssuedToken(token=token, api_token=api_token)


@transaction.atomic
def revoke_events_token(user: GatherlyUser) -> ApiToken | None:
    """Revoke the user's token. Revoking twice, or with no token, is a no-op."""
    api_token = ApiToken.objects.select_for_update().filter(user=user).first()
    if api_token is None:
        return None
    if api_token.revoked_at is not None:
        logger.info("events_token_already_revoked", user_id=str(user.id), token_id=str(api_token.id))
        return api_token
    api_token.token_hash = None
    api_token.token_last_four = None
    api_token.revoked_at = timezone.now()
    api_token.save(update_fields=["token_hash", "token_last_four", "revoked_at", "updated_at"])
    logger.info("events_token_revoked", user_id=str(user.id), token_id=str(api_token.id))
    return api_token


def get_events_token(user: GatherlyUser) -> ApiToken | None:
    """The user's token row, live or revoked."""
    return ApiToken.objects.filter(user=user).first()


def resolve_events_token(token: str) -> ApiToken | None:
    """Return the live ApiToken matching a presented plaintext token, if any."""
    if not token or not token.startswith(settings.EVENTS_TOKEN_PREFIX):
        return None
    return ApiToken.objects.live().select_related("user").filter(token_hash=hash_events_token(token)).first()


def record_events_token_usage(api_token: ApiToken, *, ip: str | None, user_agent: str) -> None:
    """Stamp last-used bookkeeping on a token.

    A failure here is logged and never fails the authenticated request.
    """
    if ip:
        try:
            validate_ipv46_address(ip)
        except ValidationError:
            ip = None
    try:
        ApiToken.objects.filter(pk=api_token.pk).update(
            last_used_at=timezone.now(),
            last_used_ip=ip,
            last_used_user_agent=user_agent[:512],
        )
    except DatabaseError:
        logger.exception("events_token_usage_record_failed", token_id=str(api_token.id))
