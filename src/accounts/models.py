import re
import typing as t
import uuid

from django.conf import settings
from django.contrib.auth.models import AbstractUser, UserManager
from django.db import models

from accounts.validators import normalize_phone_number, validate_phone_number
from common.models import TimeStampedModel


class GatherlyUserManager(UserManager["GatherlyUser"]):
    pass


class GatherlyUser(AbstractUser):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    phone_number = models.CharField(
        max_length=20, unique=True, null=True, blank=True, validators=[validate_phone_number], help_text="Phone number"
    )
    phone_number_verified = models.BooleanField(default=False)
    preferred_name = models.CharField(db_index=True, max_length=255, blank=True, help_text="Preferred name")
    email_verified = models.BooleanField(default=False)
    language = models.CharField(
        max_length=7,
        choices=settings.LANGUAGES,
        default=settings.LANGUAGE_CODE,
        db_index=True,
        help_text="User's preferred language",
    )

    objects = GatherlyUserManager()  # type: ignore[misc]

    class Meta:
        ordering = ["username"]

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        """Normalize the phone number before saving."""
        if self.phone_number:
            self.phone_number = normalize_phone_number(self.phone_number)
        super().save(*args, **kwargs)

    @property
    def display_name(self) -> str:
        """Display name."""
        return self.get_display_name()

    def get_display_name(self) -> str:
        """Returns the user's preferred name, or their full name as a fallback."""
        return (
            self.preferred_name or self.get_full_name() or re.sub(r"(\W|_)+", " ", self.username.split("@")[0]).title()
        )


class ApiTokenQuerySet(models.QuerySet["ApiToken"]):
    def live(self) -> "ApiTokenQuerySet":
        """Tokens that can still authenticate."""
        return self.filter(revoked_at__isnull=True, token_hash__isnull=False)


class ApiToken(TimeStampedModel):
    """The single long-lived machine credential of a user.

    Only a SHA-256 digest of the token is stored, plus its last four characters
    so the owner can recognise it. Revoking clears both but keeps the usage audit.
    """

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="api_token")
    token_hash = models.CharField(max_length=64, unique=True, null=True, blank=True)
    token_last_four = models.CharField(max_length=4, null=True, blank=True)
    issued_at = models.DateTimeField(null=True, blank=True)
    last_used_at = models.DateTimeField(null=True, blank=True)
    last_used_ip = models.GenericIPAddressField(null=True, blank=True)
    last_used_user_agent = models.CharField(max_length=512, blank=True, default="")
    revoked_at = models.DateTimeField(null=True, blank=True)

    objects = ApiTokenQuerySet.as_manager()

    @property
    def is_active(self) -> bool:
        """Whether the token can authenticate."""
        return self.token_hash is not None and self.revoked_at is None

    def __str__(self) -> str:
        return f"ApiToken(...{self.token_last_four or '----'}) for {self.user_id}"
