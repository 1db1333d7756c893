import gzip
import typing as t
import uuid

from django.conf import settings
from django.db import models
from solo.models import SingletonModel


class TimeStampedModel(models.Model):
    """UUID-keyed base model that validates itself on every save."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True, db_index=True)

    class Meta:
        abstract = True

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        self.full_clean()
        super().save(*args, **kwargs)


class SiteSettings(SingletonModel):
    """Runtime switches shared by the whole deployment.

    Outbound email and SMS stay sandboxed until an operator flips the matching
    ``live_*`` flag from the database.
    """

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    live_emails = models.BooleanField(default=False, help_text="Deliver email to real addresses")
    live_sms = models.BooleanField(default=False, help_text="Hand text messages to the SMS gateway")
    frontend_base_url = models.URLField(default=settings.FRONTEND_BASE_URL)
    internal_catchall_email = models.EmailField(
        help_text="Mailbox that receives every email while live emails are off.",
        default=settings.INTERNAL_CATCHALL_EMAIL,
    )

    def __str__(self) -> str:  # pragma: no cover
        return "Site settings"

    class Meta:
        verbose_name = "Site settings"
        verbose_name_plural = "Site settings"


class DeliveryLog(TimeStampedModel):
    """Audit trail of every outbound message, whatever the channel."""

    class Channel(models.TextChoices):
        EMAIL = "email", "Email"
        SMS = "sms", "SMS"

    channel = models.CharField(max_length=8, choices=Channel.choices, default=Channel.EMAIL)
    to = models.CharField(max_length=254, db_index=True)
    subject = models.TextField(blank=True, default="")
    compressed_body = models.BinaryField(null=True, blank=True)
    external_id = models.CharField(max_length=128, null=True, blank=True)
    sent_at = models.DateTimeField(auto_now_add=True, db_index=True)

    @property
    def body(self) -> str | None:
        if not self.compressed_body:
            return None
        return gzip.decompress(bytes(self.compressed_body)).decode()

    @body.setter
    def body(self, value: str) -> None:
        self.compressed_body = gzip.compress(value.encode())

    def __str__(self) -> str:
        return f"{self.get_channel_display()} to {self.to}"

    class Meta:
        indexes = [
            models.Index(fields=["channel", "to", "sent_at"], name="ix_deliverylog_channel_to"),
        ]
