from django.conf import settings
from django.core.validators import MaxValueValidator
from django.db import models

from common.models import TimeStampedModel
from common.transitions import TransitionTable
from events.models import Event

from .enums import CommunicationStatus, CommunicationType, DeliveryStatus


class Communication(TimeStampedModel):
    """A bulk message from an event's organizers to its registrants."""

    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="communications")
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name="sent_communications"
    )
    type = models.CharField(max_length=10, choices=CommunicationType.choices)
    subject = models.CharField(max_length=200)
    content = models.TextField(max_length=5000)
    status = models.CharField(
        max_length=20, choices=CommunicationStatus.choices, default=CommunicationStatus.PENDING, db_index=True
    )
    scheduled_at = models.DateTimeField(null=True, blank=True, db_index=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    total_recipients = models.PositiveIntegerField(default=0)
    sent_count = models.PositiveIntegerField(default=0)
    delivered_count = models.PositiveIntegerField(default=0)
    failed_count = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.type}: {self.subject}"


COMMUNICATION_TRANSITIONS = TransitionTable(
    "communication",
    CommunicationStatus,
    {
        CommunicationStatus.PENDING: [CommunicationStatus.SENDING, CommunicationStatus.CANCELLED],
        CommunicationStatus.SENDING: [CommunicationStatus.COMPLETED, CommunicationStatus.FAILED],
        # A retry sends a finished communication out again.
        CommunicationStatus.COMPLETED: [CommunicationStatus.SENDING],
        CommunicationStatus.FAILED: [CommunicationStatus.SENDING],
        CommunicationStatus.CANCELLED: [],
    },
)


class CommunicationRecord(TimeStampedModel):
    """Delivery of a communication to one recipient."""

    communication = models.ForeignKey(Communication, on_delete=models.CASCADE, related_name="records")
    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="communication_records"
    )
    recipient_email = models.EmailField(null=True, blank=True)
    recipient_phone = models.CharField(max_length=20, null=True, blank=True)
    status = models.CharField(
        max_length=20, choices=DeliveryStatus.choices, default=DeliveryStatus.PENDING, db_index=True
    )
    retry_count = models.PositiveSmallIntegerField(default=0, validators=[MaxValueValidator(3)])
    error_message = models.TextField(null=True, blank=True)
    external_message_id = models.CharField(max_length=255, null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["status", "created_at"]
        constraints = [
            models.UniqueConstraint(fields=["communication", "recipient"], name="unique_communication_recipient"),
        ]

    def __str__(self) -> str:
        return f"{self.communication_id} -> {self.recipient_id} ({self.status})"


RECORD_TRANSITIONS = TransitionTable(
    "communication record",
    DeliveryStatus,
    {
        DeliveryStatus.PENDING: [DeliveryStatus.SENT, DeliveryStatus.DELIVERED, DeliveryStatus.FAILED],
        DeliveryStatus.SENT: [DeliveryStatus.DELIVERED, DeliveryStatus.READ, DeliveryStatus.FAILED],
        DeliveryStatus.DELIVERED: [DeliveryStatus.READ],
        DeliveryStatus.READ: [],
        DeliveryStatus.FAILED: [DeliveryStatus.PENDING],
    },
)
