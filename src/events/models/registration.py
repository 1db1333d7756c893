from django.conf import settings
from django.db import models

from common.models import TimeStampedModel
from common.transitions import TransitionTable

from .event import Event
from .order import Order, OrderInvite
from .ticket import TicketType


class RegistrationQuerySet(models.QuerySet["Registration"]):
    def checked_in(self) -> "RegistrationQuerySet":
        """Registrations with a recorded check-in."""
        return self.filter(checked_in_at__isnull=False)


class Registration(TimeStampedModel):
    class Status(models.TextChoices):
        PENDING_PAYMENT = "PENDING_PAYMENT", "Pending payment"
        PENDING = "PENDING", "Pending approval"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"
        WAITLISTED = "WAITLISTED", "Waitlisted"
        CANCELLED = "CANCELLED", "Cancelled"

    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="registrations")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="registrations")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    ticket_type = models.ForeignKey(
        TicketType, on_delete=models.SET_NULL, null=True, blank=True, related_name="registrations"
    )
    order = models.ForeignKey(Order, on_delete=models.SET_NULL, null=True, blank=True, related_name="registrations")
    order_invite = models.ForeignKey(
        OrderInvite, on_delete=models.SET_NULL, null=True, blank=True, related_name="registrations"
    )
    checked_in_at = models.DateTimeField(null=True, blank=True)
    checked_in_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="performed_check_ins",
    )
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reviewed_registrations",
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    review_note = models.TextField(blank=True, default="")

    objects = RegistrationQuerySet.as_manager()

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(fields=["event", "user"], name="unique_registration_per_event_user"),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} @ {self.event_id} ({self.status})"


REGISTRATION_TRANSITIONS = TransitionTable(
    "registration",
    Registration.Status,
    {
        Registration.Status.PENDING_PAYMENT: [
            Registration.Status.PENDING,
            Registration.Status.APPROVED,
            Registration.Status.CANCELLED,
        ],
        Registration.Status.PENDING: [
            Registration.Status.APPROVED,
            Registration.Status.REJECTED,
            Registration.Status.WAITLISTED,
            Registration.Status.CANCELLED,
        ],
        Registration.Status.WAITLISTED: [
            Registration.Status.PENDING,
            Registration.Status.APPROVED,
            Registration.Status.REJECTED,
            Registration.Status.CANCELLED,
        ],
        Registration.Status.APPROVED: [Registration.Status.CANCELLED],
        Registration.Status.REJECTED: [Registration.Status.CANCELLED],
        Registration.Status.CANCELLED: [
            Registration.Status.PENDING_PAYMENT,
            Registration.Status.PENDING,
            Registration.Status.APPROVED,
        ],
    },
)


class RegistrationAnswer(TimeStampedModel):
    registration = models.ForeignKey(Registration, on_delete=models.CASCADE, related_name="answers")
    question = models.CharField(max_length=255)
    answer = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(fields=["registration", "question"], name="unique_answer_per_question"),
        ]

    def __str__(self) -> str:
        return f"{self.question}: {self.answer[:32]}"
