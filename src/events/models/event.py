import typing as t
from datetime import datetime, timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from common.models import TimeStampedModel

if t.TYPE_CHECKING:
    from accounts.models import GatherlyUser


class EventStaffPermission(models.TextChoices):
    EDIT_EVENT = "edit_event", "Edit event"
    MANAGE_REGISTRATIONS = "manage_registrations", "Manage registrations"


class Event(TimeStampedModel):
    name = models.CharField(max_length=255, db_index=True)
    description = models.TextField(blank=True, default="")
    organizer = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="organized_events"
    )
    start = models.DateTimeField(db_index=True)
    end = models.DateTimeField()
    address = models.CharField(max_length=255, blank=True, default="")
    require_approval = models.BooleanField(
        default=False, help_text="Paid registrations wait for an organizer's approval before they are confirmed."
    )
    max_attendees = models.PositiveIntegerField(
        null=True, blank=True, validators=[MinValueValidator(1)], help_text="Cap across all ticket types."
    )

    class Meta:
        ordering = ["start"]

    def __str__(self) -> str:
        return self.name

    def clean(self) -> None:
        """Ensure the event ends after it starts."""
        if self.start and self.end and self.end <= self.start:
            raise ValidationError({"end": _("The event must end after it starts.")})

    def check_in_window(self) -> tuple[datetime, datetime]:
        """The period during which attendees can check in."""
        return self.start - timedelta(minutes=settings.CHECKIN_OPENS_BEFORE_MINUTES), self.end

    def has_staff_permission(self, user: "GatherlyUser", permission: str) -> bool:
        """Whether the user is the organizer or a staff member holding ``permission``."""
        if not user.is_authenticated:
            return False
        if self.organizer_id == user.pk:
            return True
        if staff_member := EventStaff.objects.filter(event=self, user_id=user.pk).first():
            return staff_member.has_permission(permission)
        return False


class EventStaff(TimeStampedModel):
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="staff_members")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="event_staff_roles")
    can_edit_event = models.BooleanField(default=False)
    can_manage_registrations = models.BooleanField(default=False)

    class Meta:
        constraints = [models.UniqueConstraint(fields=["event", "user"], name="unique_event_staff")]

    def __str__(self) -> str:
        return f"{self.user_id} @ {self.event_id}"

    def has_permission(self, permission: str) -> bool:
        """Check a single staff permission."""
        match permission:
            case EventStaffPermission.EDIT_EVENT:
                return self.can_edit_event
            case EventStaffPermission.MANAGE_REGISTRATIONS:
                return self.can_manage_registrations
        return False
