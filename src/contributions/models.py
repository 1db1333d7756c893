from django.conf import settings
from django.db import models

from common.models import TimeStampedModel


class ContributionType(models.TextChoices):
    EVENT_CHECKIN = "EVENT_CHECKIN", "Event check-in"
    EVENT_ORGANIZATION = "EVENT_ORGANIZATION", "Event organization"
    VOLUNTEER = "VOLUNTEER", "Volunteer"


class Contribution(TimeStampedModel):
    """Contribution points earned for something a user did, recorded once per source."""

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="contributions")
    type = models.CharField(max_length=30, choices=ContributionType.choices, db_index=True)
    cp_value = models.PositiveIntegerField()
    source_type = models.CharField(max_length=30)
    source_id = models.CharField(max_length=64)
    description = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "type", "source_type", "source_id"], name="unique_contribution_per_source"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user_id}: {self.type} +{self.cp_value}"


class Badge(TimeStampedModel):
    class Rule(models.TextChoices):
        CHECKIN_COUNT = "CHECKIN_COUNT", "Number of event check-ins"

    slug = models.SlugField(max_length=64, unique=True)
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True, default="")
    rule = models.CharField(max_length=30, choices=Rule.choices)
    threshold = models.PositiveIntegerField()
    is_active = models.BooleanField(default=True)

    def __str__(self) -> str:
        return self.name


class UserBadge(TimeStampedModel):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="badges")
    badge = models.ForeignKey(Badge, on_delete=models.CASCADE, related_name="awards")
    reason = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        constraints = [models.UniqueConstraint(fields=["user", "badge"], name="unique_user_badge")]

    def __str__(self) -> str:
        return f"{self.user_id}: {self.badge_id}"
