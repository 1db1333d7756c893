"""Contribution points and the badges they unlock."""

import structlog
from django.db import IntegrityError, transaction
from django.db.models import Count

from accounts.models import GatherlyUser
from contributions.models import Badge, Contribution, ContributionType, UserBadge

logger = structlog.get_logger(__name__)

EVENT_ENTHUSIAST_SLUG = "event-enthusiast"
EVENT_ENTHUSIAST_THRESHOLD = 10


def record_contribution(
    user: GatherlyUser,
    *,
    contribution_type: ContributionType,
    cp_value: int,
    source_type: str,
    source_id: str,
    description: str = "",
) -> tuple[Contribution, bool]:
    """Record a contribution once per (user, type, source). Returns it and whether it is new."""
    try:
        with transaction.atomic():
            contribution, created = Contribution.objects.get_or_create(
                user=user,
                type=contribution_type,
                source_type=source_type,
                source_id=source_id,
                defaults={"cp_value": cp_value, "description": description},
            )
    except IntegrityError:
        contribution, created = (
            Contribution.objects.get(user=user, type=contribution_type, source_type=source_type, source_id=source_id),
            False,
        )
    if created:
        logger.info(
            "contribution_recorded",
            user_id=str(user.id),
            contribution_type=contribution_type,
            cp_value=cp_value,
            source_type=source_type,
            source_id=source_id,
        )
    return contribution, created


def ensure_default_badges() -> None:
    """Create the built-in automatic badges if they are missing."""
    Badge.objects.get_or_create(
        slug=EVENT_ENTHUSIAST_SLUG,
        defaults={
            "name": "Event Enthusiast",
            "description": f"Checked in to {EVENT_ENTHUSIAST_THRESHOLD} events.",
            "rule": Badge.Rule.CHECKIN_COUNT,
            "threshold": EVENT_ENTHUSIAST_THRESHOLD,
        },
    )


def check_and_award_auto_badges(user: GatherlyUser) -> list[UserBadge]:
    """Award every active automatic badge whose threshold the user has reached. Returns the new awards."""
    ensure_default_badges()
    counts = dict(
        Contribution.objects.filter(user=user)
        .values("type")
        .annotate(n=Count("id"))
        .values_list("type", "n")
    )
    rule_values = {Badge.Rule.CHECKIN_COUNT: counts.get(ContributionType.EVENT_CHECKIN, 0)}

    awarded = []
    for badge in Badge.objects.filter(is_active=True):
        if rule_values.get(badge.rule, 0) < badge.threshold:
            continue
        user_badge, created = UserBadge.objects.get_or_create(
            user=user, badge=badge, defaults={"reason": f"{badge.rule} >= {badge.threshold}"}
        )
        if created:
            logger.info("badge_awarded", user_id=str(user.id), badge=badge.slug)
            awarded.append(user_badge)
    return awarded
