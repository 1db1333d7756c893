"""Celery tasks for contributions, queued after check-ins commit."""

import typing as t

from celery import shared_task
from django.conf import settings
from django.db import DatabaseError

from accounts.models import GatherlyUser

from .models import ContributionType
from .service import contribution_service


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(DatabaseError,),
    retry_backoff=True,
)
def award_check_in_contribution(self: t.Any, user_id: str, event_id: str) -> dict[str, t.Any]:
    """Credit an event check-in and award any badge it unlocks. Safe to run more than once."""
    user = GatherlyUser.objects.get(pk=user_id)
    _, created = contribution_service.record_contribution(
        user,
        contribution_type=ContributionType.EVENT_CHECKIN,
        cp_value=settings.CHECKIN_CONTRIBUTION_POINTS,
        source_type="event",
        source_id=event_id,
        description="Event check-in",
    )
    badges = contribution_service.check_and_award_auto_badges(user)
    return {"created": created, "badges": [b.badge.slug for b in badges]}
