"""Time-windowed check-in for approved registrations."""

from datetime import datetime

import structlog
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone
from django.utils.translation import gettext as _
from ninja.errors import HttpError
from ninja_extra.exceptions import PermissionDenied
from pydantic import BaseModel

from accounts.models import GatherlyUser
from common.tasks import enqueue_on_commit
from events.enums import CHECK_IN_MESSAGES, CheckInStatusCode
from events.models import Event, EventStaffPermission, Registration

logger = structlog.get_logger(__name__)


class CheckInStatus(BaseModel):
    status_code: CheckInStatusCode
    can_check_in: bool
    is_already_checked_in: bool
    message: str


def evaluate_check_in(event: Event, registration: Registration | None, now: datetime) -> CheckInStatusCode:
    """Decide where a registration stands in the check-in flow.

    The checks run in a fixed order: registration, approval, existing check-in,
    window not yet open, window closed.
    """
    if registration is None or registration.status == Registration.Status.CANCELLED:
        return CheckInStatusCode.NOT_REGISTERED
    if registration.status != Registration.Status.APPROVED:
        return CheckInStatusCode.REGISTRATION_PENDING
    if registration.checked_in_at is not None:
        return CheckInStatusCode.ALREADY_CHECKED_IN
    opens_at, closes_at = event.check_in_window()
    if now < opens_at:
        return CheckInStatusCode.CHECKIN_NOT_STARTED
    if now > closes_at:
        return CheckInStatusCode.EVENT_ENDED
    return CheckInStatusCode.READY


def get_check_in_status(event: Event, user: GatherlyUser, now: datetime | None = None) -> CheckInStatus:
    """Where the user stands in the check-in flow for an event."""
    registration = Registration.objects.filter(event=event, user=user).first()
    code = evaluate_check_in(event, registration, now or timezone.now())
    return CheckInStatus(
        status_code=code,
        can_check_in=code == CheckInStatusCode.READY,
        is_already_checked_in=code == CheckInStatusCode.ALREADY_CHECKED_IN,
        message=str(_(CHECK_IN_MESSAGES[code])),
    )


def _assert_may_act_for(event: Event, user: GatherlyUser, acting_user: GatherlyUser) -> None:
    if acting_user.pk == user.pk:
        return
    if not event.has_staff_permission(acting_user, EventStaffPermission.MANAGE_REGISTRATIONS):
        raise PermissionDenied(str(_("You do not have permission to manage check-ins for this event.")))


@transaction.atomic
def check_into_event(
    event: Event,
    user: GatherlyUser,
    acting_user: GatherlyUser,
    now: datetime | None = None,
) -> Registration:
    """Check a user in. Anyone may check themselves in; checking in others needs management rights.

    The contribution and badge bookkeeping is queued once the check-in has committed and
    never affects its outcome.

    Raises:
        PermissionDenied: If ``acting_user`` may not check in ``user``.
        HttpError: If the registration is not eligible right now.
    """
    _assert_may_act_for(event, user, acting_user)
    now = now or timezone.now()
    registration = Registration.objects.select_for_update().filter(event=event, user=user).first()
    code = evaluate_check_in(event, registration, now)
    if code != CheckInStatusCode.READY:
        raise HttpError(400, str(_(CHECK_IN_MESSAGES[code])))
    assert registration is not None

    updated = Registration.objects.filter(
        pk=registration.pk, status=Registration.Status.APPROVED, checked_in_at__isnull=True
    ).update(checked_in_at=now, checked_in_by=acting_user, updated_at=now)
    if not updated:
        raise HttpError(400, str(_(CHECK_IN_MESSAGES[CheckInStatusCode.ALREADY_CHECKED_IN])))
    registration.refresh_from_db()

    from contributions.tasks import award_check_in_contribution

    enqueue_on_commit(award_check_in_contribution, str(user.id), str(event.id))
    logger.info(
        "event_check_in",
        event_id=str(event.id),
        user_id=str(user.id),
        acting_user_id=str(acting_user.id),
        registration_id=str(registration.id),
    )
    return registration


@transaction.atomic
def cancel_event_check_in(event: Event, user: GatherlyUser, acting_user: GatherlyUser) -> Registration:
    """Undo a check-in.

    Raises:
        PermissionDenied: If ``acting_user`` may not manage ``user``'s check-in.
        HttpError: If the user is not checked in.
    """
    _assert_may_act_for(event, user, acting_user)
    registration = Registration.objects.select_for_update().filter(event=event, user=user).first()
    if registration is None or registration.checked_in_at is None:
        raise HttpError(400, str(_("You are not checked in to this event.")))
    registration.checked_in_at = None
    registration.checked_in_by = None
    registration.save(update_fields=["checked_in_at", "checked_in_by", "updated_at"])
    logger.info(
        "event_check_in_cancelled",
        event_id=str(event.id),
        user_id=str(user.id),
        acting_user_id=str(acting_user.id),
    )
    return registration


def list_check_ins(event: Event) -> QuerySet[Registration]:
    """Checked-in registrations for an event, most recent first."""
    return (
        Registration.objects.checked_in()
        .filter(event=event)
        .select_related("user", "checked_in_by")
        .order_by("-checked_in_at")
    )
