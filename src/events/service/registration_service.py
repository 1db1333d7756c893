"""Registration lifecycle helpers shared by checkout, invite redemption and organizer review."""

import typing as t

import structlog
from django.db import transaction
from django.utils import timezone
from django.utils.translation import gettext as _
from ninja.errors import HttpError

from accounts.models import GatherlyUser
from events.models import (
    REGISTRATION_TRANSITIONS,
    Event,
    Order,
    OrderInvite,
    Registration,
    RegistrationAnswer,
    TicketType,
)

logger = structlog.get_logger(__name__)

REVIEWABLE_STATUSES = (
    Registration.Status.APPROVED,
    Registration.Status.REJECTED,
    Registration.Status.WAITLISTED,
    Registration.Status.PENDING,
)


def status_after_payment(event: Event) -> Registration.Status:
    """Where a registration goes once its seat is paid for."""
    return Registration.Status.PENDING if event.require_approval else Registration.Status.APPROVED


def activate_registration(
    registration: Registration | None,
    *,
    event: Event,
    user: GatherlyUser,
    status: Registration.Status,
    ticket_type: TicketType | None,
    order: Order | None,
    order_invite: OrderInvite | None = None,
) -> Registration:
    """Create a registration, or reactivate a cancelled one for a new purchase or invite.

    Reactivation wipes the previous check-in and review so the registration starts over.
    Callers must hold a lock on ``registration`` and have rejected non-cancelled ones.
    """
    if registration is None:
        return Registration.objects.create(
            event=event,
            user=user,
            status=status,
            ticket_type=ticket_type,
            order=order,
            order_invite=order_invite,
        )
    REGISTRATION_TRANSITIONS.assert_can_transition(registration.status, status)
    registration.status = status
    registration.ticket_type = ticket_type
    registration.order = order
    registration.order_invite = order_invite
    registration.checked_in_at = None
    registration.checked_in_by = None
    registration.reviewed_by = None
    registration.reviewed_at = None
    registration.review_note = ""
    registration.save()
    logger.info("registration_reactivated", registration_id=str(registration.id), status=status)
    return registration


def store_registration_answers(registration: Registration, answers: t.Mapping[str, str] | None) -> None:
    """Replace the registration's answers with the submitted ones."""
    if not answers:
        return
    registration.answers.all().delete()
    RegistrationAnswer.objects.bulk_create(
        [
            RegistrationAnswer(registration=registration, question=question, answer=answer)
            for question, answer in answers.items()
        ]
    )


@transaction.atomic
def review_registration(
    registration: Registration,
    *,
    status: Registration.Status,
    reviewer: GatherlyUser,
    note: str = "",
) -> Registration:
    """Record an organizer's decision on a registration.

    Raises:
        HttpError: If ``status`` is not a review decision, or the registration is unpaid or cancelled.
        InvalidTransitionError: If the registration cannot move to ``status``.
    """
    if status not in REVIEWABLE_STATUSES:
        raise HttpError(400, str(_("Registrations can only be approved, rejected, waitlisted or sent back to review.")))
    registration = Registration.objects.select_for_update().get(pk=registration.pk)
    if registration.status in (Registration.Status.PENDING_PAYMENT, Registration.Status.CANCELLED):
        raise HttpError(400, str(_("Only paid, active registrations can be reviewed.")))
    REGISTRATION_TRANSITIONS.assert_can_transition(registration.status, status)
    registration.status = status
    registration.reviewed_by = reviewer
    registration.reviewed_at = timezone.now()
    registration.review_note = note
    registration.save(update_fields=["status", "reviewed_by", "reviewed_at", "review_note", "updated_at"])
    logger.info(
        "registration_reviewed",
        registration_id=str(registration.id),
        event_id=str(registration.event_id),
        status=status,
        reviewer_id=str(reviewer.id),
    )
    return registration
