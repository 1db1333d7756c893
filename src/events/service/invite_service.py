"""Per-seat invites for multi-seat orders."""

import secrets
import typing as t
from uuid import UUID

import structlog
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone
from django.utils.translation import gettext as _
from ninja.errors import HttpError

from accounts.models import GatherlyUser
from events.models import INVITE_TRANSITIONS, Order, OrderInvite, Registration
from events.service import registration_service

logger = structlog.get_logger(__name__)

INVITE_CODE_BYTES = 18  # 24 URL-safe characters


def generate_invite_code() -> str:
    """An unguessable 24-character URL-safe code."""
    return secrets.token_urlsafe(INVITE_CODE_BYTES)


def create_order_invites(order: Order, count: int) -> list[OrderInvite]:
    """Mint ``count`` PENDING invites for an order. ``count <= 0`` mints nothing."""
    if count <= 0:
        return []
    codes: set[str] = set()
    while len(codes) < count:
        codes.add(generate_invite_code())
    invites = OrderInvite.objects.bulk_create([OrderInvite(order=order, code=code) for code in codes])
    logger.info("order_invites_created", order_id=str(order.id), count=len(invites))
    return invites


@transaction.atomic
def redeem_order_invite(
    event_id: UUID,
    code: str,
    user: GatherlyUser,
    answers: t.Mapping[str, str] | None = None,
) -> Registration:
    """Turn an invite into the redeeming user's own registration.

    Raises:
        HttpError: 404 if the code does not exist for this event; 400 if the invite was
            already used or invalidated, its order is unpaid, or the user is already registered.
    """
    invite = (
        OrderInvite.objects.select_for_update(of=("self",))
        .select_related("order", "order__event", "order__ticket_type")
        .filter(code=code, order__event_id=event_id)
        .first()
    )
    if invite is None:
        raise HttpError(404, str(_("Invite not found.")))
    if invite.status != OrderInvite.Status.PENDING:
        raise HttpError(400, str(_("This invite has already been used or is no longer valid.")))
    order = invite.order
    if order.status != Order.Status.PAID:
        raise HttpError(400, str(_("The order for this invite has not been paid.")))

    registration = Registration.objects.select_for_update().filter(event_id=event_id, user=user).first()
    if registration is not None and registration.status != Registration.Status.CANCELLED:
        raise HttpError(400, str(_("You are already registered for this event.")))
    if registration is not None:
        registration.answers.all().delete()

    INVITE_TRANSITIONS.assert_can_transition(invite.status, OrderInvite.Status.REDEEMED)
    now = timezone.now()
    claimed = OrderInvite.objects.filter(pk=invite.pk, status=OrderInvite.Status.PENDING).update(
        status=OrderInvite.Status.REDEEMED, redeemed_by=user, redeemed_at=now, updated_at=now
    )
    if not claimed:
        raise HttpError(400, str(_("This invite has already been used or is no longer valid.")))
    invite.refresh_from_db()

    registration = registration_service.activate_registration(
        registration,
        event=order.event,
        user=user,
        status=registration_service.status_after_payment(order.event),
        ticket_type=order.ticket_type,
        order=order,
        order_invite=invite,
    )
    registration_service.store_registration_answers(registration, answers)
    logger.info(
        "order_invite_redeemed",
        invite_id=str(invite.id),
        order_id=str(order.id),
        registration_id=str(registration.id),
        user_id=str(user.id),
    )
    return registration


def list_order_invites(order: Order) -> QuerySet[OrderInvite]:
    """The order's invites with their redeemers."""
    return order.invites.select_related("redeemed_by").order_by("created_at")
