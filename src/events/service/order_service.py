"""Ticket pricing, order lifecycle and inventory accounting.

Every order holds ``quantity`` seats of its ticket type from checkout until it is
cancelled or refunded. ``reserve_ticket_inventory`` and ``release_ticket_inventory``
are the only writers of ``TicketType.current_quantity``, and both use a single
conditional ``UPDATE`` so concurrent checkouts and cancellations cannot lose updates.
"""

import secrets
import string
import typing as t
from datetime import datetime, timedelta
from decimal import Decimal
from enum import StrEnum
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction
from django.db.models import F, Q, Sum
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.translation import gettext as _
from ninja.errors import HttpError

from accounts.models import GatherlyUser
from common.tasks import enqueue_on_commit
from events.enums import OrderCancelReason
from events.exceptions import UnpurchasableQuantityError
from events.models import (
    INVITE_TRANSITIONS,
    ORDER_TRANSITIONS,
    REGISTRATION_TRANSITIONS,
    Event,
    Order,
    OrderInvite,
    Registration,
    TicketPriceTier,
    TicketType,
)
from events.service import invite_service, registration_service

logger = structlog.get_logger(__name__)

DEFAULT_ORDER_EXPIRE_MINUTES = 30
ORDER_NO_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
CENT = Decimal("0.01")


class TicketPricing(t.NamedTuple):
    unit_price: Decimal
    total_amount: Decimal
    currency: str


class CheckoutResult(t.NamedTuple):
    order: Order
    registration: Registration | None
    is_existing: bool


class OrderPaymentResult(t.NamedTuple):
    order: Order
    registration_status: Registration.Status | None


class SweepOutcome(StrEnum):
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    FAILED = "failed"


class ExpiredOrderSweepResult(t.NamedTuple):
    cancelled_count: int
    failed_count: int


# ---- Pricing ----


def resolve_ticket_pricing(
    base_price: Decimal | None,
    price_tiers: t.Iterable[TicketPriceTier],
    quantity: int,
    currency: str | None = None,
) -> TicketPricing:
    """Price ``quantity`` seats.

    A tier for exactly ``quantity`` seats sets the total, and the unit price is that
    total split evenly. A single seat without a tier costs ``base_price``. Any other
    quantity cannot be bought; no price is interpolated between tiers.

    Raises:
        UnpurchasableQuantityError: If no price applies to ``quantity``.
    """
    currency = currency or settings.DEFAULT_CURRENCY
    if quantity < 1:
        raise UnpurchasableQuantityError(quantity)
    tier = next((tier for tier in price_tiers if tier.quantity == quantity), None)
    if tier is not None:
        total = Decimal(tier.price)
        return TicketPricing(unit_price=(total / quantity).quantize(CENT), total_amount=total, currency=currency)
    if quantity == 1:
        price = Decimal(base_price or 0)
        return TicketPricing(unit_price=price, total_amount=price, currency=currency)
    raise UnpurchasableQuantityError(quantity)


def build_order_expiration(now: datetime | None = None) -> datetime:
    """When a new order's payment window closes."""
    minutes = getattr(settings, "ORDER_EXPIRE_MINUTES", None)
    if not minutes or minutes <= 0:
        minutes = DEFAULT_ORDER_EXPIRE_MINUTES
    return (now or timezone.now()) + timedelta(minutes=minutes)


def generate_order_no(now: datetime | None = None) -> str:
    """Human-readable order number: ``EVT`` + epoch milliseconds + six random characters."""
    millis = int((now or timezone.now()).timestamp() * 1000)
    suffix = "".join(secrets.choice(ORDER_NO_SUFFIX_ALPHABET) for _ in range(6))
    return f"EVT{millis}{suffix}"


# ---- Inventory ----


def reserve_ticket_inventory(ticket_type: TicketType, quantity: int) -> None:
    """Hold ``quantity`` seats of a ticket type, respecting ticket and event caps.

    Must run inside a transaction. The event row is locked while the event-wide cap is
    checked so two checkouts for different ticket types cannot both take the last seat.

    Raises:
        HttpError: If the ticket type or the event has too few seats left.
    """
    event = Event.objects.select_for_update().get(pk=ticket_type.event_id)
    if event.max_attendees is not None:
        held = TicketType.objects.filter(event=event).aggregate(total=Sum("current_quantity"))["total"] or 0
        if held + quantity > event.max_attendees:
            raise HttpError(400, str(_("This event is sold out.")))

    qs = TicketType.objects.filter(pk=ticket_type.pk)
    if ticket_type.max_quantity is not None:
        qs = qs.filter(current_quantity__lte=F("max_quantity") - quantity)
    if not qs.update(current_quantity=F("current_quantity") + quantity):
        raise HttpError(400, str(_("Not enough tickets of this type are left.")))
    logger.debug("ticket_inventory_reserved", ticket_type_id=str(ticket_type.pk), quantity=quantity)


def release_ticket_inventory(ticket_type_id: UUID, quantity: int) -> None:
    """Give back seats held by an order. The counter never drops below zero."""
    released = TicketType.objects.filter(pk=ticket_type_id, current_quantity__gte=quantity).update(
        current_quantity=F("current_quantity") - quantity
    )
    if not released:
        logger.error("ticket_inventory_underflow", ticket_type_id=str(ticket_type_id), quantity=quantity)
        return
    logger.debug("ticket_inventory_released", ticket_type_id=str(ticket_type_id), quantity=quantity)


# ---- Checkout ----


def checkout(
    event: Event,
    user: GatherlyUser,
    *,
    ticket_type_id: UUID,
    quantity: int,
    answers: t.Mapping[str, str] | None = None,
) -> CheckoutResult:
    """Start a purchase: reserve seats and create a PENDING order.

    A buyer with an unexpired pending order for the event gets that order back
    instead of a second one. Their expired pending orders are cancelled first so
    the seats they held are released before new ones are reserved.
    """
    now = timezone.now()
    existing = (
        Order.objects.pending()
        .filter(event=event, user=user, expires_at__gt=now)
        .select_related("ticket_type")
        .first()
    )
    if existing is not None:
        logger.info("event_order_checkout_reused", order_id=str(existing.id), event_id=str(event.id))
        return CheckoutResult(order=existing, registration=existing.registrations.first(), is_existing=True)

    for expired_id in Order.objects.expired(now).filter(event=event, user=user).values_list("id", flat=True):
        cancel_event_order(expired_id, reason=OrderCancelReason.EXPIRED)

    with transaction.atomic():
        registration = Registration.objects.select_for_update().filter(event=event, user=user).first()
        if registration is not None and registration.status != Registration.Status.CANCELLED:
            raise HttpError(400, str(_("You are already registered for this event.")))

        ticket_type = get_object_or_404(
            TicketType.objects.prefetch_related("price_tiers"), pk=ticket_type_id, event=event
        )
        pricing = resolve_ticket_pricing(
            ticket_type.price, ticket_type.price_tiers.all(), quantity, currency=ticket_type.currency
        )
        if pricing.total_amount <= 0:
            raise HttpError(400, str(_("Free tickets do not require an order.")))

        reserve_ticket_inventory(ticket_type, quantity)
        order = Order.objects.create(
            order_no=generate_order_no(now),
            event=event,
            user=user,
            ticket_type=ticket_type,
            quantity=quantity,
            unit_price=pricing.unit_price,
            total_amount=pricing.total_amount,
            currency=pricing.currency,
            expires_at=build_order_expiration(now),
        )
        registration = registration_service.activate_registration(
            registration,
            event=event,
            user=user,
            status=Registration.Status.PENDING_PAYMENT,
            ticket_type=ticket_type,
            order=order,
        )
        registration_service.store_registration_answers(registration, answers)
        invite_service.create_order_invites(order, quantity - 1)

    logger.info(
        "event_order_created",
        order_id=str(order.id),
        order_no=order.order_no,
        event_id=str(event.id),
        user_id=str(user.id),
        quantity=quantity,
        total_amount=str(order.total_amount),
    )
    return CheckoutResult(order=order, registration=registration, is_existing=False)


# ---- Transitions ----


def _cancel_order_registrations(order: Order) -> int:
    return Registration.objects.filter(
        order=order, status__in=REGISTRATION_TRANSITIONS.sources(Registration.Status.CANCELLED)
    ).update(status=Registration.Status.CANCELLED, updated_at=timezone.now())


def _invalidate_pending_invites(order: Order) -> int:
    return order.invites.filter(status__in=INVITE_TRANSITIONS.sources(OrderInvite.Status.INVALID)).update(
        status=OrderInvite.Status.INVALID, updated_at=timezone.now()
    )


@transaction.atomic
def cancel_event_order(order_id: UUID, reason: str | None = None) -> Order:
    """Cancel a PENDING order and give back everything it held.

    Anything but a PENDING order is returned untouched, so repeated calls are safe.
    The buyer is emailed after the transaction commits.
    """
    order = get_object_or_404(Order.objects.select_for_update(), pk=order_id)
    if order.status != Order.Status.PENDING:
        logger.info("event_order_cancel_skipped", order_id=str(order.id), status=order.status)
        return order

    ORDER_TRANSITIONS.assert_can_transition(order.status, Order.Status.CANCELLED)
    order.status = Order.Status.CANCELLED
    order.cancelled_at = timezone.now()
    order.cancel_reason = (reason or "")[:255]
    order.save(update_fields=["status", "cancelled_at", "cancel_reason", "updated_at"])

    cancelled_registrations = _cancel_order_registrations(order)
    invalidated_invites = _invalidate_pending_invites(order)
    release_ticket_inventory(order.ticket_type_id, order.quantity)

    from events import tasks

    enqueue_on_commit(tasks.send_order_cancelled_email, str(order.id))
    logger.info(
        "event_order_cancelled",
        order_id=str(order.id),
        order_no=order.order_no,
        reason=order.cancel_reason,
        cancelled_registrations=cancelled_registrations,
        invalidated_invites=invalidated_invites,
    )
    return order


@transaction.atomic
def mark_event_order_paid(
    order_no: str, transaction_id: str, paid_at: datetime | None = None
) -> OrderPaymentResult:
    """Record a confirmed payment.

    Registrations waiting on the payment become APPROVED, or PENDING when the event
    requires approval. Anything but a PENDING order is returned untouched.
    """
    order = get_object_or_404(Order.objects.select_for_update(of=("self",)).select_related("event"), order_no=order_no)
    if order.status != Order.Status.PENDING:
        logger.warning("event_order_payment_duplicate", order_id=str(order.id), status=order.status)
        return OrderPaymentResult(order=order, registration_status=None)

    ORDER_TRANSITIONS.assert_can_transition(order.status, Order.Status.PAID)
    order.status = Order.Status.PAID
    order.transaction_id = transaction_id
    order.paid_at = paid_at or timezone.now()
    order.save(update_fields=["status", "transaction_id", "paid_at", "updated_at"])

    target = registration_service.status_after_payment(order.event)
    REGISTRATION_TRANSITIONS.assert_can_transition(Registration.Status.PENDING_PAYMENT, target)
    Registration.objects.filter(order=order, status=Registration.Status.PENDING_PAYMENT).update(
        status=target, updated_at=timezone.now()
    )
    logger.info(
        "event_order_paid",
        order_id=str(order.id),
        order_no=order.order_no,
        transaction_id=transaction_id,
        registration_status=target,
    )
    return OrderPaymentResult(order=order, registration_status=target)


@transaction.atomic
def mark_event_order_refunded(order_no: str, refund_id: str, refunded_at: datetime | None = None) -> Order:
    """Record a refund for a PAID order, cancelling every registration it covers.

    Refunding an already refunded order is a no-op.

    Raises:
        InvalidTransitionError: If the order was never paid.
    """
    order = get_object_or_404(Order.objects.select_for_update(), order_no=order_no)
    if order.status == Order.Status.REFUNDED:
        logger.warning("event_order_refund_duplicate", order_id=str(order.id))
        return order

    ORDER_TRANSITIONS.assert_can_transition(order.status, Order.Status.REFUNDED)
    order.status = Order.Status.REFUNDED
    order.refund_id = refund_id
    order.refunded_at = refunded_at or timezone.now()
    order.save(update_fields=["status", "refund_id", "refunded_at", "updated_at"])

    cancelled_registrations = _cancel_order_registrations(order)
    invalidated_invites = _invalidate_pending_invites(order)
    release_ticket_inventory(order.ticket_type_id, order.quantity)
    logger.info(
        "event_order_refunded",
        order_id=str(order.id),
        order_no=order.order_no,
        refund_id=refund_id,
        cancelled_registrations=cancelled_registrations,
        invalidated_invites=invalidated_invites,
    )
    return order


# ---- Expiry sweep ----


def expired_order_id_pages(now: datetime | None = None, batch_size: int | None = None) -> t.Iterator[list[UUID]]:
    """Yield ids of PENDING orders whose payment window closed before ``now``, a page at a time.

    Pages are claimed oldest first with a keyset cursor on ``(expires_at, pk)``, so an
    order whose cancellation is still in flight, or failed, is never handed out twice
    and the sweep always terminates.
    """
    now = now or timezone.now()
    batch_size = batch_size or settings.ORDER_SWEEP_BATCH_SIZE
    candidates = Order.objects.expired(now).order_by("expires_at", "pk")
    cursor: tuple[datetime, UUID] | None = None
    while True:
        queryset = candidates
        if cursor is not None:
            expires_at, pk = cursor
            queryset = queryset.filter(Q(expires_at__gt=expires_at) | Q(expires_at=expires_at, pk__gt=pk))
        page = list(queryset.values_list("expires_at", "pk")[:batch_size])
        if not page:
            return
        cursor = page[-1]
        yield [pk for _, pk in page]


def cancel_expired_order(order_id: UUID) -> SweepOutcome:
    """Cancel one expired order; a failure is logged and reported, never raised."""
    try:
        order = cancel_event_order(order_id, reason=OrderCancelReason.EXPIRED)
    except Exception:
        logger.exception("expired_order_cancel_failed", order_id=str(order_id))
        return SweepOutcome.FAILED
    return SweepOutcome.CANCELLED if order.status == Order.Status.CANCELLED else SweepOutcome.SKIPPED


def summarize_expired_order_sweep(outcomes: t.Iterable[str]) -> ExpiredOrderSweepResult:
    """Count what a page of the sweep did."""
    tally = [SweepOutcome(outcome) for outcome in outcomes]
    result = ExpiredOrderSweepResult(
        cancelled_count=tally.count(SweepOutcome.CANCELLED),
        failed_count=tally.count(SweepOutcome.FAILED),
    )
    if result.cancelled_count or result.failed_count:
        logger.info("expired_orders_swept", **result._asdict())
    return result
