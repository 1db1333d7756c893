from uuid import UUID

from django.db.models import QuerySet
from django.shortcuts import get_object_or_404
from django.utils.translation import gettext_lazy as _
from ninja.errors import HttpError
from ninja_extra import api_controller, route

from common.authentication import I18nJWTAuth
from common.controllers import UserAwareController
from common.schema import ValidationErrorResponse
from common.throttling import CheckoutThrottle, UserDefaultThrottle, WriteThrottle
from events import models, schema
from events.enums import OrderCancelReason
from events.models import EventStaffPermission
from events.service import invite_service, order_service

from .permissions import EventPermission


@api_controller("/events", auth=I18nJWTAuth(), tags=["Orders"], throttle=WriteThrottle())
class OrderController(UserAwareController):
    """Checkout, payment bookkeeping and per-seat invites."""

    def get_order(self, order_id: UUID) -> models.Order:
        """An order belonging to the requesting user."""
        return get_object_or_404(models.Order.objects.select_related("event"), pk=order_id, user=self.user())

    def get_managed_order(self, order_id: UUID) -> models.Order:
        """An order of an event the requesting user may manage."""
        order = get_object_or_404(models.Order.objects.select_related("event"), pk=order_id)
        self.get_object_or_exception(models.Event, pk=order.event_id)
        return order

    # ---- Buyer ----

    @route.get(
        "/{event_id}/ticket-types/{ticket_type_id}/pricing",
        url_name="ticket_pricing",
        response={200: schema.TicketPricingSchema, 400: ValidationErrorResponse},
        throttle=UserDefaultThrottle(),
    )
    def ticket_pricing(
        self, event_id: UUID, ticket_type_id: UUID, quantity: int = 1
    ) -> order_service.TicketPricing:
        """Quote the price of ``quantity`` seats without reserving them."""
        ticket_type = get_object_or_404(
            models.TicketType.objects.prefetch_related("price_tiers"), pk=ticket_type_id, event_id=event_id
        )
        return order_service.resolve_ticket_pricing(
            ticket_type.price, ticket_type.price_tiers.all(), quantity, currency=ticket_type.currency
        )

    @route.post(
        "/{event_id}/orders",
        url_name="checkout",
        response={200: schema.CheckoutResponseSchema, 201: schema.CheckoutResponseSchema, 400: ValidationErrorResponse},
        throttle=CheckoutThrottle(),
    )
    def checkout(self, event_id: UUID, payload: schema.CheckoutSchema) -> tuple[int, order_service.CheckoutResult]:
        """Reserve seats and open a pending order.

        Returns 200 with the buyer's open order if one is still awaiting payment.
        """
        event = get_object_or_404(models.Event, pk=event_id)
        result = order_service.checkout(
            event,
            self.user(),
            ticket_type_id=payload.ticket_type_id,
            quantity=payload.quantity,
            answers=payload.answers,
        )
        return (200 if result.is_existing else 201), result

    @route.get("/orders/{order_id}", url_name="get_order", response=schema.OrderSchema, throttle=UserDefaultThrottle())
    def get_order_detail(self, order_id: UUID) -> models.Order:
        """One of the user's orders."""
        return self.get_order(order_id)

    @route.post(
        "/orders/{order_id}/cancel",
        url_name="cancel_order",
        response={200: schema.OrderSchema, 400: ValidationErrorResponse},
    )
    def cancel_order(self, order_id: UUID, payload: schema.OrderCancelSchema) -> models.Order:
        """Give up a pending order and release its seats."""
        order = self.get_order(order_id)
        if order.status != models.Order.Status.PENDING:
            raise HttpError(400, str(_("Only pending orders can be cancelled.")))
        return order_service.cancel_event_order(order.id, reason=payload.reason or OrderCancelReason.USER_REQUESTED)

    @route.get(
        "/orders/{order_id}/invites",
        url_name="list_order_invites",
        response=list[schema.OrderInviteSchema],
        throttle=UserDefaultThrottle(),
    )
    def list_order_invites(self, order_id: UUID) -> QuerySet[models.OrderInvite]:
        """Invites for the extra seats of the user's order."""
        return invite_service.list_order_invites(self.get_order(order_id))

    @route.post(
        "/{event_id}/orders/invites/{code}/redeem",
        url_name="redeem_invite",
        response={200: schema.RegistrationSchema, 400: ValidationErrorResponse},
    )
    def redeem_invite(self, event_id: UUID, code: str, payload: schema.RedeemInviteSchema) -> models.Registration:
        """Claim a seat from someone else's paid order."""
        return invite_service.redeem_order_invite(event_id, code, self.user(), answers=payload.answers)

    # ---- Event management ----

    @route.post(
        "/orders/{order_id}/mark-paid",
        url_name="mark_order_paid",
        response={200: schema.OrderPaymentResultSchema, 400: ValidationErrorResponse},
        permissions=[EventPermission(EventStaffPermission.MANAGE_REGISTRATIONS)],
    )
    def mark_order_paid(self, order_id: UUID, payload: schema.MarkOrderPaidSchema) -> order_service.OrderPaymentResult:
        """Record a payment confirmed outside the platform."""
        order = self.get_managed_order(order_id)
        return order_service.mark_event_order_paid(
            order.order_no, payload.transaction_id or f"MANUAL-{order.id}", paid_at=payload.paid_at
        )

    @route.post(
        "/orders/{order_id}/refund",
        url_name="refund_order",
        response={200: schema.OrderSchema, 400: ValidationErrorResponse},
        permissions=[EventPermission(EventStaffPermission.MANAGE_REGISTRATIONS)],
    )
    def refund_order(self, order_id: UUID, payload: schema.RefundOrderSchema) -> models.Order:
        """Record a refund and cancel every registration the order covers."""
        order = self.get_managed_order(order_id)
        return order_service.mark_event_order_refunded(
            order.order_no, payload.refund_id or f"MANUAL-REFUND-{order.id}", refunded_at=payload.refunded_at
        )
