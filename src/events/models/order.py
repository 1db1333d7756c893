from datetime import datetime
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from common.models import TimeStampedModel
from common.transitions import TransitionTable

from .event import Event
from .ticket import TicketType


class OrderQuerySet(models.QuerySet["Order"]):
    def pending(self) -> "OrderQuerySet":
        """Orders still awaiting payment."""
        return self.filter(status=Order.Status.PENDING)

    def expired(self, now: datetime) -> "OrderQuerySet":
        """Pending orders whose payment window has passed."""
        return self.pending().filter(expires_at__lt=now)

    def holding_inventory(self) -> "OrderQuerySet":
        """Orders whose seats count towards ``TicketType.current_quantity``."""
        return self.filter(status__in=[Order.Status.PENDING, Order.Status.PAID])


class Order(TimeStampedModel):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PAID = "PAID", "Paid"
        CANCELLED = "CANCELLED", "Cancelled"
        REFUNDED = "REFUNDED", "Refunded"

    order_no = models.CharField(max_length=32, unique=True, editable=False)
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="orders")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="event_orders")
    ticket_type = models.ForeignKey(TicketType, on_delete=models.PROTECT, related_name="orders")
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)], editable=False)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    total_amount = models.DecimalField(
        max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0.01"))]
    )
    currency = models.CharField(max_length=3)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    expires_at = models.DateTimeField(db_index=True)
    transaction_id = models.CharField(max_length=255, null=True, blank=True)
    refund_id = models.CharField(max_length=255, null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancel_reason = models.CharField(max_length=255, blank=True, default="")

    objects = OrderQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "expires_at"], name="ix_order_status_expires"),
            models.Index(fields=["event", "user", "status"], name="ix_order_event_user_status"),
        ]

    def __str__(self) -> str:
        return self.order_no


ORDER_TRANSITIONS = TransitionTable(
    "order",
    Order.Status,
    {
        Order.Status.PENDING: [Order.Status.PAID, Order.Status.CANCELLED],
        Order.Status.PAID: [Order.Status.REFUNDED],
        Order.Status.CANCELLED: [],
        Order.Status.REFUNDED: [],
    },
)


class OrderInvite(TimeStampedModel):
    """A single-use seat of a multi-seat order, handed to another attendee."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        REDEEMED = "REDEEMED", "Redeemed"
        INVALID = "INVALID", "Invalid"

    code = models.CharField(max_length=32, unique=True, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="invites")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    redeemed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="redeemed_order_invites",
    )
    redeemed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"Invite {self.code[:6]}... ({self.status})"


INVITE_TRANSITIONS = TransitionTable(
    "invite",
    OrderInvite.Status,
    {
        OrderInvite.Status.PENDING: [OrderInvite.Status.REDEEMED, OrderInvite.Status.INVALID],
        OrderInvite.Status.REDEEMED: [],
        OrderInvite.Status.INVALID: [],
    },
)
