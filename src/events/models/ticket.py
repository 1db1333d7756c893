from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from common.models import TimeStampedModel

from .event import Event


class TicketType(TimeStampedModel):
    """A kind of ticket for an event and its reservation counter.

    ``current_quantity`` counts seats held by PENDING and PAID orders. It is only
    ever changed through conditional ``F()`` updates in the order service.
    """

    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="ticket_types")
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00"), validators=[MinValueValidator(Decimal("0"))]
    )
    currency = models.CharField(max_length=3, default=settings.DEFAULT_CURRENCY)
    max_quantity = models.PositiveIntegerField(null=True, blank=True, help_text="Leave empty for unlimited.")
    current_quantity = models.PositiveIntegerField(default=0, editable=False)

    class Meta:
        ordering = ["price", "name"]
        constraints = [
            models.UniqueConstraint(fields=["event", "name"], name="unique_ticket_type_name_per_event"),
            models.CheckConstraint(
                condition=models.Q(max_quantity__isnull=True)
                | models.Q(current_quantity__lte=models.F("max_quantity")),
                name="ticket_type_quantity_within_max",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.event} - {self.name}"

    @property
    def remaining_quantity(self) -> int | None:
        """Seats still available, or None when unlimited."""
        if self.max_quantity is None:
            return None
        return max(self.max_quantity - self.current_quantity, 0)


class TicketPriceTier(TimeStampedModel):
    """A bundle price: buying exactly ``quantity`` seats costs ``price`` in total."""

    ticket_type = models.ForeignKey(TicketType, on_delete=models.CASCADE, related_name="price_tiers")
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    price = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0"))])

    class Meta:
        ordering = ["quantity"]
        constraints = [
            models.UniqueConstraint(fields=["ticket_type", "quantity"], name="unique_price_tier_quantity"),
        ]

    def __str__(self) -> str:
        return f"{self.ticket_type} x{self.quantity}: {self.price}"
