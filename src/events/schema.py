import typing as t
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from ninja import ModelSchema, Schema
from pydantic import UUID4, Field

from accounts.schema import MinimalUserSchema
from common.schema import StrippedString

from .enums import CheckInStatusCode
from .models import Order, OrderInvite, Registration

Answers = dict[t.Annotated[str, Field(min_length=1, max_length=255)], t.Annotated[str, Field(max_length=5000)]]


class CheckoutSchema(Schema):
    ticket_type_id: UUID4
    quantity: int = Field(default=1, ge=1, le=50)
    answers: Answers | None = None


class OrderSchema(ModelSchema):
    id: UUID4
    event_id: UUID4
    ticket_type_id: UUID4

    class Meta:
        model = Order
        fields = [
            "order_no",
            "quantity",
            "unit_price",
            "total_amount",
            "currency",
            "status",
            "expires_at",
            "transaction_id",
            "refund_id",
            "paid_at",
            "refunded_at",
            "cancelled_at",
            "cancel_reason",
            "created_at",
        ]


class RegistrationSchema(ModelSchema):
    id: UUID4
    event_id: UUID4
    user_id: UUID4
    ticket_type_id: UUID4 | None = None
    order_id: UUID4 | None = None

    class Meta:
        model = Registration
        fields = ["status", "checked_in_at", "reviewed_at", "review_note", "created_at"]


class CheckoutResponseSchema(Schema):
    order: OrderSchema
    registration: RegistrationSchema | None
    is_existing: bool


class TicketPricingSchema(Schema):
    unit_price: Decimal
    total_amount: Decimal
    currency: str


class OrderCancelSchema(Schema):
    reason: StrippedString | None = Field(default=None, max_length=255)


class MarkOrderPaidSchema(Schema):
    transaction_id: StrippedString | None = Field(default=None, max_length=255)
    paid_at: datetime | None = None


class RefundOrderSchema(Schema):
    refund_id: StrippedString | None = Field(default=None, max_length=255)
    refunded_at: datetime | None = None


class OrderPaymentResultSchema(Schema):
    order: OrderSchema
    registration_status: Registration.Status | None


class OrderInviteSchema(ModelSchema):
    id: UUID4
    redeemer: MinimalUserSchema | None = None

    class Meta:
        model = OrderInvite
        fields = ["code", "status", "redeemed_at", "created_at"]

    @staticmethod
    def resolve_redeemer(obj: OrderInvite) -> dict[str, t.Any] | None:
        """Expose who redeemed the invite."""
        if obj.redeemed_by is None:
            return None
        return {"id": obj.redeemed_by.id, "display_name": obj.redeemed_by.display_name, "email": obj.redeemed_by.email}


class RedeemInviteSchema(Schema):
    answers: Answers | None = None


class RegistrationReviewSchema(Schema):
    status: Registration.Status
    note: StrippedString = Field(default="", max_length=2000)


class CheckInRequestSchema(Schema):
    event_id: UUID
    user_id: UUID | None = None


class CheckInStatusSchema(Schema):
    status_code: CheckInStatusCode
    can_check_in: bool
    is_already_checked_in: bool
    message: str


class CheckInResponseSchema(Schema):
    check_in: RegistrationSchema


class CheckInListItemSchema(Schema):
    id: UUID4
    user: MinimalUserSchema
    checked_in_at: datetime
    checked_in_by_id: UUID4 | None = None
