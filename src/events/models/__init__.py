from .event import Event, EventStaff, EventStaffPermission
from .order import INVITE_TRANSITIONS, ORDER_TRANSITIONS, Order, OrderInvite
from .registration import REGISTRATION_TRANSITIONS, Registration, RegistrationAnswer
from .ticket import TicketPriceTier, TicketType

__all__ = [
    "INVITE_TRANSITIONS",
    "ORDER_TRANSITIONS",
    "REGISTRATION_TRANSITIONS",
    "Event",
    "EventStaff",
    "EventStaffPermission",
    "Order",
    "OrderInvite",
    "Registration",
    "RegistrationAnswer",
    "TicketPriceTier",
    "TicketType",
]
