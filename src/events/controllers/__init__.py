from .checkin import CheckInController
from .orders import OrderController
from .registrations import RegistrationAdminController

EVENT_CONTROLLERS: list[type] = [
    OrderController,
    CheckInController,
    RegistrationAdminController,
]

__all__ = [
    "CheckInController",
    "OrderController",
    "RegistrationAdminController",
    "EVENT_CONTROLLERS",
]
