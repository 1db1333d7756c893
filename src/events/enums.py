from enum import StrEnum

from django.utils.translation import gettext_noop


class CheckInStatusCode(StrEnum):
    NOT_REGISTERED = "NOT_REGISTERED"
    REGISTRATION_PENDING = "REGISTRATION_PENDING"
    ALREADY_CHECKED_IN = "ALREADY_CHECKED_IN"
    CHECKIN_NOT_STARTED = "CHECKIN_NOT_STARTED"
    EVENT_ENDED = "EVENT_ENDED"
    READY = "READY"


CHECK_IN_MESSAGES: dict[CheckInStatusCode, str] = {
    CheckInStatusCode.NOT_REGISTERED: gettext_noop("You are not registered for this event."),
    CheckInStatusCode.REGISTRATION_PENDING: gettext_noop("Your registration has not been approved yet."),
    CheckInStatusCode.ALREADY_CHECKED_IN: gettext_noop("You have already checked in to this event."),
    CheckInStatusCode.CHECKIN_NOT_STARTED: gettext_noop("Check-in has not opened yet for this event."),
    CheckInStatusCode.EVENT_ENDED: gettext_noop("This event has already ended."),
    CheckInStatusCode.READY: gettext_noop("You can check in now."),
}


class OrderCancelReason(StrEnum):
    USER_REQUESTED = gettext_noop("Cancelled by the buyer.")
    EXPIRED = gettext_noop("Payment window expired.")
    REPLACED = gettext_noop("Superseded by a new checkout.")
