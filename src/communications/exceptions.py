from django.utils.translation import gettext as _


class CommunicationQuotaExceededError(Exception):
    """The event has used up its communications."""

    def __init__(self, limit: int) -> None:
        """Store the limit that was hit."""
        self.limit = limit
        super().__init__(_("This event has already sent the maximum of %(limit)s communications.") % {"limit": limit})


class NoValidRecipientsError(Exception):
    """Nobody registered for the event can receive the communication."""

    def __init__(self, message: str | None = None) -> None:
        """Default to a generic message."""
        super().__init__(message or _("There are no recipients who can receive this communication."))


class NoRetryableRecordsError(Exception):
    """A communication has no failed deliveries left to retry."""

    def __init__(self) -> None:
        """Fixed message."""
        super().__init__(_("There are no failed deliveries that can be retried."))
