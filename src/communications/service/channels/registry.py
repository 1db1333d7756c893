from communications.enums import CommunicationType

from .base import CommunicationChannel
from .email import EmailChannel
from .sms import SmsChannel

CHANNELS: dict[str, CommunicationChannel] = {
    channel.communication_type: channel for channel in (EmailChannel(), SmsChannel())
}


def get_channel(communication_type: CommunicationType | str) -> CommunicationChannel:
    """The channel delivering ``communication_type``.

    Raises:
        ValueError: if no channel handles that type.
    """
    try:
        return CHANNELS[communication_type]
    except KeyError:
        raise ValueError(f"No channel registered for: {communication_type}") from None
