from .communications import EventCommunicationController
from .inbox import InboxController

COMMUNICATION_CONTROLLERS: list[type] = [EventCommunicationController, InboxController]

__all__ = ["EventCommunicationController", "InboxController", "COMMUNICATION_CONTROLLERS"]
