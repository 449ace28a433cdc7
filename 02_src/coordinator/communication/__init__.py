"""User communication: intake hub, processors and response delivery."""

from .hub import (
    DEFAULT_RESPONSE,
    FAILURE_RESPONSE,
    INTENT_RESPONSES,
    IUserCommunicationHub,
    UserCommunicationHub,
    calculate_intake_priority,
)
from .processor import UserMessageProcessor
from .response_channel import IResponseChannel, ResponseChannel, Sender

__all__ = [
    "UserCommunicationHub",
    "IUserCommunicationHub",
    "UserMessageProcessor",
    "ResponseChannel",
    "IResponseChannel",
    "Sender",
    "calculate_intake_priority",
    "INTENT_RESPONSES",
    "DEFAULT_RESPONSE",
    "FAILURE_RESPONSE",
]
