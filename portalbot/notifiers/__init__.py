"""Status and speed event broadcasting."""

from portalbot.notifiers.channel import Event, StatusChannel, Subscriber

__all__ = [
    "Event",
    "StatusChannel",
    "Subscriber",
]
