"""Notification delivery errors."""


class NotificationDeliveryFailed(Exception):
    """A sink could not deliver a notification."""

    def __init__(self, sink: str, reason: str):
        self.sink = sink
        self.reason = reason
        super().__init__(f"{sink} delivery failed: {reason}")
