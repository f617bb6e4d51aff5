"""Exceptions for the beacon client."""


class BeaconError(Exception):
    """Base class for beacon node failures."""


class BeaconAPIError(BeaconError):
    """Error response from the Beacon API."""

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"Beacon API error {status}: {message}")


class BlockNotFoundError(BeaconAPIError):
    """Block not found error."""

    def __init__(self, message: str):
        super().__init__(404, message)


class BeaconUnreachable(BeaconError):
    """The beacon node could not be reached at all (refused, DNS, timeout)."""

    def __init__(self, url: str, reason: str = ""):
        self.url = url
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Cannot connect to beacon node at {url}{detail}")


class MalformedResponse(BeaconError):
    """The beacon node answered with an unexpected payload shape."""
