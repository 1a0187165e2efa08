class HubError(Exception):
    """Base class for failures talking to the MiLight hub."""


class TransientNetworkError(HubError):
    """Connection refused, timeout or a non-2xx response from the hub."""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class MalformedResponseError(HubError):
    """The hub answered with a body that is not valid JSON."""


class CapabilityMismatchError(HubError):
    """A tracked device no longer matches the capabilities it was created with.

    Devices in this state are removed and recreated rather than repaired.
    """
