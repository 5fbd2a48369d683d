class RelayError(Exception):
    """Base class for errors reported back to the user who triggered them."""


class InvalidFormat(RelayError):
    pass


class Unauthorized(RelayError):
    pass


class NotFound(RelayError):
    pass


class AlreadyRecorded(RelayError):
    pass


class TransportFailure(RelayError):
    """Delivery to a chat failed. Logged by fan-out callers, never retried."""


class PersistenceFailure(RelayError):
    pass
