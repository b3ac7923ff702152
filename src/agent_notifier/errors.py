"""Error taxonomy for the notifier.

Validation functions return ``ValidationError`` instances as values; the
registry, settings store and listener manager raise these errors at their
boundaries. None of them is fatal to the process.
"""


class NotifierError(Exception):
    """Base class for all notifier errors."""


class ValidationError(NotifierError):
    """A payload field is missing, empty or out of range.

    Attributes:
        field: Name of the offending field ("body" for a non-object payload)
        reason: Human-readable explanation
    """

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"'{field}' {reason}")
        self.field = field
        self.reason = reason


class NotFoundError(NotifierError):
    """No permission request is registered under the given id."""

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Permission request not found: {request_id}")
        self.request_id = request_id


class BindError(NotifierError):
    """A listener could not be bound to the requested address and port.

    Attributes:
        address: Requested bind address
        port: Requested port
        cause: Underlying exception, if any
    """

    def __init__(self, address: str, port: int, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to bind {address}:{port}{detail}")
        self.address = address
        self.port = port
        self.cause = cause


class SinkDeliveryError(NotifierError):
    """The notification sink failed to display a notification."""
