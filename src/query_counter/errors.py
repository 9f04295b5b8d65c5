# src/query_counter/errors.py
"""Query counter exceptions.

These exceptions describe misuse of the counter itself (bad configuration,
malformed subscriber plugins). They are never raised for conditions inside
the counted unit of work: a missing scope or a failing subscriber is not an
error of the caller's code.
"""


class QueryCounterError(Exception):
    """Base class for all query counter errors."""


class ThresholdConfigError(QueryCounterError, ValueError):
    """Raised when a threshold is set by an unknown name or with an invalid value.

    Attributes:
        field: Name of the offending threshold field
        message: Human-readable error description
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"Threshold '{field}' rejected: {message}")


class SubscriberRegistrationError(QueryCounterError):
    """Raised when a notification subscriber does not match the hook specification.

    Raised during registration, never during publish. Publishing must not
    raise - subscriber failures are logged instead.

    Attributes:
        subscriber: Name or repr of the rejected subscriber
        message: Human-readable error description
    """

    def __init__(self, subscriber: str, message: str) -> None:
        self.subscriber = subscriber
        self.message = message
        super().__init__(f"Subscriber '{subscriber}' rejected: {message}")
