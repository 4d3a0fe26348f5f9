"""Exception types shared across the event pipeline.

Only infrastructure problems and malformed input are exceptions. A handler
receiving an event it does not apply to is not an error and never raises.
"""

from typing import Optional


class SportsEventsError(Exception):
    """Base class for pipeline errors."""


class MalformedEventError(SportsEventsError):
    """Raised when a raw channel message cannot be decoded into an envelope.

    Never retried: decoding the same bytes again cannot succeed.
    """

    def __init__(self, reason: str, raw: object = None):
        self.reason = reason
        self.raw = raw
        super().__init__(f"Malformed event: {reason}")


class ChannelUnavailableError(SportsEventsError):
    """Transient failure pushing to or popping from the event channel."""


class InvalidRecalcRequest(SportsEventsError, ValueError):
    """Raised for a standings recalculation request without a positive int id."""


class AuthServiceUnavailable(SportsEventsError):
    """The auth service could not be reached or answered unintelligibly."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)
