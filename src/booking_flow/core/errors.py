"""Error taxonomy for the booking workflow."""
from __future__ import annotations

from typing import Optional


class BookingError(RuntimeError):
    """Base class for every failure the workflow knows how to report."""


class NoLocationMatch(BookingError):
    """Raised when a location query returns no candidates."""

    def __init__(self, query: str) -> None:
        super().__init__(f"No locations found for: {query}")
        self.query = query


class AmbiguousLocationSpecifier(BookingError):
    """Raised when a search carries both or neither of region id and coordinates."""


class PollExhausted(BookingError):
    """Raised when polling runs out of attempts (or time) before completion."""

    def __init__(self, attempts: int, reason: str = "attempt budget exhausted") -> None:
        super().__init__(f"Polling gave up after {attempts} attempt(s): {reason}")
        self.attempts = attempts
        self.reason = reason


class PollCancelled(BookingError):
    """Raised when an external cancellation signal stops a poll loop."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Polling cancelled after {attempts} attempt(s)")
        self.attempts = attempts


class MalformedIdentifier(BookingError):
    """Raised when a compound identifier does not have the expected structure."""

    def __init__(self, value: str, separator: str) -> None:
        super().__init__(f"Identifier {value!r} is not of the form <package>{separator}<location>")
        self.value = value
        self.separator = separator


class InvalidIdentifierFormat(BookingError):
    """Raised when an identifier cannot be converted to the requested representation."""


class NoCandidatesAvailable(BookingError):
    """Raised when selection is asked to choose from an empty list."""


class GuestCountMismatch(BookingError):
    """Raised when guest records do not match the rooms declared at search time."""


class SessionExpired(BookingError):
    """Raised when a search session is used past its validity window."""


class InvalidTransition(RuntimeError):
    """Raised when a workflow step is attempted from the wrong state.

    A programming error, not a booking failure: it is not caught by ``BookingWorkflow.run``.
    """


class RemoteFault(BookingError):
    """Base class for failures reported by the remote invoker."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.message = message


class TransportFault(RemoteFault):
    """Connection, timeout or HTTP status failure. Not retried by the workflow."""

    def __init__(
        self,
        operation: str,
        message: str,
        *,
        status: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(operation, message)
        self.status = status
        self.body = body


class MalformedResponse(RemoteFault):
    """The remote answered, but not with a payload of the expected shape."""


class BusinessRejection(RemoteFault):
    """A well-formed response declining the operation (e.g. an ineligible account)."""


class CompensationFailed(BookingError):
    """Recorded next to a confirmed booking whose compensating cancel did not go through."""

    def __init__(self, booking_id: str, message: str) -> None:
        super().__init__(f"Compensation for booking {booking_id} failed: {message}")
        self.booking_id = booking_id
        self.message = message
