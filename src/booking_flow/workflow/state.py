"""Workflow states, execution modes and the outcome record of a run."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from booking_flow.booking.models import (
    CancellationPolicy,
    CancellationResult,
    ConfirmedBooking,
    HotelCandidate,
    Location,
    PreparedBooking,
    RoomOffer,
    SearchSession,
)
from booking_flow.core.errors import BookingError, CompensationFailed


class WorkflowState(str, Enum):
    INIT = "INIT"
    LOCATION_RESOLVED = "LOCATION_RESOLVED"
    SEARCH_STARTED = "SEARCH_STARTED"
    SEARCH_COMPLETE = "SEARCH_COMPLETE"
    ROOMS_LISTED = "ROOMS_LISTED"
    POLICY_CHECKED = "POLICY_CHECKED"
    PREPARED = "PREPARED"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    DONE = "DONE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


class ExecutionMode(str, Enum):
    """How far a run is allowed to go.

    ``SEARCH`` stops after the cancellation policy check, ``BOOK`` confirms and keeps
    the booking, ``VERIFY`` confirms and then issues a compensating cancellation.
    """

    SEARCH = "search"
    BOOK = "book"
    VERIFY = "verify"

    @property
    def confirms(self) -> bool:
        return self is not ExecutionMode.SEARCH

    @property
    def compensates(self) -> bool:
        return self is ExecutionMode.VERIFY


_TERMINAL = frozenset({WorkflowState.CANCELLED, WorkflowState.DONE, WorkflowState.FAILED})

ALLOWED_TRANSITIONS: dict[WorkflowState, frozenset[WorkflowState]] = {
    WorkflowState.INIT: frozenset({WorkflowState.LOCATION_RESOLVED}),
    WorkflowState.LOCATION_RESOLVED: frozenset({WorkflowState.SEARCH_STARTED}),
    WorkflowState.SEARCH_STARTED: frozenset({WorkflowState.SEARCH_COMPLETE}),
    WorkflowState.SEARCH_COMPLETE: frozenset({WorkflowState.ROOMS_LISTED}),
    WorkflowState.ROOMS_LISTED: frozenset({WorkflowState.POLICY_CHECKED}),
    WorkflowState.POLICY_CHECKED: frozenset({WorkflowState.PREPARED, WorkflowState.DONE}),
    WorkflowState.PREPARED: frozenset({WorkflowState.CONFIRMED}),
    WorkflowState.CONFIRMED: frozenset({WorkflowState.CANCELLED, WorkflowState.DONE}),
}


def can_transition(current: WorkflowState, target: WorkflowState) -> bool:
    if target is WorkflowState.FAILED:
        return not current.is_terminal
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


@dataclass(slots=True)
class WorkflowOutcome:
    """Everything a finished (or failed) run produced."""

    state: WorkflowState = WorkflowState.INIT
    mode: ExecutionMode = ExecutionMode.SEARCH
    history: List[WorkflowState] = field(default_factory=lambda: [WorkflowState.INIT])
    session: Optional[SearchSession] = None
    location: Optional[Location] = None
    hotel: Optional[HotelCandidate] = None
    hotel_fallback: bool = False
    hotels_found: int = 0
    offer: Optional[RoomOffer] = None
    offer_fallback: bool = False
    policy: Optional[CancellationPolicy] = None
    prepared: Optional[PreparedBooking] = None
    booking: Optional[ConfirmedBooking] = None
    cancellation: Optional[CancellationResult] = None
    poll_attempts: int = 0
    error: Optional[BookingError] = None
    failed_from: Optional[WorkflowState] = None
    compensation_error: Optional[CompensationFailed] = None

    @property
    def succeeded(self) -> bool:
        return self.state in (WorkflowState.DONE, WorkflowState.CANCELLED)

    @property
    def failure_message(self) -> Optional[str]:
        return str(self.error) if self.error else None

    def raise_for_failure(self) -> None:
        if self.state is WorkflowState.FAILED and self.error is not None:
            raise self.error

    def to_dict(self) -> dict[str, object]:
        return {
            "state": self.state.value,
            "mode": self.mode.value,
            "history": [state.value for state in self.history],
            "failed_from": self.failed_from.value if self.failed_from else None,
            "error": self.failure_message,
            "error_type": type(self.error).__name__ if self.error else None,
            "session": self.session.to_dict() if self.session else None,
            "location": self.location.to_dict() if self.location else None,
            "hotels_found": self.hotels_found,
            "poll_attempts": self.poll_attempts,
            "hotel": self.hotel.to_dict() if self.hotel else None,
            "hotel_fallback": self.hotel_fallback,
            "offer": self.offer.to_dict() if self.offer else None,
            "offer_fallback": self.offer_fallback,
            "policy": self.policy.to_dict() if self.policy else None,
            "prepared": self.prepared.to_dict() if self.prepared else None,
            "booking": self.booking.to_dict() if self.booking else None,
            "cancellation": self.cancellation.to_dict() if self.cancellation else None,
            "compensation_error": str(self.compensation_error) if self.compensation_error else None,
        }
