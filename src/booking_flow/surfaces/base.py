"""Shared pieces for remote dialect adapters."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional, Protocol, Sequence

from booking_flow.booking.models import (
    CancellationPolicy,
    CancellationResult,
    ConfirmedBooking,
    ContactPerson,
    HotelCandidate,
    Location,
    PreparedBooking,
    RoomGuests,
    RoomListing,
    RoomOffer,
    SearchResultsPage,
    SearchSession,
)
from booking_flow.core.errors import MalformedResponse

logger = logging.getLogger(__name__)

# Epoch values above this are treated as milliseconds.
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000


@dataclass(frozen=True, slots=True)
class RemoteCall:
    operation: str
    arguments: dict[str, Any] = field(default_factory=dict)


class BookingSurface(Protocol):
    """Builds requests for each workflow step and parses the replies."""

    name: str

    def location_call(self, query: str) -> RemoteCall: ...

    def parse_locations(self, payload: Any) -> list[Location]: ...

    def search_call(self, session: SearchSession) -> RemoteCall: ...

    def parse_search_started(self, payload: Any) -> tuple[str, Optional[str]]: ...

    def results_call(self, session: SearchSession) -> RemoteCall: ...

    def parse_results(self, payload: Any) -> SearchResultsPage: ...

    def is_search_complete(self, page: SearchResultsPage) -> bool: ...

    def rooms_call(self, session: SearchSession, hotel: HotelCandidate) -> RemoteCall: ...

    def parse_rooms(self, payload: Any) -> RoomListing: ...

    def policy_call(
        self, session: SearchSession, hotel: HotelCandidate, package_id: str
    ) -> RemoteCall: ...

    def parse_policy(self, payload: Any, package_id: str) -> CancellationPolicy: ...

    def prepare_call(
        self,
        offer: RoomOffer,
        guests: Sequence[RoomGuests],
        contact: Optional[ContactPerson],
    ) -> RemoteCall: ...

    def parse_prepared(self, payload: Any, offer: RoomOffer) -> PreparedBooking: ...

    def confirm_call(self, prepared: PreparedBooking) -> RemoteCall: ...

    def parse_confirmation(self, payload: Any, prepared: PreparedBooking) -> ConfirmedBooking: ...

    def cancel_call(self, booking_id: str, *, confirmed: bool) -> RemoteCall: ...

    def parse_cancellation(self, payload: Any, booking_id: str) -> CancellationResult: ...


def require_mapping(payload: Any, operation: str) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise MalformedResponse(operation, f"expected an object, got {type(payload).__name__}")
    return payload


def require_field(payload: Mapping[str, Any], key: str, operation: str) -> Any:
    value = payload.get(key)
    if value in (None, ""):
        raise MalformedResponse(operation, f"response missing '{key}'")
    return value


def list_field(payload: Mapping[str, Any], key: str, operation: str) -> list[Any]:
    value = payload.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedResponse(operation, f"'{key}' should be a list, got {type(value).__name__}")
    return value


def optional_float(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.debug("Unable to interpret %r as a number", value)
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse epoch seconds/milliseconds or ISO 8601 strings into aware UTC datetimes."""
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > _EPOCH_MILLIS_THRESHOLD else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return parse_timestamp(int(text))
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug("Unable to parse timestamp %s", value)
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def format_day_first(value: date) -> str:
    return value.strftime("%d/%m/%Y")
