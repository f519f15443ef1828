"""Dataclasses for the records threaded through a booking run."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple

from booking_flow.core.errors import GuestCountMismatch, MalformedResponse

from .identifiers import HotelId, derive_package_id


@dataclass(frozen=True, slots=True)
class Location:
    location_id: str
    name: str
    kind: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {"location_id": self.location_id, "name": self.name, "kind": self.kind}


@dataclass(frozen=True, slots=True)
class RoomRequest:
    """Occupancy of one room as declared when the search is started."""

    adults: int
    child_ages: Tuple[int, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {"adults": self.adults, "child_ages": list(self.child_ages)}


@dataclass(frozen=True, slots=True)
class Guest:
    first_name: str
    last_name: str
    title: Optional[str] = None
    age: Optional[int] = None


@dataclass(frozen=True, slots=True)
class RoomGuests:
    """Guest records supplied for one room at prepare time."""

    adults: Tuple[Guest, ...]
    children: Tuple[Guest, ...] = ()


@dataclass(frozen=True, slots=True)
class ContactPerson:
    first_name: str
    last_name: str
    email: str
    phone: str
    title: Optional[str] = None


def validate_guest_counts(
    room_requests: Sequence[RoomRequest],
    room_guests: Sequence[RoomGuests],
) -> None:
    """Check that guests supplied at prepare time match the searched occupancy."""
    if len(room_requests) != len(room_guests):
        raise GuestCountMismatch(
            f"Search declared {len(room_requests)} room(s) but guests were supplied for {len(room_guests)}"
        )
    for index, (request, guests) in enumerate(zip(room_requests, room_guests)):
        if request.adults != len(guests.adults):
            raise GuestCountMismatch(
                f"Room {index}: searched for {request.adults} adult(s) "
                f"but {len(guests.adults)} adult guest record(s) supplied"
            )
        if len(request.child_ages) != len(guests.children):
            raise GuestCountMismatch(
                f"Room {index}: searched with {len(request.child_ages)} child age(s) "
                f"but {len(guests.children)} child guest record(s) supplied"
            )


@dataclass(slots=True)
class SearchSession:
    """Mutable search state owned by a single workflow run.

    ``search_key`` is replaced whenever a step hands back a fresher one.
    """

    start_date: date
    end_date: date
    currency: str
    room_requests: List[RoomRequest]
    nationality: Optional[str] = None
    region_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_km: Optional[float] = None
    search_key: Optional[str] = None
    session_id: Optional[str] = None
    started_at: Optional[float] = None

    @property
    def nights(self) -> int:
        return (self.end_date - self.start_date).days

    def has_region(self) -> bool:
        return bool(self.region_id)

    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def mark_started(self, search_key: str, session_id: Optional[str]) -> None:
        self.search_key = search_key
        self.session_id = session_id
        self.started_at = time.monotonic()

    def adopt_search_key(self, search_key: Optional[str]) -> bool:
        if not search_key or search_key == self.search_key:
            return False
        self.search_key = search_key
        return True

    def is_expired(self, ttl_seconds: Optional[float]) -> bool:
        if ttl_seconds is None or self.started_at is None:
            return False
        return time.monotonic() - self.started_at > ttl_seconds

    def to_dict(self) -> dict[str, object]:
        return {
            "region_id": self.region_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "radius_km": self.radius_km,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "nights": self.nights,
            "currency": self.currency,
            "rooms": [room.to_dict() for room in self.room_requests],
            "nationality": self.nationality,
            "search_key": self.search_key,
            "session_id": self.session_id,
        }


@dataclass(frozen=True, slots=True)
class HotelCandidate:
    hotel_id: HotelId
    name: str
    price: Optional[float] = None
    star_rating: Optional[float] = None
    refundable: Optional[bool] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "hotel_id": self.hotel_id.as_string(),
            "name": self.name,
            "price": self.price,
            "star_rating": self.star_rating,
            "refundable": self.refundable,
        }


@dataclass(frozen=True, slots=True)
class SearchResultsPage:
    """One polled snapshot of an asynchronous search."""

    hotels: Tuple[HotelCandidate, ...]
    completed: bool
    total: Optional[int] = None


@dataclass(frozen=True, slots=True)
class RoomOffer:
    offer_id: str
    refundable: bool
    price: Optional[float] = None
    meal_type: Optional[str] = None
    room_name: Optional[str] = None

    @property
    def package_id(self) -> str:
        return derive_package_id(self.offer_id)

    def to_dict(self) -> dict[str, object]:
        return {
            "offer_id": self.offer_id,
            "refundable": self.refundable,
            "price": self.price,
            "meal_type": self.meal_type,
            "room_name": self.room_name,
        }


@dataclass(frozen=True, slots=True)
class RoomListing:
    offers: Tuple[RoomOffer, ...]
    search_key: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CancellationFee:
    from_timestamp: Optional[datetime]
    amount: float


@dataclass(frozen=True, slots=True)
class CancellationPolicy:
    """Refund terms for one package.

    ``fee_schedule`` is ordered by ``from_timestamp`` with non-decreasing amounts.
    """

    package_id: str
    is_refundable: bool
    fee_schedule: Tuple[CancellationFee, ...] = ()
    declared_free_until: Optional[str] = None

    @classmethod
    def build(
        cls,
        *,
        package_id: str,
        is_refundable: bool,
        fees: Sequence[CancellationFee],
        declared_free_until: Optional[str] = None,
    ) -> "CancellationPolicy":
        ordered = sorted(
            fees,
            key=lambda fee: (fee.from_timestamp is not None, fee.from_timestamp or datetime.min),
        )
        for previous, current in zip(ordered, ordered[1:]):
            if current.amount < previous.amount:
                raise MalformedResponse(
                    "cancellation_policy",
                    f"fee schedule for package {package_id} decreases from "
                    f"{previous.amount} to {current.amount}",
                )
        return cls(
            package_id=package_id,
            is_refundable=is_refundable,
            fee_schedule=tuple(ordered),
            declared_free_until=declared_free_until,
        )

    def free_cancellation_until(self) -> Optional[datetime]:
        """Start of the first charged entry following a zero-amount entry."""
        seen_free = False
        for fee in self.fee_schedule:
            if fee.amount == 0:
                seen_free = True
            elif seen_free:
                return fee.from_timestamp
        return None

    def has_free_cancellation(self) -> bool:
        return any(fee.amount == 0 for fee in self.fee_schedule) or bool(self.declared_free_until)

    def no_refund_ceiling(self) -> Optional[CancellationFee]:
        return self.fee_schedule[-1] if self.fee_schedule else None

    def to_dict(self) -> dict[str, object]:
        free_until = self.free_cancellation_until()
        ceiling = self.no_refund_ceiling()
        return {
            "package_id": self.package_id,
            "is_refundable": self.is_refundable,
            "free_cancellation_until": (
                free_until.isoformat() if free_until else self.declared_free_until
            ),
            "no_refund_amount": ceiling.amount if ceiling else None,
            "fees": [
                {
                    "from": fee.from_timestamp.isoformat() if fee.from_timestamp else None,
                    "amount": fee.amount,
                }
                for fee in self.fee_schedule
            ],
        }


@dataclass(frozen=True, slots=True)
class PreparedBooking:
    prepared_id: str
    offer_id: str
    price: Optional[float] = None
    currency: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "prepared_id": self.prepared_id,
            "offer_id": self.offer_id,
            "price": self.price,
            "currency": self.currency,
        }


@dataclass(frozen=True, slots=True)
class ConfirmedBooking:
    booking_id: str
    accepted: bool
    failure_message: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "booking_id": self.booking_id,
            "accepted": self.accepted,
            "failure_message": self.failure_message,
        }


@dataclass(frozen=True, slots=True)
class CancellationResult:
    booking_id: str
    requested: bool
    message: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {"booking_id": self.booking_id, "requested": self.requested, "message": self.message}


@dataclass(slots=True)
class BookingRequest:
    """Everything a run needs that is not configuration."""

    start_date: date
    end_date: date
    currency: str
    rooms: List[RoomRequest]
    destination_query: Optional[str] = None
    region_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_km: Optional[float] = None
    nationality: Optional[str] = None
    guests: List[RoomGuests] = field(default_factory=list)
    contact: Optional[ContactPerson] = None

    def new_session(self) -> SearchSession:
        return SearchSession(
            start_date=self.start_date,
            end_date=self.end_date,
            currency=self.currency,
            room_requests=list(self.rooms),
            nationality=self.nationality,
            region_id=self.region_id,
            latitude=self.latitude,
            longitude=self.longitude,
            radius_km=self.radius_km,
        )
