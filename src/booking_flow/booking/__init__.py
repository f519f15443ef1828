"""Booking domain records and identifier helpers."""

from .identifiers import HotelId, derive_package_id, normalize_hotel_id
from .models import (
    BookingRequest,
    CancellationFee,
    CancellationPolicy,
    CancellationResult,
    ConfirmedBooking,
    ContactPerson,
    Guest,
    HotelCandidate,
    Location,
    PreparedBooking,
    RoomGuests,
    RoomListing,
    RoomOffer,
    RoomRequest,
    SearchResultsPage,
    SearchSession,
    validate_guest_counts,
)

__all__ = [
    "BookingRequest",
    "CancellationFee",
    "CancellationPolicy",
    "CancellationResult",
    "ConfirmedBooking",
    "ContactPerson",
    "Guest",
    "HotelCandidate",
    "HotelId",
    "Location",
    "PreparedBooking",
    "RoomGuests",
    "RoomListing",
    "RoomOffer",
    "RoomRequest",
    "SearchResultsPage",
    "SearchSession",
    "derive_package_id",
    "normalize_hotel_id",
    "validate_guest_counts",
]
