"""Candidate selection for hotels and room offers.

Result lists arrive already sorted by the requested key (ascending price), so both
policies keep the incoming order and only filter.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Sequence, TypeVar

from booking_flow.booking.models import HotelCandidate, RoomOffer
from booking_flow.core.errors import NoCandidatesAvailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Selection(Generic[T]):
    candidate: T
    fallback: bool = False


def _first_preferred(
    candidates: Sequence[T],
    prefer: Callable[[T], bool],
    *,
    kind: str,
) -> Selection[T]:
    if not candidates:
        raise NoCandidatesAvailable(f"No {kind} candidates available")
    for candidate in candidates:
        if prefer(candidate):
            return Selection(candidate=candidate)
    logger.warning(
        "No %s matched the preferred filter among %s candidate(s); using the first one",
        kind,
        len(candidates),
    )
    return Selection(candidate=candidates[0], fallback=True)


def select_hotel(
    hotels: Sequence[HotelCandidate],
    *,
    price_ceiling: Optional[float] = None,
) -> Selection[HotelCandidate]:
    if price_ceiling is None:
        return _first_preferred(hotels, lambda _hotel: True, kind="hotel")

    def _within_budget(hotel: HotelCandidate) -> bool:
        return hotel.price is not None and hotel.price <= price_ceiling

    return _first_preferred(hotels, _within_budget, kind="hotel")


def select_offer(offers: Sequence[RoomOffer]) -> Selection[RoomOffer]:
    return _first_preferred(offers, lambda offer: offer.refundable is True, kind="room offer")
