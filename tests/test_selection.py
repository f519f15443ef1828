from __future__ import annotations

import pytest

from booking_flow.booking.identifiers import HotelId
from booking_flow.booking.models import HotelCandidate, RoomOffer
from booking_flow.core.errors import NoCandidatesAvailable
from booking_flow.workflow.selection import select_hotel, select_offer


def _hotel(hotel_id: str, price: float | None) -> HotelCandidate:
    return HotelCandidate(hotel_id=HotelId(hotel_id), name=f"Hotel {hotel_id}", price=price)


def test_select_hotel_keeps_order_and_applies_ceiling() -> None:
    hotels = [_hotel("1", 80.0), _hotel("2", None), _hotel("3", 45.0), _hotel("4", 30.0)]

    selection = select_hotel(hotels, price_ceiling=50.0)

    assert selection.candidate.hotel_id == HotelId("3")
    assert selection.fallback is False


def test_select_hotel_falls_back_to_first_when_nothing_is_affordable() -> None:
    hotels = [_hotel("1", 80.0), _hotel("2", 95.0)]

    selection = select_hotel(hotels, price_ceiling=50.0)

    assert selection.candidate.hotel_id == HotelId("1")
    assert selection.fallback is True


def test_select_hotel_without_ceiling_takes_first() -> None:
    selection = select_hotel([_hotel("9", None), _hotel("1", 10.0)])
    assert selection.candidate.hotel_id == HotelId("9")
    assert selection.fallback is False


def test_select_offer_prefers_first_refundable() -> None:
    offers = [
        RoomOffer(offer_id="1_A", refundable=False, price=20.0),
        RoomOffer(offer_id="2_A", refundable=True, price=30.0),
        RoomOffer(offer_id="3_A", refundable=True, price=25.0),
    ]

    selection = select_offer(offers)

    assert selection.candidate.offer_id == "2_A"
    assert selection.fallback is False


def test_select_offer_falls_back_to_first_offer() -> None:
    offers = [
        RoomOffer(offer_id="1_A", refundable=False),
        RoomOffer(offer_id="2_A", refundable=False),
    ]

    selection = select_offer(offers)

    assert selection.candidate.offer_id == "1_A"
    assert selection.fallback is True


def test_selection_from_empty_list_raises() -> None:
    with pytest.raises(NoCandidatesAvailable):
        select_hotel([], price_ceiling=50.0)
    with pytest.raises(NoCandidatesAvailable):
        select_offer([])
