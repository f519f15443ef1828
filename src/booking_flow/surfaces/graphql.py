"""Request/response mapping for the GraphQL dialect.

Differences from the tool dialect: ``DD/MM/YYYY`` dates, 1-based pages, numeric hotel
ids for room listing, and guests nested as ``rooms[].adults[]``.
"""
from __future__ import annotations

import time
from typing import Any, Optional, Sequence

from booking_flow.booking.identifiers import normalize_hotel_id
from booking_flow.booking.models import (
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
    SearchResultsPage,
    SearchSession,
)
from booking_flow.core.errors import MalformedResponse

from .base import (
    RemoteCall,
    format_day_first,
    list_field,
    optional_float,
    parse_timestamp,
    require_field,
    require_mapping,
)

GRAPHQL_DOCUMENTS: dict[str, str] = {
    "locationSearch": """
        query LocationSearch($query: String!) {
          locationSearch(query: $query) {
            locationData
          }
        }
    """,
    "hotelSearch": """
        mutation HotelSearch($searchHotelsInput: searchHotelsInput!, $isAsyncSearch: Boolean) {
          hotelSearch(searchHotelsInput: $searchHotelsInput, isAsyncSearch: $isAsyncSearch) {
            searchKey
            sessionId
          }
        }
    """,
    "hotelSearchResults": """
        query HotelSearchResults($input: SearchResultsInput!) {
          hotelSearchResults(input: $input) {
            results {
              externalId
              name
              star
              price
              hasFreeCancellationOption
            }
            totalResults
            isResultCompleted
            hasNextPage
          }
        }
    """,
    "getHotelRooms": """
        query GetHotelRooms($input: GetRoomsInput) {
          getHotelRooms(input: $input) {
            searchKey
            hotelRoomsResponse {
              quoteId
              refundable
              finalPrice
              mealType
              roomType
              originalName
            }
          }
        }
    """,
    "hotelCancellationPolicies": """
        query HotelCancellationPolicies($searchKey: String!, $hotelId: String!, $packageIds: [String!]!) {
          hotelCancellationPolicies(searchKey: $searchKey, hotelId: $hotelId, packageIds: $packageIds) {
            packageId
            cancellations {
              nonRefundable
              boardType
              canxFees {
                amount { amt }
                from
              }
            }
          }
        }
    """,
    "hotelBookingPrepare": """
        mutation HotelBookingPrepare($bookingCreateInput: BookingCreateInput!) {
          hotelBookingPrepare(bookingCreateInput: $bookingCreateInput) {
            preparedBookingId
            fiatPrice
            currency
            payment
          }
        }
    """,
    "confirmB2bBooking": """
        mutation ConfirmB2bBooking($bookingConfirmInput: BookingConfirmInput!) {
          confirmB2bBooking(bookingConfirmInput: $bookingConfirmInput) {
            accepted
            message
          }
        }
    """,
    "cancelBookingRequest": """
        mutation CancelBookingRequest($cancelBookingInput: CancelBookingInput!) {
          cancelBookingRequest(cancelBookingInput: $cancelBookingInput) {
            isCancellationRequested
          }
        }
    """,
}


def _rooms_payload(session: SearchSession) -> list[dict[str, Any]]:
    return [
        {"adults": room.adults, "children": [{"age": age} for age in room.child_ages]}
        for room in session.room_requests
    ]


def _guest_payload(guest: Guest) -> dict[str, Any]:
    payload: dict[str, Any] = {"firstName": guest.first_name, "lastName": guest.last_name}
    if guest.title:
        payload["title"] = guest.title
    if guest.age is not None:
        payload["age"] = guest.age
    return payload


class GraphqlSurface:
    """Operation names are the GraphQL root fields in ``GRAPHQL_DOCUMENTS``."""

    name = "graphql"

    def __init__(
        self,
        *,
        page_size: int = 100,
        payment_method: str = "CREDIT_LINE",
    ) -> None:
        self.page_size = page_size
        self.payment_method = payment_method

    def location_call(self, query: str) -> RemoteCall:
        return RemoteCall("locationSearch", {"query": query})

    def parse_locations(self, payload: Any) -> list[Location]:
        body = require_mapping(payload, "locationSearch")
        locations = []
        for entry in list_field(body, "locationData", "locationSearch"):
            if not isinstance(entry, dict) or not entry.get("id"):
                continue
            locations.append(
                Location(
                    location_id=str(entry["id"]),
                    name=entry.get("name") or entry.get("query") or str(entry["id"]),
                    kind=entry.get("type"),
                )
            )
        return locations

    def search_call(self, session: SearchSession) -> RemoteCall:
        search_input: dict[str, Any] = {
            "startDate": format_day_first(session.start_date),
            "endDate": format_day_first(session.end_date),
            "currency": session.currency,
            "rooms": _rooms_payload(session),
            "uuid": f"booking-flow-{time.time_ns()}",
            "nat": session.nationality or "",
        }
        if session.region_id:
            search_input["regionId"] = session.region_id
        else:
            search_input["latitude"] = session.latitude
            search_input["longitude"] = session.longitude
            if session.radius_km is not None:
                search_input["radius"] = session.radius_km
        return RemoteCall(
            "hotelSearch", {"searchHotelsInput": search_input, "isAsyncSearch": True}
        )

    def parse_search_started(self, payload: Any) -> tuple[str, Optional[str]]:
        body = require_mapping(payload, "hotelSearch")
        search_key = str(require_field(body, "searchKey", "hotelSearch"))
        session_id = body.get("sessionId")
        return search_key, str(session_id) if session_id else None

    def results_call(self, session: SearchSession) -> RemoteCall:
        return RemoteCall(
            "hotelSearchResults",
            {
                "input": {
                    "searchKey": session.search_key,
                    "page": 1,
                    "size": self.page_size,
                    "filters": {},
                    "sortParams": ["price", "asc"],
                    "singleHotelId": 0,
                }
            },
        )

    def parse_results(self, payload: Any) -> SearchResultsPage:
        body = require_mapping(payload, "hotelSearchResults")
        hotels = []
        for entry in list_field(body, "results", "hotelSearchResults"):
            if not isinstance(entry, dict) or entry.get("externalId") in (None, ""):
                continue
            hotels.append(
                HotelCandidate(
                    hotel_id=normalize_hotel_id(entry["externalId"]),
                    name=entry.get("name") or "",
                    price=optional_float(entry.get("price")),
                    star_rating=optional_float(entry.get("star")),
                    refundable=entry.get("hasFreeCancellationOption"),
                )
            )
        total = body.get("totalResults")
        return SearchResultsPage(
            hotels=tuple(hotels),
            completed=body.get("isResultCompleted") is True,
            total=int(total) if isinstance(total, int) else None,
        )

    def is_search_complete(self, page: SearchResultsPage) -> bool:
        return page.completed

    def rooms_call(self, session: SearchSession, hotel: HotelCandidate) -> RemoteCall:
        return RemoteCall(
            "getHotelRooms",
            {
                "input": {
                    "searchKey": session.search_key,
                    "hotelId": hotel.hotel_id.as_number(),
                    "startDate": format_day_first(session.start_date),
                    "endDate": format_day_first(session.end_date),
                    "regionId": session.region_id,
                    "rooms": _rooms_payload(session),
                    "currency": session.currency,
                    "nat": session.nationality,
                }
            },
        )

    def parse_rooms(self, payload: Any) -> RoomListing:
        body = require_mapping(payload, "getHotelRooms")
        offers = []
        for entry in list_field(body, "hotelRoomsResponse", "getHotelRooms"):
            if not isinstance(entry, dict) or not entry.get("quoteId"):
                continue
            offers.append(
                RoomOffer(
                    offer_id=str(entry["quoteId"]),
                    refundable=entry.get("refundable") is True,
                    price=optional_float(entry.get("finalPrice")),
                    meal_type=entry.get("mealType"),
                    room_name=entry.get("roomType") or entry.get("originalName"),
                )
            )
        search_key = body.get("searchKey")
        return RoomListing(offers=tuple(offers), search_key=str(search_key) if search_key else None)

    def policy_call(
        self, session: SearchSession, hotel: HotelCandidate, package_id: str
    ) -> RemoteCall:
        return RemoteCall(
            "hotelCancellationPolicies",
            {
                "searchKey": session.search_key,
                "hotelId": hotel.hotel_id.as_string(),
                "packageIds": [package_id],
            },
        )

    def parse_policy(self, payload: Any, package_id: str) -> CancellationPolicy:
        if not isinstance(payload, list):
            raise MalformedResponse(
                "hotelCancellationPolicies", f"expected a list, got {type(payload).__name__}"
            )
        policy = next(
            (
                entry
                for entry in payload
                if isinstance(entry, dict) and entry.get("packageId") == package_id
            ),
            None,
        )
        if policy is None:
            raise MalformedResponse(
                "hotelCancellationPolicies", f"no policy returned for package {package_id}"
            )
        cancellations = list_field(policy, "cancellations", "hotelCancellationPolicies")
        cancellation = cancellations[0] if cancellations and isinstance(cancellations[0], dict) else {}
        fees = []
        for fee in cancellation.get("canxFees") or []:
            if not isinstance(fee, dict):
                continue
            amount = fee.get("amount") or {}
            fees.append(
                CancellationFee(
                    from_timestamp=parse_timestamp(fee.get("from")),
                    amount=optional_float(amount.get("amt") if isinstance(amount, dict) else amount)
                    or 0.0,
                )
            )
        return CancellationPolicy.build(
            package_id=package_id,
            is_refundable=cancellation.get("nonRefundable") is False,
            fees=fees,
        )

    def prepare_call(
        self,
        offer: RoomOffer,
        guests: Sequence[RoomGuests],
        contact: Optional[ContactPerson],
    ) -> RemoteCall:
        booking_input: dict[str, Any] = {
            "quoteId": offer.offer_id,
            "rooms": [
                {
                    "adults": [_guest_payload(guest) for guest in room.adults],
                    "children": [_guest_payload(child) for child in room.children],
                }
                for room in guests
            ],
        }
        if contact is not None:
            booking_input["contactPerson"] = {
                "title": contact.title,
                "firstName": contact.first_name,
                "lastName": contact.last_name,
                "email": contact.email,
                "phone": contact.phone,
            }
        return RemoteCall("hotelBookingPrepare", {"bookingCreateInput": booking_input})

    def parse_prepared(self, payload: Any, offer: RoomOffer) -> PreparedBooking:
        body = require_mapping(payload, "hotelBookingPrepare")
        return PreparedBooking(
            prepared_id=str(require_field(body, "preparedBookingId", "hotelBookingPrepare")),
            offer_id=offer.offer_id,
            price=optional_float(body.get("fiatPrice")),
            currency=body.get("currency"),
        )

    def confirm_call(self, prepared: PreparedBooking) -> RemoteCall:
        return RemoteCall(
            "confirmB2bBooking",
            {
                "bookingConfirmInput": {
                    "bookingInternalId": prepared.prepared_id,
                    "quoteId": prepared.offer_id,
                    "paymentMethod": self.payment_method,
                }
            },
        )

    def parse_confirmation(self, payload: Any, prepared: PreparedBooking) -> ConfirmedBooking:
        body = require_mapping(payload, "confirmB2bBooking")
        accepted = body.get("accepted")
        if not isinstance(accepted, bool):
            raise MalformedResponse("confirmB2bBooking", "response missing boolean 'accepted'")
        return ConfirmedBooking(
            booking_id=prepared.prepared_id,
            accepted=accepted,
            failure_message=None if accepted else body.get("message"),
        )

    def cancel_call(self, booking_id: str, *, confirmed: bool) -> RemoteCall:
        return RemoteCall(
            "cancelBookingRequest",
            {"cancelBookingInput": {"bookingId": booking_id, "confirmed": confirmed}},
        )

    def parse_cancellation(self, payload: Any, booking_id: str) -> CancellationResult:
        body = require_mapping(payload, "cancelBookingRequest")
        return CancellationResult(
            booking_id=booking_id,
            requested=body.get("isCancellationRequested") is True,
        )
