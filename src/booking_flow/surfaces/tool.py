"""Request/response mapping for the tool-endpoint dialect (``/tools/<name>``)."""
from __future__ import annotations

from typing import Any, Optional, Sequence

from booking_flow.booking.identifiers import normalize_hotel_id
from booking_flow.booking.models import (
    CancellationFee,
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

from .base import (
    RemoteCall,
    list_field,
    optional_float,
    parse_timestamp,
    require_field,
    require_mapping,
)

COMPLETED_STATUS = "COMPLETED"


def _rooms_payload(session: SearchSession) -> list[dict[str, Any]]:
    return [
        {"adults": room.adults, "childrenAges": list(room.child_ages)}
        for room in session.room_requests
    ]


def _contact_payload(contact: ContactPerson) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "firstName": contact.first_name,
        "lastName": contact.last_name,
        "email": contact.email,
        "phone": contact.phone,
    }
    if contact.title:
        payload["title"] = contact.title
    return payload


class ToolSurface:
    """ISO dates, 0-indexed pages and string hotel ids."""

    name = "tool"

    def __init__(
        self,
        *,
        page_size: int = 5000,
        sort_by: str = "PRICE_ASC",
        payment_method: str = "CREDIT_LINE",
    ) -> None:
        self.page_size = page_size
        self.sort_by = sort_by
        self.payment_method = payment_method

    def location_call(self, query: str) -> RemoteCall:
        return RemoteCall("search_location", {"query": query})

    def parse_locations(self, payload: Any) -> list[Location]:
        body = require_mapping(payload, "search_location")
        locations = []
        for entry in list_field(body, "locations", "search_location"):
            if not isinstance(entry, dict) or not entry.get("id"):
                continue
            locations.append(
                Location(
                    location_id=str(entry["id"]),
                    name=entry.get("name") or str(entry["id"]),
                    kind=entry.get("type"),
                )
            )
        return locations

    def search_call(self, session: SearchSession) -> RemoteCall:
        arguments: dict[str, Any] = {
            "startDate": session.start_date.isoformat(),
            "endDate": session.end_date.isoformat(),
            "currency": session.currency,
            "rooms": _rooms_payload(session),
        }
        if session.region_id:
            arguments["regionId"] = session.region_id
        else:
            arguments["latitude"] = session.latitude
            arguments["longitude"] = session.longitude
            if session.radius_km is not None:
                arguments["radius"] = session.radius_km
        if session.nationality:
            arguments["nationality"] = session.nationality
        return RemoteCall("hotel_search", arguments)

    def parse_search_started(self, payload: Any) -> tuple[str, Optional[str]]:
        body = require_mapping(payload, "hotel_search")
        search_key = str(require_field(body, "searchKey", "hotel_search"))
        session_id = body.get("sessionId")
        return search_key, str(session_id) if session_id else None

    def results_call(self, session: SearchSession) -> RemoteCall:
        return RemoteCall(
            "get_search_results",
            {
                "searchKey": session.search_key,
                "page": 0,
                "size": self.page_size,
                "sortBy": self.sort_by,
                "filters": {},
            },
        )

    def parse_results(self, payload: Any) -> SearchResultsPage:
        body = require_mapping(payload, "get_search_results")
        hotels = []
        for entry in list_field(body, "hotels", "get_search_results"):
            if not isinstance(entry, dict) or entry.get("hotelId") in (None, ""):
                continue
            hotels.append(
                HotelCandidate(
                    hotel_id=normalize_hotel_id(entry["hotelId"]),
                    name=entry.get("name") or "",
                    price=optional_float(entry.get("minPrice")),
                    star_rating=optional_float(entry.get("starRating")),
                    refundable=entry.get("hasFreeCancellation"),
                )
            )
        total = body.get("totalCount")
        return SearchResultsPage(
            hotels=tuple(hotels),
            completed=body.get("searchStatus") == COMPLETED_STATUS,
            total=int(total) if isinstance(total, int) else None,
        )

    def is_search_complete(self, page: SearchResultsPage) -> bool:
        return page.completed or bool(page.hotels)

    def rooms_call(self, session: SearchSession, hotel: HotelCandidate) -> RemoteCall:
        arguments: dict[str, Any] = {
            "hotelId": hotel.hotel_id.as_string(),
            "searchKey": session.search_key,
            "startDate": session.start_date.isoformat(),
            "endDate": session.end_date.isoformat(),
            "rooms": _rooms_payload(session),
            "currency": session.currency,
        }
        if session.region_id:
            arguments["regionId"] = session.region_id
        if session.nationality:
            arguments["nationality"] = session.nationality
        return RemoteCall("get_hotel_rooms", arguments)

    def parse_rooms(self, payload: Any) -> RoomListing:
        body = require_mapping(payload, "get_hotel_rooms")
        offers = []
        for entry in list_field(body, "packages", "get_hotel_rooms"):
            if not isinstance(entry, dict) or not entry.get("quoteId"):
                continue
            offers.append(
                RoomOffer(
                    offer_id=str(entry["quoteId"]),
                    refundable=entry.get("isRefundable") is True,
                    price=optional_float(entry.get("price")),
                    meal_type=entry.get("mealType"),
                    room_name=entry.get("roomName"),
                )
            )
        search_key = body.get("searchKey")
        return RoomListing(offers=tuple(offers), search_key=str(search_key) if search_key else None)

    def policy_call(
        self, session: SearchSession, hotel: HotelCandidate, package_id: str
    ) -> RemoteCall:
        return RemoteCall(
            "check_cancellation_policy",
            {
                "searchKey": session.search_key,
                "hotelId": hotel.hotel_id.as_string(),
                "packageIds": [package_id],
            },
        )

    def parse_policy(self, payload: Any, package_id: str) -> CancellationPolicy:
        body = require_mapping(payload, "check_cancellation_policy")
        policies = [
            entry
            for entry in list_field(body, "policies", "check_cancellation_policy")
            if isinstance(entry, dict)
        ]
        policy = next((entry for entry in policies if entry.get("packageId") == package_id), None)
        if policy is None:
            raise MalformedResponse(
                "check_cancellation_policy", f"no policy returned for package {package_id}"
            )
        fees = [
            CancellationFee(
                from_timestamp=parse_timestamp(fee.get("fromDate")),
                amount=optional_float(fee.get("amount")) or 0.0,
            )
            for fee in policy.get("fees") or []
            if isinstance(fee, dict)
        ]
        return CancellationPolicy.build(
            package_id=package_id,
            is_refundable=policy.get("isRefundable") is True,
            fees=fees,
            declared_free_until=policy.get("freeCancellationUntil"),
        )

    def prepare_call(
        self,
        offer: RoomOffer,
        guests: Sequence[RoomGuests],
        contact: Optional[ContactPerson],
    ) -> RemoteCall:
        rooms = []
        for index, room in enumerate(guests):
            entries: list[dict[str, Any]] = [
                {
                    "firstName": guest.first_name,
                    "lastName": guest.last_name,
                    "isLeadGuest": position == 0,
                }
                for position, guest in enumerate(room.adults)
            ]
            entries.extend(
                {
                    "firstName": child.first_name,
                    "lastName": child.last_name,
                    "isLeadGuest": False,
                    "age": child.age,
                }
                for child in room.children
            )
            rooms.append({"roomIndex": index, "guests": entries})
        arguments: dict[str, Any] = {"quoteId": offer.offer_id, "rooms": rooms}
        if contact is not None:
            arguments["contactPerson"] = _contact_payload(contact)
        return RemoteCall("prepare_booking", arguments)

    def parse_prepared(self, payload: Any, offer: RoomOffer) -> PreparedBooking:
        body = require_mapping(payload, "prepare_booking")
        return PreparedBooking(
            prepared_id=str(require_field(body, "bookingInternalId", "prepare_booking")),
            offer_id=offer.offer_id,
            price=optional_float(body.get("price")),
            currency=body.get("currency"),
        )

    def confirm_call(self, prepared: PreparedBooking) -> RemoteCall:
        return RemoteCall(
            "confirm_booking",
            {
                "bookingInternalId": prepared.prepared_id,
                "quoteId": prepared.offer_id,
                "paymentMethod": self.payment_method,
            },
        )

    def parse_confirmation(self, payload: Any, prepared: PreparedBooking) -> ConfirmedBooking:
        body = require_mapping(payload, "confirm_booking")
        accepted = body.get("accepted")
        if not isinstance(accepted, bool):
            raise MalformedResponse("confirm_booking", "response missing boolean 'accepted'")
        return ConfirmedBooking(
            booking_id=str(body.get("bookingId") or prepared.prepared_id),
            accepted=accepted,
            failure_message=None if accepted else body.get("message"),
        )

    def cancel_call(self, booking_id: str, *, confirmed: bool) -> RemoteCall:
        return RemoteCall("cancel_booking", {"bookingId": booking_id, "confirmed": confirmed})

    def parse_cancellation(self, payload: Any, booking_id: str) -> CancellationResult:
        body = require_mapping(payload, "cancel_booking")
        return CancellationResult(
            booking_id=booking_id,
            requested=body.get("success") is True,
            message=body.get("message"),
        )
