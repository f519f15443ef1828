from __future__ import annotations

import asyncio
import json
import logging
from datetime import date, timedelta
from typing import Any, Optional

import pytest

from booking_flow.booking.models import BookingRequest, ContactPerson, Guest, RoomGuests, RoomRequest
from booking_flow.core.errors import (
    AmbiguousLocationSpecifier,
    BookingError,
    BusinessRejection,
    CompensationFailed,
    GuestCountMismatch,
    InvalidTransition,
    MalformedIdentifier,
    NoLocationMatch,
    PollCancelled,
    PollExhausted,
    SessionExpired,
    TransportFault,
)
from booking_flow.surfaces import GraphqlSurface, ToolSurface
from booking_flow.workflow import (
    BookingWorkflow,
    CompensationPolicy,
    ExecutionMode,
    PollController,
    WorkflowOutcome,
    WorkflowState,
)


class _ScriptedInvoker:
    """Replays canned payloads per operation; the last payload repeats."""

    def __init__(self, responses: dict[str, list[Any]]) -> None:
        self._responses = {operation: list(items) for operation, items in responses.items()}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def invoke(self, operation: str, arguments: dict[str, Any]) -> Any:
        self.calls.append((operation, arguments))
        queue = self._responses[operation]
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def operations(self) -> list[str]:
        return [operation for operation, _ in self.calls]

    def arguments(self, operation: str) -> list[dict[str, Any]]:
        return [arguments for name, arguments in self.calls if name == operation]


_IN_PROGRESS = {"hotels": [], "searchStatus": "IN_PROGRESS", "totalCount": 0}
_COMPLETED = {
    "hotels": [
        {"hotelId": 500, "name": "Cliffside Villas", "minPrice": 120.0, "starRating": 5},
        {"hotelId": "501", "name": "Ubud Garden Inn", "minPrice": 42.5, "starRating": 3},
    ],
    "searchStatus": "COMPLETED",
    "totalCount": 2,
}


def _tool_responses(**overrides: list[Any]) -> dict[str, list[Any]]:
    responses: dict[str, list[Any]] = {
        "search_location": [
            {"locations": [{"id": "bali-1", "name": "Bali, Indonesia", "type": "REGION"}]}
        ],
        "hotel_search": [{"searchKey": "key-1", "sessionId": "session-1"}],
        "get_search_results": [_IN_PROGRESS, _IN_PROGRESS, _IN_PROGRESS, _COMPLETED],
        "get_hotel_rooms": [
            {
                "packages": [
                    {"quoteId": "1111_XYZ", "isRefundable": False, "price": 38.0},
                    {"quoteId": "6789_XYZ", "isRefundable": True, "price": 42.5},
                ],
                "searchKey": "key-2",
            }
        ],
        "check_cancellation_policy": [
            {
                "policies": [
                    {
                        "packageId": "6789",
                        "isRefundable": True,
                        "fees": [
                            {"fromDate": None, "amount": 0},
                            {"fromDate": "2027-04-10T00:00:00Z", "amount": 42.5},
                        ],
                    }
                ]
            }
        ],
        "prepare_booking": [{"bookingInternalId": "PB-1", "price": 42.5, "currency": "EUR"}],
        "confirm_booking": [{"accepted": True, "bookingId": "BK-1"}],
        "cancel_booking": [{"success": True, "message": "Cancellation requested"}],
    }
    responses.update(overrides)
    return responses


def _guests(adults: int) -> RoomGuests:
    return RoomGuests(
        adults=tuple(Guest(first_name=f"Guest{i}", last_name="Doe", title="Mr") for i in range(adults))
    )


def _request(
    *,
    guests: Optional[list[RoomGuests]] = None,
    destination: Optional[str] = "bali, indonesia",
    **kwargs: Any,
) -> BookingRequest:
    start = date(2027, 4, 17)
    return BookingRequest(
        start_date=start,
        end_date=start + timedelta(days=2),
        currency="EUR",
        rooms=[RoomRequest(adults=2)],
        destination_query=destination,
        nationality="US",
        guests=guests if guests is not None else [_guests(2)],
        contact=ContactPerson(
            first_name="John", last_name="Doe", email="john.doe@example.com", phone="+1234567890"
        ),
        **kwargs,
    )


def _workflow(
    invoker: _ScriptedInvoker,
    mode: ExecutionMode = ExecutionMode.SEARCH,
    *,
    surface=None,
    max_attempts: int = 30,
    initial_delay: float = 0,
    session_ttl: Optional[float] = None,
) -> BookingWorkflow:
    surface = surface or ToolSurface()
    return BookingWorkflow(
        invoker,
        surface,
        poller=PollController(initial_delay=initial_delay, interval=0, max_attempts=max_attempts),
        mode=mode,
        price_ceiling=50.0,
        compensation=CompensationPolicy(invoker, surface, delay=0),
        session_ttl=session_ttl,
    )


@pytest.mark.asyncio
async def test_search_run_resolves_location_and_waits_for_results() -> None:
    invoker = _ScriptedInvoker(_tool_responses())

    outcome = await _workflow(invoker).run(_request())

    assert outcome.state is WorkflowState.DONE
    assert outcome.history == [
        WorkflowState.INIT,
        WorkflowState.LOCATION_RESOLVED,
        WorkflowState.SEARCH_STARTED,
        WorkflowState.SEARCH_COMPLETE,
        WorkflowState.ROOMS_LISTED,
        WorkflowState.POLICY_CHECKED,
        WorkflowState.DONE,
    ]
    assert outcome.location.location_id == "bali-1"
    assert outcome.poll_attempts == 4
    assert outcome.hotels_found == 2
    assert invoker.operations().count("get_search_results") == 4

    search_args = invoker.arguments("hotel_search")[0]
    assert search_args["regionId"] == "bali-1"
    assert search_args["startDate"] == "2027-04-17"
    assert search_args["endDate"] == "2027-04-19"
    assert search_args["rooms"] == [{"adults": 2, "childrenAges": []}]
    assert invoker.arguments("get_search_results")[0]["searchKey"] == "key-1"

    assert outcome.hotel.hotel_id.as_string() == "501"
    assert outcome.hotel_fallback is False
    assert outcome.offer.offer_id == "6789_XYZ"
    assert outcome.policy.is_refundable is True
    assert outcome.policy.free_cancellation_until() is not None
    assert "prepare_booking" not in invoker.operations()
    json.dumps(outcome.to_dict())


@pytest.mark.asyncio
async def test_fresher_search_key_is_used_by_later_steps() -> None:
    invoker = _ScriptedInvoker(_tool_responses())

    outcome = await _workflow(invoker).run(_request())

    policy_args = invoker.arguments("check_cancellation_policy")[0]
    assert policy_args["searchKey"] == "key-2"
    assert policy_args["packageIds"] == ["6789"]
    assert policy_args["hotelId"] == "501"
    assert outcome.session.search_key == "key-2"


@pytest.mark.asyncio
async def test_verify_run_confirms_once_and_cancels() -> None:
    invoker = _ScriptedInvoker(_tool_responses())

    outcome = await _workflow(invoker, ExecutionMode.VERIFY).run(_request())

    assert outcome.state is WorkflowState.CANCELLED
    assert outcome.history[-3:] == [
        WorkflowState.PREPARED,
        WorkflowState.CONFIRMED,
        WorkflowState.CANCELLED,
    ]
    assert outcome.succeeded is True
    assert invoker.operations().count("confirm_booking") == 1
    assert invoker.operations()[-1] == "cancel_booking"
    assert invoker.arguments("cancel_booking") == [{"bookingId": "BK-1", "confirmed": True}]
    assert outcome.cancellation.requested is True
    assert outcome.compensation_error is None

    prepare_args = invoker.arguments("prepare_booking")[0]
    assert prepare_args["quoteId"] == "6789_XYZ"
    assert [guest["isLeadGuest"] for guest in prepare_args["rooms"][0]["guests"]] == [True, False]


@pytest.mark.asyncio
async def test_book_run_keeps_the_booking() -> None:
    invoker = _ScriptedInvoker(_tool_responses())

    outcome = await _workflow(invoker, ExecutionMode.BOOK).run(_request())

    assert outcome.state is WorkflowState.DONE
    assert outcome.booking.booking_id == "BK-1"
    assert "cancel_booking" not in invoker.operations()


@pytest.mark.asyncio
async def test_rejected_confirmation_fails_without_cancelling() -> None:
    invoker = _ScriptedInvoker(
        _tool_responses(
            confirm_booking=[{"accepted": False, "message": "User is not b2b user"}],
        )
    )

    outcome = await _workflow(invoker, ExecutionMode.VERIFY).run(_request())

    assert outcome.state is WorkflowState.FAILED
    assert outcome.failed_from is WorkflowState.PREPARED
    assert WorkflowState.CONFIRMED not in outcome.history
    assert isinstance(outcome.error, BusinessRejection)
    assert outcome.error.message == "User is not b2b user"
    assert outcome.booking.accepted is False
    assert invoker.operations().count("confirm_booking") == 1
    assert "cancel_booking" not in invoker.operations()
    with pytest.raises(BusinessRejection):
        outcome.raise_for_failure()


@pytest.mark.asyncio
async def test_transport_fault_on_confirm_is_not_retried() -> None:
    invoker = _ScriptedInvoker(
        _tool_responses(confirm_booking=[TransportFault("confirm_booking", "timed out")])
    )

    outcome = await _workflow(invoker, ExecutionMode.VERIFY).run(_request())

    assert outcome.state is WorkflowState.FAILED
    assert isinstance(outcome.error, TransportFault)
    assert invoker.operations().count("confirm_booking") == 1
    assert "cancel_booking" not in invoker.operations()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "cancel_response",
    [
        {"success": False, "message": "Cancellation window closed"},
        TransportFault("cancel_booking", "HTTP 502", status=502),
    ],
)
async def test_failed_compensation_keeps_booking_and_alerts(
    cancel_response: Any, caplog: pytest.LogCaptureFixture
) -> None:
    invoker = _ScriptedInvoker(_tool_responses(cancel_booking=[cancel_response]))

    with caplog.at_level(logging.ERROR):
        outcome = await _workflow(invoker, ExecutionMode.VERIFY).run(_request())

    assert outcome.state is WorkflowState.CANCELLED
    assert outcome.booking.booking_id == "BK-1"
    assert outcome.booking.accepted is True
    assert isinstance(outcome.compensation_error, CompensationFailed)
    assert outcome.compensation_error.booking_id == "BK-1"
    assert "ALERT" in caplog.text


@pytest.mark.asyncio
@pytest.mark.parametrize("adults", [1, 3])
async def test_guest_count_mismatch_blocks_prepare(adults: int) -> None:
    invoker = _ScriptedInvoker(_tool_responses())

    outcome = await _workflow(invoker, ExecutionMode.BOOK).run(_request(guests=[_guests(adults)]))

    assert outcome.state is WorkflowState.FAILED
    assert outcome.failed_from is WorkflowState.POLICY_CHECKED
    assert isinstance(outcome.error, GuestCountMismatch)
    assert "prepare_booking" not in invoker.operations()
    assert "confirm_booking" not in invoker.operations()


@pytest.mark.asyncio
async def test_offer_id_without_separator_fails_before_policy_lookup() -> None:
    invoker = _ScriptedInvoker(
        _tool_responses(get_hotel_rooms=[{"packages": [{"quoteId": "6789", "isRefundable": True}]}])
    )

    outcome = await _workflow(invoker).run(_request())

    assert outcome.state is WorkflowState.FAILED
    assert outcome.failed_from is WorkflowState.ROOMS_LISTED
    assert isinstance(outcome.error, MalformedIdentifier)
    assert "check_cancellation_policy" not in invoker.operations()


@pytest.mark.asyncio
async def test_region_and_coordinates_together_are_rejected() -> None:
    invoker = _ScriptedInvoker(_tool_responses())

    outcome = await _workflow(invoker).run(
        _request(region_id="bali-1", latitude=-8.4, longitude=115.2)
    )

    assert outcome.state is WorkflowState.FAILED
    assert isinstance(outcome.error, AmbiguousLocationSpecifier)
    assert invoker.calls == []


@pytest.mark.asyncio
async def test_missing_location_is_rejected() -> None:
    invoker = _ScriptedInvoker(_tool_responses())

    outcome = await _workflow(invoker).run(_request(destination=None))

    assert outcome.state is WorkflowState.FAILED
    assert outcome.failed_from is WorkflowState.INIT
    assert isinstance(outcome.error, AmbiguousLocationSpecifier)
    assert invoker.calls == []


@pytest.mark.asyncio
async def test_coordinate_search_skips_location_lookup() -> None:
    invoker = _ScriptedInvoker(_tool_responses())

    outcome = await _workflow(invoker).run(
        _request(destination=None, latitude=-8.4, longitude=115.2, radius_km=10.0)
    )

    assert outcome.state is WorkflowState.DONE
    assert "search_location" not in invoker.operations()
    search_args = invoker.arguments("hotel_search")[0]
    assert "regionId" not in search_args
    assert (search_args["latitude"], search_args["longitude"], search_args["radius"]) == (
        -8.4,
        115.2,
        10.0,
    )


@pytest.mark.asyncio
async def test_unknown_destination_fails() -> None:
    invoker = _ScriptedInvoker(_tool_responses(search_location=[{"locations": []}]))

    outcome = await _workflow(invoker).run(_request(destination="atlantis"))

    assert outcome.state is WorkflowState.FAILED
    assert isinstance(outcome.error, NoLocationMatch)
    assert outcome.error.query == "atlantis"
    assert invoker.operations() == ["search_location"]


@pytest.mark.asyncio
async def test_search_that_never_completes_exhausts_poll_budget() -> None:
    invoker = _ScriptedInvoker(_tool_responses(get_search_results=[_IN_PROGRESS]))

    outcome = await _workflow(invoker, max_attempts=3).run(_request())

    assert outcome.state is WorkflowState.FAILED
    assert outcome.failed_from is WorkflowState.SEARCH_STARTED
    assert isinstance(outcome.error, PollExhausted)
    assert outcome.poll_attempts == 3
    assert invoker.operations().count("get_search_results") == 3


@pytest.mark.asyncio
async def test_cancel_event_stops_the_run() -> None:
    invoker = _ScriptedInvoker(_tool_responses())
    cancel_event = asyncio.Event()
    cancel_event.set()

    outcome = await _workflow(invoker).run(_request(), cancel_event=cancel_event)

    assert outcome.state is WorkflowState.FAILED
    assert isinstance(outcome.error, PollCancelled)
    assert "get_search_results" not in invoker.operations()


@pytest.mark.asyncio
async def test_expired_session_is_not_polled() -> None:
    invoker = _ScriptedInvoker(_tool_responses())

    outcome = await _workflow(invoker, initial_delay=0.1, session_ttl=0.05).run(_request())

    assert outcome.state is WorkflowState.FAILED
    assert isinstance(outcome.error, SessionExpired)
    assert "get_search_results" not in invoker.operations()


@pytest.mark.asyncio
async def test_concurrent_runs_keep_separate_sessions() -> None:
    invoker = _ScriptedInvoker(_tool_responses(get_search_results=[_COMPLETED]))
    workflow = _workflow(invoker)

    first, second = await asyncio.gather(workflow.run(_request()), workflow.run(_request()))

    assert first.state is WorkflowState.DONE
    assert second.state is WorkflowState.DONE
    assert first.session is not second.session
    assert first.poll_attempts == second.poll_attempts == 1


@pytest.mark.asyncio
async def test_graphql_dialect_converts_identifiers_and_dates() -> None:
    invoker = _ScriptedInvoker(
        {
            "locationSearch": [{"locationData": [{"id": "bali-1", "name": "Bali"}]}],
            "hotelSearch": [{"searchKey": "gql-key"}],
            "hotelSearchResults": [
                {"results": [{"externalId": "501", "price": 42.5}], "isResultCompleted": False},
                {
                    "results": [{"externalId": "501", "name": "Ubud Garden Inn", "price": 42.5}],
                    "isResultCompleted": True,
                    "totalResults": 1,
                },
            ],
            "getHotelRooms": [
                {"hotelRoomsResponse": [{"quoteId": "6789_XYZ", "refundable": True, "finalPrice": 42.5}]}
            ],
            "hotelCancellationPolicies": [
                [
                    {
                        "packageId": "6789",
                        "cancellations": [
                            {
                                "nonRefundable": False,
                                "canxFees": [
                                    {"amount": {"amt": 0}, "from": None},
                                    {"amount": {"amt": 42.5}, "from": 1807000000000},
                                ],
                            }
                        ],
                    }
                ]
            ],
        }
    )

    outcome = await _workflow(invoker, surface=GraphqlSurface()).run(_request())

    assert outcome.state is WorkflowState.DONE
    # results with hotels are not complete until the flag says so
    assert outcome.poll_attempts == 2
    search_input = invoker.arguments("hotelSearch")[0]["searchHotelsInput"]
    assert search_input["startDate"] == "17/04/2027"
    assert search_input["endDate"] == "19/04/2027"
    assert invoker.arguments("hotelSearchResults")[0]["input"]["page"] == 1
    assert invoker.arguments("getHotelRooms")[0]["input"]["hotelId"] == 501
    assert invoker.arguments("hotelCancellationPolicies")[0]["hotelId"] == "501"
    assert outcome.policy.is_refundable is True
    assert outcome.policy.free_cancellation_until().year == 2027


def test_illegal_transition_is_not_a_booking_failure() -> None:
    workflow = _workflow(_ScriptedInvoker(_tool_responses()))
    outcome = WorkflowOutcome()

    with pytest.raises(InvalidTransition) as excinfo:
        workflow._advance(outcome, WorkflowState.CONFIRMED)

    assert not isinstance(excinfo.value, BookingError)
    assert outcome.state is WorkflowState.INIT


@pytest.mark.asyncio
async def test_illegal_transition_propagates_out_of_run(monkeypatch: pytest.MonkeyPatch) -> None:
    invoker = _ScriptedInvoker(_tool_responses())
    workflow = _workflow(invoker)

    async def skip_to_confirm(outcome, request) -> None:
        workflow._advance(outcome, WorkflowState.CONFIRMED)

    monkeypatch.setattr(workflow, "_resolve_location", skip_to_confirm)

    with pytest.raises(InvalidTransition):
        await workflow.run(_request())

    assert invoker.calls == []
