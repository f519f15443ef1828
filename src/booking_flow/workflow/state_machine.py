"""Sequential booking workflow.

One ``BookingWorkflow.run`` call drives one booking attempt through::

    INIT -> LOCATION_RESOLVED -> SEARCH_STARTED -> SEARCH_COMPLETE -> ROOMS_LISTED
         -> POLICY_CHECKED -> PREPARED -> CONFIRMED -> CANCELLED | DONE

with ``FAILED`` reachable from every non-terminal state. The run owns its
``SearchSession``; nothing is shared between runs, so several runs may be awaited
concurrently against the same invoker.

Confirm is the only irreversible call and is made at most once. Nothing here retries;
the poll loop is the only place a remote operation is repeated.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Optional, Sequence, Tuple

from booking_flow.booking.models import (
    BookingRequest,
    RoomOffer,
    SearchResultsPage,
    validate_guest_counts,
)
from booking_flow.core.errors import (
    AmbiguousLocationSpecifier,
    BookingError,
    BusinessRejection,
    InvalidTransition,
    NoLocationMatch,
    PollExhausted,
    SessionExpired,
)
from booking_flow.services.invoker import RemoteInvoker
from booking_flow.surfaces.base import BookingSurface, RemoteCall

from .compensation import CompensationPolicy
from .polling import PollController
from .selection import select_hotel, select_offer
from .state import ExecutionMode, WorkflowOutcome, WorkflowState, can_transition

if TYPE_CHECKING:  # pragma: no cover
    from booking_flow.config.settings import Settings

logger = logging.getLogger(__name__)


class BookingWorkflow:
    def __init__(
        self,
        invoker: RemoteInvoker,
        surface: BookingSurface,
        *,
        poller: Optional[PollController] = None,
        mode: ExecutionMode = ExecutionMode.SEARCH,
        price_ceiling: Optional[float] = None,
        compensation: Optional[CompensationPolicy] = None,
        session_ttl: Optional[float] = None,
    ) -> None:
        self.invoker = invoker
        self.surface = surface
        self.poller = poller or PollController(label="search results")
        self.mode = mode
        self.price_ceiling = price_ceiling
        if mode.compensates and compensation is None:
            compensation = CompensationPolicy(invoker, surface)
        self.compensation = compensation
        self.session_ttl = session_ttl

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        invoker: RemoteInvoker,
        surface: BookingSurface,
    ) -> "BookingWorkflow":
        return cls(
            invoker,
            surface,
            poller=PollController(label="search results", **settings.poll_options()),
            mode=settings.execution_mode,
            price_ceiling=settings.price_ceiling,
            compensation=CompensationPolicy(
                invoker, surface, delay=settings.compensation_delay_s
            ),
            session_ttl=settings.session_ttl_s,
        )

    async def run(
        self,
        request: BookingRequest,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> WorkflowOutcome:
        outcome = WorkflowOutcome(mode=self.mode, session=request.new_session())
        logger.info("Starting booking workflow in %s mode", self.mode.value)
        try:
            await self._resolve_location(outcome, request)
            await self._start_search(outcome)
            page = await self._await_results(outcome, cancel_event)
            offers = await self._list_rooms(outcome, page)
            await self._check_policy(outcome, offers)
            if not self.mode.confirms:
                self._advance(outcome, WorkflowState.DONE)
                return outcome
            await self._prepare(outcome, request)
            await self._confirm(outcome)
            if self.mode.compensates:
                await self._compensate(outcome)
            else:
                self._advance(outcome, WorkflowState.DONE)
        except BookingError as exc:
            self._fail(outcome, exc)
        return outcome

    def _advance(self, outcome: WorkflowOutcome, target: WorkflowState) -> None:
        if not can_transition(outcome.state, target):
            raise InvalidTransition(f"Cannot move from {outcome.state.value} to {target.value}")
        logger.info("Workflow %s -> %s", outcome.state.value, target.value)
        outcome.state = target
        outcome.history.append(target)

    def _fail(self, outcome: WorkflowOutcome, exc: BookingError) -> None:
        logger.error("Workflow failed in %s: %s", outcome.state.value, exc)
        outcome.error = exc
        if outcome.state.is_terminal:
            return
        outcome.failed_from = outcome.state
        outcome.state = WorkflowState.FAILED
        outcome.history.append(WorkflowState.FAILED)

    async def _call(self, call: RemoteCall) -> Any:
        return await self.invoker.invoke(call.operation, call.arguments)

    def _ensure_session_alive(self, outcome: WorkflowOutcome) -> None:
        session = outcome.session
        if session is not None and session.is_expired(self.session_ttl):
            raise SessionExpired(
                f"Search session {session.session_id or session.search_key} "
                f"is older than {self.session_ttl}s"
            )

    async def _resolve_location(self, outcome: WorkflowOutcome, request: BookingRequest) -> None:
        session = outcome.session
        if session.has_region() or session.has_coordinates():
            logger.info("Location supplied with the request; skipping lookup")
        elif request.destination_query:
            payload = await self._call(self.surface.location_call(request.destination_query))
            locations = self.surface.parse_locations(payload)
            if not locations:
                raise NoLocationMatch(request.destination_query)
            outcome.location = locations[0]
            session.region_id = locations[0].location_id
            logger.info(
                "Resolved '%s' to %s (%s)",
                request.destination_query,
                outcome.location.name,
                session.region_id,
            )
        else:
            raise AmbiguousLocationSpecifier("No destination query, region id or coordinates given")
        self._advance(outcome, WorkflowState.LOCATION_RESOLVED)

    async def _start_search(self, outcome: WorkflowOutcome) -> None:
        session = outcome.session
        if session.has_region() == session.has_coordinates():
            raise AmbiguousLocationSpecifier(
                "Exactly one of region id or latitude/longitude must be set "
                f"(region={session.region_id!r}, lat={session.latitude!r}, lon={session.longitude!r})"
            )
        logger.info(
            "Searching %s -> %s (%s night(s), %s room(s), %s)",
            session.start_date,
            session.end_date,
            session.nights,
            len(session.room_requests),
            session.currency,
        )
        payload = await self._call(self.surface.search_call(session))
        search_key, session_id = self.surface.parse_search_started(payload)
        session.mark_started(search_key, session_id)
        logger.info("Search key %s (session %s)", search_key, session_id)
        self._advance(outcome, WorkflowState.SEARCH_STARTED)

    async def _await_results(
        self,
        outcome: WorkflowOutcome,
        cancel_event: Optional[asyncio.Event],
    ) -> SearchResultsPage:
        session = outcome.session

        async def fetch_page() -> SearchResultsPage:
            self._ensure_session_alive(outcome)
            payload = await self._call(self.surface.results_call(session))
            return self.surface.parse_results(payload)

        try:
            result = await self.poller.run(
                fetch_page,
                self.surface.is_search_complete,
                cancel_event=cancel_event,
                describe=lambda page: f"completed={page.completed} results={len(page.hotels)} total={page.total}",
            )
        except PollExhausted as exc:
            outcome.poll_attempts = exc.attempts
            raise
        outcome.poll_attempts = result.attempts
        outcome.hotels_found = len(result.response.hotels)
        logger.info(
            "Search complete after %s attempt(s): %s hotel(s)",
            result.attempts,
            outcome.hotels_found,
        )
        self._advance(outcome, WorkflowState.SEARCH_COMPLETE)
        return result.response

    async def _list_rooms(
        self, outcome: WorkflowOutcome, page: SearchResultsPage
    ) -> Tuple[RoomOffer, ...]:
        session = outcome.session
        selection = select_hotel(page.hotels, price_ceiling=self.price_ceiling)
        hotel = selection.candidate
        outcome.hotel = hotel
        outcome.hotel_fallback = selection.fallback
        logger.info(
            "Selected hotel %s (%s) at %s%s",
            hotel.name,
            hotel.hotel_id,
            hotel.price,
            " [fallback]" if selection.fallback else "",
        )

        self._ensure_session_alive(outcome)
        payload = await self._call(self.surface.rooms_call(session, hotel))
        listing = self.surface.parse_rooms(payload)
        if session.adopt_search_key(listing.search_key):
            logger.info("Adopted updated search key %s", session.search_key)
        logger.info("Found %s room offer(s) for %s", len(listing.offers), hotel.name)
        self._advance(outcome, WorkflowState.ROOMS_LISTED)
        return listing.offers

    async def _check_policy(self, outcome: WorkflowOutcome, offers: Sequence[RoomOffer]) -> None:
        session = outcome.session
        selection = select_offer(offers)
        offer = selection.candidate
        outcome.offer = offer
        outcome.offer_fallback = selection.fallback
        package_id = offer.package_id
        logger.info(
            "Selected offer %s (package %s, refundable=%s, price=%s)%s",
            offer.offer_id,
            package_id,
            offer.refundable,
            offer.price,
            " [fallback]" if selection.fallback else "",
        )

        self._ensure_session_alive(outcome)
        payload = await self._call(self.surface.policy_call(session, outcome.hotel, package_id))
        policy = self.surface.parse_policy(payload, package_id)
        outcome.policy = policy
        logger.info(
            "Package %s refundable=%s, free cancellation until %s",
            package_id,
            policy.is_refundable,
            policy.free_cancellation_until() or policy.declared_free_until,
        )
        self._advance(outcome, WorkflowState.POLICY_CHECKED)

    async def _prepare(self, outcome: WorkflowOutcome, request: BookingRequest) -> None:
        session = outcome.session
        validate_guest_counts(session.room_requests, request.guests)
        self._ensure_session_alive(outcome)
        payload = await self._call(
            self.surface.prepare_call(outcome.offer, request.guests, request.contact)
        )
        prepared = self.surface.parse_prepared(payload, outcome.offer)
        outcome.prepared = prepared
        logger.info(
            "Prepared booking %s at %s %s", prepared.prepared_id, prepared.price, prepared.currency
        )
        self._advance(outcome, WorkflowState.PREPARED)

    async def _confirm(self, outcome: WorkflowOutcome) -> None:
        prepared = outcome.prepared
        call = self.surface.confirm_call(prepared)
        logger.warning("Confirming booking %s; this charges the account", prepared.prepared_id)
        payload = await self._call(call)
        booking = self.surface.parse_confirmation(payload, prepared)
        outcome.booking = booking
        if not booking.accepted:
            raise BusinessRejection(
                call.operation, booking.failure_message or "booking was not accepted"
            )
        logger.info("Booking %s confirmed", booking.booking_id)
        self._advance(outcome, WorkflowState.CONFIRMED)

    async def _compensate(self, outcome: WorkflowOutcome) -> None:
        report = await self.compensation.compensate(outcome.booking)
        outcome.cancellation = report.result
        outcome.compensation_error = report.error
        self._advance(outcome, WorkflowState.CANCELLED)
