"""Compensating cancellation after a confirmed verification booking."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from booking_flow.booking.models import CancellationResult, ConfirmedBooking
from booking_flow.core.errors import CompensationFailed, RemoteFault
from booking_flow.services.invoker import RemoteInvoker
from booking_flow.surfaces.base import BookingSurface

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompensationReport:
    result: Optional[CancellationResult]
    error: Optional[CompensationFailed] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class CompensationPolicy:
    """Cancels a confirmed booking with ``confirmed=True``.

    Failures never undo the confirmation: they come back as ``CompensationFailed`` on
    the report and are logged at ERROR so someone can cancel by hand.
    """

    def __init__(
        self,
        invoker: RemoteInvoker,
        surface: BookingSurface,
        *,
        delay: float = 3.0,
    ) -> None:
        self.invoker = invoker
        self.surface = surface
        self.delay = delay

    async def compensate(self, booking: ConfirmedBooking) -> CompensationReport:
        if not booking.accepted:
            raise ValueError("Only accepted bookings can be compensated")
        if self.delay:
            logger.info("Waiting %.1fs before cancelling booking %s", self.delay, booking.booking_id)
            await asyncio.sleep(self.delay)

        call = self.surface.cancel_call(booking.booking_id, confirmed=True)
        logger.info("Issuing compensating cancellation for booking %s", booking.booking_id)
        try:
            payload = await self.invoker.invoke(call.operation, call.arguments)
            result = self.surface.parse_cancellation(payload, booking.booking_id)
        except RemoteFault as exc:
            failure = CompensationFailed(booking.booking_id, str(exc))
            logger.error(
                "ALERT: booking %s is still confirmed; cancellation raised %s",
                booking.booking_id,
                exc,
            )
            return CompensationReport(result=None, error=failure)

        if not result.requested:
            failure = CompensationFailed(
                booking.booking_id, result.message or "cancellation was not accepted"
            )
            logger.error(
                "ALERT: booking %s is still confirmed; cancellation declined: %s",
                booking.booking_id,
                result.message,
            )
            return CompensationReport(result=result, error=failure)

        logger.info("Booking %s cancelled", booking.booking_id)
        return CompensationReport(result=result)
