"""Generic poll-until-ready loop for asynchronous remote operations."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from booking_flow.core.errors import PollCancelled, PollExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class PollResult(Generic[T]):
    response: T
    attempts: int


class PollController:
    """Invoke ``operation`` until ``is_complete`` accepts a response.

    The initial delay is applied once before the first call. Between attempts the
    controller waits ``interval`` seconds; waits end early when ``cancel_event`` is set.
    """

    def __init__(
        self,
        *,
        initial_delay: float = 2.0,
        interval: float = 1.0,
        max_attempts: int = 30,
        timeout: Optional[float] = None,
        label: str = "poll",
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if initial_delay < 0 or interval < 0:
            raise ValueError("poll delays must not be negative")
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive")
        self.initial_delay = initial_delay
        self.interval = interval
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.label = label

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        is_complete: Callable[[T], bool],
        *,
        cancel_event: Optional[asyncio.Event] = None,
        describe: Optional[Callable[[T], str]] = None,
    ) -> PollResult[T]:
        deadline = time.monotonic() + self.timeout if self.timeout is not None else None
        attempts = 0

        if self.initial_delay:
            logger.info("Waiting %.1fs before first %s attempt", self.initial_delay, self.label)
            await self._wait(self.initial_delay, attempts, deadline, cancel_event)

        while attempts < self.max_attempts:
            if cancel_event is not None and cancel_event.is_set():
                raise PollCancelled(attempts)
            if deadline is not None and time.monotonic() >= deadline:
                raise PollExhausted(attempts, f"deadline of {self.timeout}s reached")

            response = await operation()
            attempts += 1
            summary = describe(response) if describe else ""
            logger.info("%s attempt %s/%s %s", self.label, attempts, self.max_attempts, summary)

            if is_complete(response):
                return PollResult(response=response, attempts=attempts)
            if attempts < self.max_attempts:
                await self._wait(self.interval, attempts, deadline, cancel_event)

        raise PollExhausted(attempts)

    async def _wait(
        self,
        seconds: float,
        attempts: int,
        deadline: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise PollExhausted(attempts, f"deadline of {self.timeout}s reached")
            seconds = min(seconds, remaining)
        if cancel_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise PollCancelled(attempts)
