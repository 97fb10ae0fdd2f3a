"""Device-arrival polling.

The loop is an explicit state machine:

    polling --(query failed)------------------> failed     (PollError)
    polling --(matched >= target)-------------> satisfied  (device list)
    polling --(now >= deadline)---------------> timed_out  (ArrivalTimeoutError)
    polling --(cancel event set)--------------> cancelled  (ProvisioningCancelledError)
    polling --(otherwise, after fixed delay)--> polling

Satisfaction is evaluated before the deadline on the same snapshot, so a
device reflected in the last successful query is accepted even at the
boundary.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from core.domain.models import ArrivalState, DeviceRecord, PollResult
from core.errors import ArrivalTimeoutError, CloudError, PollError, ProvisioningCancelledError
from core.interfaces.cloud import CloudClient

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 1.0


def next_state(*, result: PollResult, target: int, now: float, deadline: float) -> ArrivalState:
    """Transition taken after one successful query."""

    if result.matched_count >= target:
        return ArrivalState.SATISFIED
    if now >= deadline:
        return ArrivalState.TIMED_OUT
    return ArrivalState.POLLING


class ArrivalPoller:
    """Polls the control-plane until enough devices report in or time runs out."""

    def __init__(
        self,
        cloud: CloudClient,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        self._cloud = cloud
        self._poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep
        self.state = ArrivalState.POLLING
        self.polls = 0

    async def run(
        self,
        token: str,
        *,
        target: int = 1,
        timeout_seconds: float,
        cancel_event: asyncio.Event | None = None,
    ) -> list[DeviceRecord]:
        self.state = ArrivalState.POLLING
        self.polls = 0
        deadline = self._clock() + timeout_seconds
        result = PollResult()

        while self.state is ArrivalState.POLLING:
            self.polls += 1
            try:
                result = await self._cloud.poll_device_status(token)
            except CloudError as exc:
                self.state = ArrivalState.FAILED
                raise PollError(f"device status query #{self.polls} failed: {exc}") from exc

            self.state = next_state(result=result, target=target, now=self._clock(), deadline=deadline)
            logger.debug(
                "Poll #%d: %d/%d matched (%d seen) -> %s",
                self.polls,
                result.matched_count,
                target,
                result.total_seen,
                self.state.value,
            )
            if self.state is ArrivalState.POLLING:
                await self._wait(cancel_event)
                if cancel_event is not None and cancel_event.is_set():
                    self.state = ArrivalState.CANCELLED

        if self.state is ArrivalState.SATISFIED:
            return list(result.matched_devices)
        if self.state is ArrivalState.CANCELLED:
            raise ProvisioningCancelledError(
                f"link cancelled after {self.polls} polls ({result.matched_count}/{target} detected)"
            )
        raise ArrivalTimeoutError(
            detected=result.matched_count,
            target=target,
            timeout_seconds=timeout_seconds,
        )

    async def _wait(self, cancel_event: asyncio.Event | None) -> None:
        if cancel_event is None:
            await self._sleep(self._poll_interval)
            return
        # The injected sleep still paces the loop; the event only cuts it short.
        sleeper = asyncio.ensure_future(self._sleep(self._poll_interval))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (sleeper, waiter):
                pending.cancel()
            await asyncio.gather(sleeper, waiter, return_exceptions=True)
