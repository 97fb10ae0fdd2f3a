"""Lifecycle wrapper around the local broadcaster.

Responsibility:
- One active broadcast per controller at a time.
- `stop()` + `release()` exactly once when a `guard()` scope exits, whatever
  the exit path; cleanup failures are reported but never replace the primary
  outcome.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from core.domain.models import BroadcastConfig
from core.errors import BroadcastError
from core.interfaces.broadcaster import Broadcaster

logger = logging.getLogger(__name__)


class BroadcastController:
    def __init__(self, broadcaster: Broadcaster) -> None:
        self._broadcaster = broadcaster
        self._active = False
        self._guarded = False

    @property
    def active(self) -> bool:
        return self._active

    async def start(self, config: BroadcastConfig) -> None:
        if self._active:
            raise BroadcastError("a broadcast is already active; stop and release it first")
        try:
            await self._broadcaster.start(config)
        except (OSError, RuntimeError, ValueError) as exc:
            raise BroadcastError(f"could not start local broadcast: {exc}") from exc
        self._active = True
        logger.info("Broadcasting provisioning data for SSID %r", config.ssid)

    async def stop(self) -> None:
        await self._broadcaster.stop()

    def release(self) -> None:
        """Free the broadcaster's socket. Safe to call any number of times."""

        self._active = False
        self._broadcaster.release()

    @asynccontextmanager
    async def guard(self) -> AsyncIterator["BroadcastController"]:
        """Scope for one provisioning attempt.

        Example:
            async with controller.guard() as broadcast:
                token = await issue_token()
                await broadcast.start(config)
                await wait_for_devices()
        """

        if self._guarded or self._active:
            raise BroadcastError("a broadcast scope is already open")
        self._guarded = True
        try:
            yield self
        except BaseException as exc:
            await self._shutdown(primary=exc)
            raise
        else:
            await self._shutdown(primary=None)
        finally:
            self._guarded = False

    async def _shutdown(self, *, primary: BaseException | None) -> None:
        failures: list[str] = []
        try:
            await self.stop()
        except Exception as exc:
            failures.append(f"stop failed: {exc!r}")
            logger.warning("Stopping the broadcast failed: %r", exc)
        try:
            self.release()
        except Exception as exc:
            failures.append(f"release failed: {exc!r}")
            logger.warning("Releasing the broadcast socket failed: %r", exc)

        if failures and primary is not None:
            for failure in failures:
                primary.add_note(f"broadcast cleanup: {failure}")
        logger.debug("Broadcast stopped and released")
