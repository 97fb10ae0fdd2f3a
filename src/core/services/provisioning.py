"""Provisioning orchestration.

This module composes the session, token, broadcast and polling services into
the three public operations of devlink. It keeps side effects (printing,
progress) out: entry points such as the CLI call into it and render results
themselves.

Invariant: once `link_device` passes input validation, the broadcaster is
stopped and released before it returns or raises, whatever happened.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Sequence

from core.domain.models import BroadcastConfig, Credentials, DevicePage, DeviceRecord, SessionRef
from core.errors import CloudError, ProvisioningBusyError, QueryError, ValidationError
from core.interfaces.broadcaster import Broadcaster
from core.interfaces.cloud import CloudClient
from core.services.broadcast import BroadcastController
from core.services.poller import DEFAULT_POLL_INTERVAL_SECONDS, ArrivalPoller
from core.services.session import SessionManager
from core.services.tokens import TokenIssuer

logger = logging.getLogger(__name__)

DEFAULT_LINK_TIMEOUT_SECONDS = 100.0


class ProvisioningOrchestrator:
    """Links headless devices to WiFi and to the cloud account.

    Example:
        async with ProvisioningOrchestrator(credentials, cloud=cloud, broadcaster=udp) as link:
            await link.init()
            devices = await link.link_device("home-wifi", "secret")
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        cloud: CloudClient,
        broadcaster: Broadcaster,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        default_timeout_seconds: float = DEFAULT_LINK_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._credentials = credentials
        self._cloud = cloud
        self._sessions = SessionManager(cloud)
        self._tokens = TokenIssuer(cloud)
        self._broadcast = BroadcastController(broadcaster)
        self._poller = ArrivalPoller(cloud, poll_interval=poll_interval, clock=clock, sleep=sleep)
        self._default_timeout = default_timeout_seconds
        self._link_lock = asyncio.Lock()

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    @property
    def session(self) -> SessionRef | None:
        return self._sessions.session

    @property
    def poller(self) -> ArrivalPoller:
        return self._poller

    async def init(self) -> SessionRef:
        """Log in (registering the account if needed) and store the session."""

        missing = self._credentials.missing_account_fields()
        if missing:
            raise ValidationError(f"both email and password must be provided (missing: {', '.join(missing)})")
        return await self._sessions.login(self._credentials)

    async def link_device(
        self,
        ssid: str,
        wifi_password: str = "",
        device_count: int = 1,
        timeout_seconds: float | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[DeviceRecord]:
        """Send WiFi credentials to nearby devices and wait for them to check in.

        Returns the devices that reported success with this attempt's token.
        Raises the error of the first phase that failed, after the broadcast
        has been stopped and released.
        """

        if not (ssid or "").strip():
            raise ValidationError("an SSID must be provided")
        timeout = self._default_timeout if timeout_seconds is None else timeout_seconds
        if timeout <= 0:
            raise ValidationError("timeout_seconds must be > 0")
        session = self._sessions.require()

        if self._link_lock.locked():
            raise ProvisioningBusyError("a link attempt is already in progress on this instance")

        async with self._link_lock, self._broadcast.guard() as broadcast:
            token = await self._tokens.issue(session, self._credentials.timezone)
            await broadcast.start(BroadcastConfig.for_token(token, ssid=ssid, wifi_password=wifi_password or ""))

            logger.info("Polling cloud for devices using the pairing token (target=%d)", device_count)
            devices = await self._poller.run(
                token.token,
                target=device_count,
                timeout_seconds=timeout,
                cancel_event=cancel_event,
            )

        logger.info("Found %d device(s)", len(devices))
        return devices

    async def get_linked_devices(
        self,
        ids: Sequence[str] | None = None,
        page_number: int = 0,
        page_size: int = 100,
    ) -> DevicePage:
        """List devices already bound to the account (read-only)."""

        if page_number < 0 or page_size < 1:
            raise ValidationError("page_number must be >= 0 and page_size >= 1")
        session = self._sessions.require()
        try:
            return await self._cloud.list_devices(session, list(ids) if ids else None, page_number, page_size)
        except CloudError as exc:
            raise QueryError(f"device listing failed: {exc}") from exc

    async def aclose(self) -> None:
        """Close the cloud client, releasing a broadcast still left active."""

        try:
            if self._broadcast.active:
                self._broadcast.release()
        finally:
            await self._cloud.aclose()

    async def __aenter__(self) -> "ProvisioningOrchestrator":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
