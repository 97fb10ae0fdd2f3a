"""Cloud control-plane contract.

Why Protocol:
- One structural contract for every backend generation (OpenAPI, legacy
  mobile gateway) with no inheritance chain between them.
- The orchestrator can be tested against a plain stub object.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from core.domain.models import Credentials, DevicePage, PairingToken, PollResult, SessionRef


@runtime_checkable
class CloudClient(Protocol):
    """Minimal contract the provisioning core needs from a cloud backend.

    Design rules:
    - Every call is a single request/response; retries, signing and rate
      limits are the adapter's business.
    - Failures raise `core.errors.CloudError` subclasses.
    """

    backend_name: str

    async def login(self, credentials: Credentials) -> SessionRef:
        """Register or log in the account and return a session handle."""

        ...

    async def issue_pairing_token(self, session: SessionRef, timezone: str) -> PairingToken:
        ...

    async def poll_device_status(self, token: str) -> PollResult:
        """Return the devices that have checked in with `token` so far."""

        ...

    async def list_devices(
        self,
        session: SessionRef,
        ids: Sequence[str] | None,
        page_number: int,
        page_size: int,
    ) -> DevicePage:
        ...

    async def aclose(self) -> None:
        ...
