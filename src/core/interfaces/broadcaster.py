"""Local broadcaster contract.

The broadcaster owns the socket and the vendor frame encoding; the core only
drives its lifecycle.
"""

from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

from core.domain.models import BroadcastConfig

FrameEncoder = Callable[[BroadcastConfig], list[bytes]]


@runtime_checkable
class Broadcaster(Protocol):
    """Transmits provisioning data to unconfigured devices.

    - `start` begins repeated transmission in the background.
    - `stop` ends transmission but keeps the socket.
    - `release` frees the socket; must be idempotent and safe before `start`.
    """

    async def start(self, config: BroadcastConfig) -> None:
        ...

    async def stop(self) -> None:
        ...

    def release(self) -> None:
        ...
