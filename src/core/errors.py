"""Error hierarchy for provisioning.

Every error names the phase that failed so callers (and the CLI) can report
a single, specific reason. Adapter-level errors (`CloudError` and friends)
never leave the core unwrapped: services re-raise them as the phase error
with the original chained as `__cause__`.
"""

from __future__ import annotations


class DevlinkError(Exception):
    """Base error for devlink."""

    phase: str = "provisioning"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"[{self.phase}] {self.message}"


class ValidationError(DevlinkError, ValueError):
    """Missing or invalid input, raised before any side effect."""

    phase = "validation"


class AuthError(DevlinkError):
    """Login or account registration rejected."""

    phase = "auth"


class TokenError(DevlinkError):
    """Pairing-token request rejected."""

    phase = "token"


class PollError(DevlinkError):
    """A device-arrival query failed."""

    phase = "poll"


class ArrivalTimeoutError(DevlinkError, TimeoutError):
    """Deadline elapsed before enough devices reported in."""

    phase = "timeout"

    def __init__(self, *, detected: int, target: int, timeout_seconds: float) -> None:
        super().__init__(
            f"timed out waiting for devices to connect "
            f"({detected}/{target} detected after {timeout_seconds:g}s)"
        )
        self.detected = detected
        self.target = target
        self.timeout_seconds = timeout_seconds


class QueryError(DevlinkError):
    """Listing devices bound to the account failed."""

    phase = "query"


class BroadcastError(DevlinkError):
    """The local broadcaster refused to start."""

    phase = "broadcast"


class ProvisioningBusyError(DevlinkError):
    """Another link attempt is already running on this orchestrator."""

    phase = "busy"


class ProvisioningCancelledError(DevlinkError):
    """The caller cancelled the link attempt before it finished."""

    phase = "cancelled"


class CloudError(Exception):
    """Base error raised by cloud client adapters."""


class CloudApiError(CloudError):
    """The control-plane answered, but with a failure."""

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None) -> None:
        bits = [message]
        if code:
            bits.append(f"code={code}")
        if status_code is not None:
            bits.append(f"status={status_code}")
        super().__init__(" ".join(bits))
        self.message = message
        self.code = code
        self.status_code = status_code


class CloudTransportError(CloudError):
    """The control-plane could not be reached (DNS, TCP, TLS, timeout)."""
