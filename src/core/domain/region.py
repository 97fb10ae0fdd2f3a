"""Control-plane regions supported by devlink.

This module centralizes the region codes understood by every cloud backend.
Keeping it in the domain layer lets config, adapters and the CLI share one
source of truth without circular imports.
"""

from __future__ import annotations

from enum import Enum


class Region(str, Enum):
    """Region codes as issued by the control-plane (and echoed in tokens)."""

    AMERICAS = "AZ"
    ASIA = "AY"
    EUROPE = "EU"
    INDIA = "IN"

    @classmethod
    def default(cls) -> "Region":
        """Return the region used when none is configured."""

        return cls.AMERICAS

    @classmethod
    def from_code(cls, code: str | None) -> "Region":
        """Parse a region code, case-insensitively, falling back to the default."""

        if not code:
            return cls.default()
        return cls(code.strip().upper())

    @classmethod
    def parse(cls, code: object, fallback: "Region") -> "Region":
        """Like `from_code`, but returns `fallback` for anything unrecognized."""

        if not isinstance(code, str) or not code.strip():
            return fallback
        try:
            return cls(code.strip().upper())
        except ValueError:
            return fallback

    def openapi_host(self) -> str:
        return _OPENAPI_HOSTS[self]

    def mobile_host(self) -> str:
        return _MOBILE_HOSTS[self]

    def label(self) -> str:
        """Human readable label for prompts and logging."""

        return _LABELS[self]


_OPENAPI_HOSTS: dict[Region, str] = {
    Region.AMERICAS: "https://openapi.tuyaus.com",
    Region.ASIA: "https://openapi.tuyacn.com",
    Region.EUROPE: "https://openapi.tuyaeu.com",
    Region.INDIA: "https://openapi.tuyain.com",
}

_MOBILE_HOSTS: dict[Region, str] = {
    Region.AMERICAS: "https://a1.tuyaus.com",
    Region.ASIA: "https://a1.tuyacn.com",
    Region.EUROPE: "https://a1.tuyaeu.com",
    Region.INDIA: "https://a1.tuyain.com",
}

_LABELS: dict[Region, str] = {
    Region.AMERICAS: "Americas",
    Region.ASIA: "Asia",
    Region.EUROPE: "Europe",
    Region.INDIA: "India",
}
