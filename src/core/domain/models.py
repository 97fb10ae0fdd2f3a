"""Domain models (Pydantic v2).

Why Pydantic in the domain:
- Strict validation and self-documenting fields (Field) without coupling the
  core to any HTTP or socket library.
- Normalizes the heterogeneous payloads of several cloud backend generations
  into one shape the orchestrator can rely on.

Note:
- These models describe *what* the provisioning data is, not *how* it is
  fetched or transmitted.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from core.domain.region import Region

_DEVICE_ID_KEYS = ("id", "devId", "dev_id", "device_id")


class Credentials(BaseModel):
    """Account and API credentials supplied once at construction.

    Account fields stay optional here; `init()` checks them and raises the
    domain `ValidationError` before any network call.
    """

    model_config = ConfigDict(frozen=True)

    email: str | None = Field(default=None, description="Cloud account email.")
    password: str | None = Field(default=None, description="Cloud account password.")
    api_key: str | None = Field(default=None, description="Cloud API key (client id).")
    api_secret: str | None = Field(default=None, description="Cloud API secret.")
    region: Region = Field(default_factory=Region.default, description="Control-plane region.")
    timezone: str = Field(default="-05:00", min_length=1, description="Device timezone.")
    schema_name: str | None = Field(
        default=None,
        description="App schema (required by the OpenAPI backend for user registration).",
    )
    country_code: str = Field(default="1", min_length=1, description="Account country calling code.")

    def missing_account_fields(self) -> list[str]:
        missing: list[str] = []
        if not (self.email or "").strip():
            missing.append("email")
        if not self.password:
            missing.append("password")
        return missing


class SessionRef(BaseModel):
    """Opaque handle returned by a successful login."""

    model_config = ConfigDict(frozen=True)

    uid: str = Field(..., min_length=1, description="Account uid on the control-plane.")
    sid: str | None = Field(default=None, description="Session id (legacy mobile backend only).")
    backend: str = Field(..., min_length=1, description="Backend generation that issued the session.")


class PairingToken(BaseModel):
    """Single-use pairing token scoped to one provisioning attempt."""

    model_config = ConfigDict(frozen=True)

    token: str = Field(..., min_length=1)
    secret: str = Field(..., min_length=1)
    region: Region = Field(default_factory=Region.default)
    expires_at: datetime | None = Field(default=None, description="Cloud-side expiry, if reported.")

    @property
    def pairing_code(self) -> str:
        """Region + token + secret, the string a device expects to receive."""

        return f"{self.region.value}{self.token}{self.secret}"


class BroadcastConfig(BaseModel):
    """Everything the local broadcaster needs for one transmission."""

    model_config = ConfigDict(frozen=True)

    region: Region
    token: str = Field(..., min_length=1)
    secret: str = Field(..., min_length=1)
    ssid: str = Field(..., min_length=1)
    wifi_password: str = Field(default="")

    @classmethod
    def for_token(cls, token: PairingToken, *, ssid: str, wifi_password: str) -> "BroadcastConfig":
        return cls(
            region=token.region,
            token=token.token,
            secret=token.secret,
            ssid=ssid,
            wifi_password=wifi_password,
        )


class DeviceRecord(BaseModel):
    """A device reported by the control-plane.

    Only `id` matters to the orchestrator; the rest is carried for display and
    export, with the untouched payload kept in `raw`.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., min_length=1, description="Device id on the control-plane.")
    name: str | None = Field(default=None)
    product_id: str | None = Field(default=None)
    ip: str | None = Field(default=None)
    uuid: str | None = Field(default=None)
    online: bool | None = Field(default=None)
    raw: dict[str, Any] = Field(default_factory=dict, description="Payload as returned by the cloud.")

    @staticmethod
    def id_of(payload: dict[str, Any]) -> str | None:
        """Device id under any of the keys the backends use, or None."""

        for key in _DEVICE_ID_KEYS:
            value = payload.get(key)
            if value not in (None, ""):
                return str(value)
        return None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "DeviceRecord":
        """Normalize one device entry from any backend generation.

        Raises ValueError when the entry carries no id.
        """

        device_id = cls.id_of(payload)
        if device_id is None:
            raise ValueError("device payload carries no id")
        return cls(
            id=device_id,
            name=payload.get("name"),
            product_id=payload.get("product_id") or payload.get("productId"),
            ip=payload.get("ip"),
            uuid=payload.get("uuid"),
            online=payload.get("online", payload.get("isOnline")),
            raw=dict(payload),
        )

    @classmethod
    def from_payloads(cls, entries: object) -> list["DeviceRecord"]:
        """Normalize a list of device entries, skipping anything without an id."""

        if not isinstance(entries, list):
            return []
        return [cls.from_payload(e) for e in entries if isinstance(e, dict) and cls.id_of(e) is not None]


class PollResult(BaseModel):
    """Snapshot of one arrival query; never merged with earlier snapshots."""

    matched_devices: list[DeviceRecord] = Field(default_factory=list)
    total_seen: int = Field(default=0, ge=0, description="Devices seen by the cloud, including failed ones.")

    @property
    def matched_count(self) -> int:
        return len(self.matched_devices)


class DevicePage(BaseModel):
    """One page of devices already bound to the account."""

    devices: list[DeviceRecord] = Field(default_factory=list)
    page_number: int = Field(default=0, ge=0)
    page_size: int = Field(default=100, ge=1)
    total: int | None = Field(default=None, ge=0)
    has_more: bool = Field(default=False)


class ArrivalState(str, Enum):
    """States of the arrival polling loop."""

    POLLING = "polling"
    SATISFIED = "satisfied"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CANCELLED = "cancelled"
