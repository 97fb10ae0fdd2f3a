"""Core configuration.

Why here:
- Centralizes environment variables (pydantic-settings) without polluting the CLI.
- Lets adapters (HTTP, UDP) read their tunables consistently.
"""

from __future__ import annotations

import os
import sys
from enum import Enum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.domain.models import Credentials
from core.domain.region import Region


def get_user_config_dir() -> Path:
    """Per-user configuration directory (cross-platform, no dependencies)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "devlink"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "devlink"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "devlink"
    return Path.home() / ".config" / "devlink"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str | None], env_path: Path | None = None) -> Path:
    """Write/update variables in the user's global .env."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# devlink user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class CloudBackend(str, Enum):
    """Cloud backend generations, selected by configuration."""

    OPENAPI = "openapi"
    MOBILE = "mobile"

    def default_link_timeout(self) -> float:
        return 100.0 if self is CloudBackend.OPENAPI else 60.0


class AppSettings(BaseSettings):
    """Central application configuration.

    Why pydantic-settings:
    - Typed, validated at the edge (env vars, .env) without leaking into the core.
    - A single configuration contract for the CLI and every adapter.
    """

    model_config = SettingsConfigDict(
        env_prefix="DEVLINK_",
        extra="ignore",
        case_sensitive=False,
        # Project .env first (dev), then the user's global config.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    email: str | None = Field(default=None, description="Cloud account email.")
    password: str | None = Field(default=None, description="Cloud account password.")
    api_key: str | None = Field(default=None, description="Cloud API key / client id.")
    api_secret: str | None = Field(default=None, description="Cloud API secret.")
    region: Region = Field(default=Region.AMERICAS, description="Control-plane region code.")
    timezone: str = Field(default="-05:00", min_length=1, description="Timezone sent with pairing tokens.")
    schema_name: str | None = Field(
        default=None,
        description="App schema for the OpenAPI backend.",
    )
    country_code: str = Field(default="1", min_length=1, description="Account country calling code.")
    backend: CloudBackend = Field(default=CloudBackend.OPENAPI, description="Cloud backend generation.")

    http_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Per-request timeout (seconds).",
    )
    user_agent: str = Field(
        default="devlink/0.1",
        min_length=1,
        description="User-Agent for control-plane requests.",
    )

    poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        le=60,
        description="Fixed delay between device-arrival polls.",
    )
    link_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Default link deadline; the backend's default when unset.",
    )

    broadcast_address: str = Field(default="255.255.255.255", min_length=1)
    broadcast_port: int = Field(default=30011, ge=1, le=65535)
    broadcast_interval_seconds: float = Field(
        default=0.05,
        gt=0,
        description="Delay between two full bursts of broadcast frames.",
    )

    log_level: str = Field(default="WARNING", description="Root log level for the CLI.")

    def credentials(self) -> Credentials:
        return Credentials(
            email=self.email,
            password=self.password,
            api_key=self.api_key,
            api_secret=self.api_secret,
            region=self.region,
            timezone=self.timezone,
            schema_name=self.schema_name,
            country_code=self.country_code,
        )

    def effective_link_timeout(self) -> float:
        if self.link_timeout_seconds is not None:
            return self.link_timeout_seconds
        return self.backend.default_link_timeout()
