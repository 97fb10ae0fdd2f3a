"""Cloud backend: OpenAPI v1.0 (HMAC-SHA256 signed).

Responsibility:
- Obtain and cache the project access token (`/v1.0/token`).
- Register/log in the end-user under the app schema and return its uid.
- Issue EZ-mode pairing tokens and report devices that checked in with them.
- List devices bound to the user.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Mapping, Sequence

import httpx

from adapters.cloud.signing import canonical_url, md5_hex, openapi_sign, openapi_string_to_sign
from adapters.http_client import build_async_client
from core.config import AppSettings
from core.domain.models import Credentials, DevicePage, DeviceRecord, PairingToken, PollResult, SessionRef
from core.domain.region import Region
from core.errors import CloudApiError, CloudTransportError, ValidationError

logger = logging.getLogger(__name__)

# Refresh the access token this many seconds before the cloud says it expires.
_TOKEN_EXPIRY_MARGIN_SECONDS = 60.0

_EMAIL_USERNAME_TYPE = 2


class OpenApiCloudClient:
    backend_name = "openapi"

    def __init__(
        self,
        credentials: Credentials,
        *,
        settings: AppSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not credentials.api_key or not credentials.api_secret:
            raise ValidationError("api_key and api_secret are required for the OpenAPI backend")
        self._client_id = credentials.api_key
        self._secret = credentials.api_secret
        self._region = credentials.region
        self._base_url = credentials.region.openapi_host()
        self._client = http_client or build_async_client(settings)
        self._clock = clock
        self._access_token: str | None = None
        self._access_token_expires_at = 0.0

    async def aclose(self) -> None:
        await self._client.aclose()

    async def login(self, credentials: Credentials) -> SessionRef:
        if not credentials.schema_name:
            raise ValidationError("schema is required to register users with the OpenAPI backend")
        body = {
            "country_code": credentials.country_code,
            "username": credentials.email,
            "password": md5_hex(credentials.password or ""),
            "username_type": _EMAIL_USERNAME_TYPE,
            "time_zone_id": credentials.timezone,
        }
        result = await self._request("POST", f"/v1.0/apps/{credentials.schema_name}/user", body=body)
        uid = result.get("uid") if isinstance(result, dict) else None
        if not uid:
            raise CloudApiError("user registration returned no uid")
        return SessionRef(uid=str(uid), backend=self.backend_name)

    async def issue_pairing_token(self, session: SessionRef, timezone: str) -> PairingToken:
        body = {"paring_type": "EZ", "uid": session.uid, "time_zone_id": timezone}
        result = await self._request("POST", "/v1.0/device/paring/token", body=body)
        if not isinstance(result, dict) or not result.get("token") or not result.get("secret"):
            raise CloudApiError("pairing token response is missing token/secret")

        expires_at = None
        if isinstance(result.get("expire_time"), (int, float)):
            expires_at = datetime.now(UTC) + timedelta(seconds=result["expire_time"])
        return PairingToken(
            token=result["token"],
            secret=result["secret"],
            region=Region.parse(result.get("region"), self._region),
            expires_at=expires_at,
        )

    async def poll_device_status(self, token: str) -> PollResult:
        result = await self._request("GET", f"/v1.0/device/paring/tokens/{token}")
        result = result if isinstance(result, dict) else {}
        success = [d for d in result.get("success_devices") or [] if isinstance(d, dict)]
        errors = [d for d in result.get("error_devices") or [] if isinstance(d, dict)]
        return PollResult(
            matched_devices=DeviceRecord.from_payloads(success),
            total_seen=len(success) + len(errors),
        )

    async def list_devices(
        self,
        session: SessionRef,
        ids: Sequence[str] | None,
        page_number: int,
        page_size: int,
    ) -> DevicePage:
        query: dict[str, object] = {"page_no": page_number + 1, "page_size": page_size}
        if ids:
            query["device_ids"] = ",".join(ids)
        else:
            query["source_type"] = "tuyaUser"
            query["source_id"] = session.uid
        result = await self._request("GET", "/v1.0/devices", query=query)
        result = result if isinstance(result, dict) else {}

        devices = DeviceRecord.from_payloads(result.get("devices"))
        total = result.get("total") if isinstance(result.get("total"), int) else None
        if isinstance(result.get("has_more"), bool):
            has_more = result["has_more"]
        elif total is not None:
            has_more = (page_number + 1) * page_size < total
        else:
            has_more = len(devices) == page_size
        return DevicePage(
            devices=devices,
            page_number=page_number,
            page_size=page_size,
            total=total,
            has_more=has_more,
        )

    async def _ensure_access_token(self) -> str:
        if self._access_token and self._clock() < self._access_token_expires_at:
            return self._access_token

        result = await self._request("GET", "/v1.0/token", query={"grant_type": 1}, authenticated=False)
        if not isinstance(result, dict) or not result.get("access_token"):
            raise CloudApiError("token endpoint returned no access_token")
        expire_time = float(result.get("expire_time") or 0)
        self._access_token = str(result["access_token"])
        self._access_token_expires_at = self._clock() + max(0.0, expire_time - _TOKEN_EXPIRY_MARGIN_SECONDS)
        return self._access_token

    async def _request(
        self,
        method: str,
        path: str,
        *,
        query: Mapping[str, object] | None = None,
        body: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> Any:
        access_token = await self._ensure_access_token() if authenticated else ""
        url = canonical_url(path, query)
        content = json.dumps(body, separators=(",", ":")).encode("utf-8") if body is not None else b""
        timestamp_ms = str(int(self._clock() * 1000))

        headers = {
            "client_id": self._client_id,
            "t": timestamp_ms,
            "sign_method": "HMAC-SHA256",
            "nonce": "",
            "sign": openapi_sign(
                client_id=self._client_id,
                secret=self._secret,
                timestamp_ms=timestamp_ms,
                string_to_sign=openapi_string_to_sign(method=method, url=url, body=content),
                access_token=access_token,
            ),
        }
        if access_token:
            headers["access_token"] = access_token
        if content:
            headers["Content-Type"] = "application/json"

        logger.debug("%s %s", method, path)
        try:
            response = await self._client.request(
                method,
                f"{self._base_url}{url}",
                content=content or None,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise CloudTransportError(f"{method} {path}: {exc}") from exc
        return _unwrap(response)


def _unwrap(response: httpx.Response) -> Any:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if response.status_code >= 400:
        message = payload.get("msg") if isinstance(payload, dict) else None
        raise CloudApiError(message or "HTTP error", status_code=response.status_code)
    if not isinstance(payload, dict):
        raise CloudApiError("response is not a JSON object", status_code=response.status_code)
    if not payload.get("success"):
        code = payload.get("code")
        raise CloudApiError(
            str(payload.get("msg") or "request failed"),
            code=str(code) if code is not None else None,
            status_code=response.status_code,
        )
    return payload.get("result")
