"""Cloud backend: legacy mobile gateway (`api.json`, MD5 signed).

Older generation of the control-plane, kept for API keys that predate the
OpenAPI project model. Every call is an action name plus JSON `postData`,
signed together with the client id, a device id and a timestamp.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Callable, Sequence

import httpx

from adapters.cloud.signing import md5_hex, mobile_sign
from adapters.http_client import build_async_client
from core.config import AppSettings
from core.domain.models import Credentials, DevicePage, DeviceRecord, PairingToken, PollResult, SessionRef
from core.domain.region import Region
from core.errors import CloudApiError, CloudTransportError, ValidationError

logger = logging.getLogger(__name__)

_USER_EXISTS_CODE = "USER_NAME_IS_EXIST"


class MobileApiCloudClient:
    backend_name = "mobile"

    def __init__(
        self,
        credentials: Credentials,
        *,
        settings: AppSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
        device_id: str | None = None,
    ) -> None:
        if not credentials.api_key or not credentials.api_secret:
            raise ValidationError("api_key and api_secret are required for the mobile backend")
        self._client_id = credentials.api_key
        self._secret = credentials.api_secret
        self._region = credentials.region
        self._endpoint = f"{credentials.region.mobile_host()}/api.json"
        self._client = http_client or build_async_client(settings)
        self._clock = clock
        self._device_id = device_id or uuid.uuid4().hex
        self._sid: str | None = None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def login(self, credentials: Credentials) -> SessionRef:
        """Register the account, falling back to login when it already exists."""

        data = {
            "countryCode": credentials.country_code,
            "email": credentials.email,
            "passwd": md5_hex(credentials.password or ""),
        }
        try:
            result = await self._request("tuya.m.user.email.register", data, sid=None)
        except CloudApiError as exc:
            if exc.code != _USER_EXISTS_CODE:
                raise
            logger.debug("Account already registered; logging in instead")
            result = await self._request("tuya.m.user.email.password.login", data, sid=None)

        if not isinstance(result, dict) or not result.get("sid"):
            raise CloudApiError("login returned no session id")
        self._sid = str(result["sid"])
        uid = result.get("uid") or credentials.email
        return SessionRef(uid=str(uid), sid=self._sid, backend=self.backend_name)

    async def issue_pairing_token(self, session: SessionRef, timezone: str) -> PairingToken:
        result = await self._request("tuya.m.device.token.create", {"timeZone": timezone}, sid=session.sid)
        if not isinstance(result, dict) or not result.get("token") or not result.get("secret"):
            raise CloudApiError("pairing token response is missing token/secret")
        return PairingToken(
            token=result["token"],
            secret=result["secret"],
            region=Region.parse(result.get("region"), self._region),
        )

    async def poll_device_status(self, token: str) -> PollResult:
        result = await self._request("tuya.m.device.list.token", {"token": token}, sid=self._sid)
        entries = [d for d in result or [] if isinstance(d, dict)]
        return PollResult(matched_devices=DeviceRecord.from_payloads(entries), total_seen=len(entries))

    async def list_devices(
        self,
        session: SessionRef,
        ids: Sequence[str] | None,
        page_number: int,
        page_size: int,
    ) -> DevicePage:
        # The gateway has no server-side paging for this action.
        result = await self._request("tuya.m.my.group.device.list", None, sid=session.sid)
        devices = DeviceRecord.from_payloads(result)
        if ids:
            wanted = set(ids)
            devices = [d for d in devices if d.id in wanted]

        start = page_number * page_size
        page = devices[start : start + page_size]
        return DevicePage(
            devices=page,
            page_number=page_number,
            page_size=page_size,
            total=len(devices),
            has_more=start + page_size < len(devices),
        )

    async def _request(self, action: str, data: dict[str, Any] | None, *, sid: str | None) -> Any:
        params: dict[str, str] = {
            "a": action,
            "deviceId": self._device_id,
            "os": "Linux",
            "lang": "en",
            "v": "1.0",
            "clientId": self._client_id,
            "time": str(int(self._clock())),
        }
        if data is not None:
            params["postData"] = json.dumps(data, separators=(",", ":"))
        if sid:
            params["sid"] = sid
        params["sign"] = mobile_sign(params, self._secret)

        logger.debug("mobile action %s", action)
        try:
            response = await self._client.post(self._endpoint, params=params)
        except httpx.HTTPError as exc:
            raise CloudTransportError(f"{action}: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if response.status_code >= 400 or not isinstance(payload, dict):
            raise CloudApiError(f"{action} failed", status_code=response.status_code)
        if not payload.get("success"):
            raise CloudApiError(
                str(payload.get("errorMsg") or f"{action} failed"),
                code=payload.get("errorCode"),
                status_code=response.status_code,
            )
        return payload.get("result")
