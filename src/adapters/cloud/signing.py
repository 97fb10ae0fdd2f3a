"""Request signing for the cloud backends.

OpenAPI (HMAC-SHA256):
- string_to_sign = METHOD \\n sha256(body) \\n headers \\n path?sorted_query
- sign = HMAC(client_id [+ access_token] + t + nonce + string_to_sign), upper hex

Legacy mobile gateway (MD5):
- sign = md5("k1=v1||k2=v2||...||" + secret) over the sorted signed params
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Mapping
from urllib.parse import urlencode

EMPTY_BODY_SHA256 = hashlib.sha256(b"").hexdigest()

# Params the mobile gateway includes in the signature (everything else is ignored).
MOBILE_SIGNED_PARAMS = frozenset(
    {
        "a", "v", "lat", "lon", "lang", "deviceId", "imei", "imsi", "appVersion", "ttid",
        "isH5", "h5Token", "os", "clientId", "postData", "time", "requestId", "n4h5",
        "sid", "sp", "et",
    }
)


def md5_hex(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()  # nosec


def canonical_url(path: str, query: Mapping[str, object] | None = None) -> str:
    """Path plus query sorted by key, as both sides sign it."""

    if not query:
        return path
    items = sorted((k, str(v)) for k, v in query.items() if v is not None)
    if not items:
        return path
    return f"{path}?{urlencode(items, safe=',')}"


def openapi_string_to_sign(*, method: str, url: str, body: bytes = b"") -> str:
    body_hash = hashlib.sha256(body).hexdigest() if body else EMPTY_BODY_SHA256
    return "\n".join([method.upper(), body_hash, "", url])


def openapi_sign(
    *,
    client_id: str,
    secret: str,
    timestamp_ms: str,
    string_to_sign: str,
    access_token: str = "",
    nonce: str = "",
) -> str:
    message = f"{client_id}{access_token}{timestamp_ms}{nonce}{string_to_sign}"
    digest = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()
    return digest.upper()


def mobile_sign(params: Mapping[str, object], secret: str) -> str:
    pairs = [
        f"{key}={params[key]}"
        for key in sorted(params)
        if key in MOBILE_SIGNED_PARAMS and params[key] not in (None, "")
    ]
    return md5_hex("||".join(pairs) + "||" + secret)
