"""Cloud backends (concrete `core.interfaces.cloud.CloudClient` implementations).

The backend is chosen from configuration, never by subclassing.
"""

from __future__ import annotations

import httpx

from adapters.cloud.mobile import MobileApiCloudClient
from adapters.cloud.openapi import OpenApiCloudClient
from core.config import AppSettings, CloudBackend
from core.domain.models import Credentials
from core.interfaces.cloud import CloudClient

_BACKENDS = {
    CloudBackend.OPENAPI: OpenApiCloudClient,
    CloudBackend.MOBILE: MobileApiCloudClient,
}


def build_cloud_client(
    settings: AppSettings,
    credentials: Credentials | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> CloudClient:
    factory = _BACKENDS[settings.backend]
    return factory(credentials or settings.credentials(), settings=settings, http_client=http_client)


__all__ = [
    "MobileApiCloudClient",
    "OpenApiCloudClient",
    "build_cloud_client",
]
