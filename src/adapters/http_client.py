"""Shared httpx client for the cloud backends.

Why one builder:
- Both backends get the same timeouts, User-Agent and request logging.
- Tests hand in an `httpx.MockTransport` instead of patching the network.
"""

from __future__ import annotations

import logging

import httpx

from core.config import AppSettings

logger = logging.getLogger(__name__)

# Polling keeps at most one request in flight; a couple of spare connections
# cover the token refresh that may precede it.
_LIMITS = httpx.Limits(max_connections=4, max_keepalive_connections=2)


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    logger.debug("%s %s -> %s", request.method, request.url.path, response.status_code)


def build_async_client(
    settings: AppSettings | None = None,
    *,
    extra_headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the `httpx.AsyncClient` used against the control-plane.

    - The whole request is bounded by `http_timeout_seconds`; connecting gets
      at most half of it so an unreachable region fails fast.
    - Redirects are not followed: the signed URL must be the one answering.
    """

    settings = settings or AppSettings()
    headers = {"User-Agent": settings.user_agent, "Accept": "application/json"}
    headers.update(extra_headers or {})

    total = settings.http_timeout_seconds
    return httpx.AsyncClient(
        timeout=httpx.Timeout(total, connect=total / 2),
        limits=_LIMITS,
        follow_redirects=False,
        headers=headers,
        transport=transport,
        event_hooks={"response": [_log_response]},
    )
