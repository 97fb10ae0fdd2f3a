"""Pairing-token issuance."""

from __future__ import annotations

import logging

from core.domain.models import PairingToken, SessionRef
from core.errors import CloudError, TokenError
from core.interfaces.cloud import CloudClient

logger = logging.getLogger(__name__)


class TokenIssuer:
    def __init__(self, cloud: CloudClient) -> None:
        self._cloud = cloud

    async def issue(self, session: SessionRef, timezone: str) -> PairingToken:
        """Request a single-use pairing token. A refusal is terminal, never retried."""

        try:
            token = await self._cloud.issue_pairing_token(session, timezone)
        except CloudError as exc:
            raise TokenError(f"pairing token request rejected: {exc}") from exc
        logger.info("Pairing token issued for region %s", token.region.value)
        return token
