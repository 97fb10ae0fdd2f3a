"""Cloud session lifecycle."""

from __future__ import annotations

import logging

from core.domain.models import Credentials, SessionRef
from core.errors import AuthError, CloudError, ValidationError
from core.interfaces.cloud import CloudClient

logger = logging.getLogger(__name__)


class SessionManager:
    """Owns the SessionRef of one orchestrator.

    The handle is replaced wholesale by each successful `login`; a failed
    login leaves the previous one untouched.
    """

    def __init__(self, cloud: CloudClient) -> None:
        self._cloud = cloud
        self._session: SessionRef | None = None

    @property
    def session(self) -> SessionRef | None:
        return self._session

    def require(self) -> SessionRef:
        if self._session is None:
            raise ValidationError("not logged in; call init() first")
        return self._session

    async def login(self, credentials: Credentials) -> SessionRef:
        logger.info("Logging in to %s backend as %s", self._cloud.backend_name, credentials.email)
        try:
            session = await self._cloud.login(credentials)
        except CloudError as exc:
            raise AuthError(f"login rejected: {exc}") from exc
        self._session = session
        logger.debug("Session established for uid=%s", session.uid)
        return session
