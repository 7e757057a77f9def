# newsdigest/auth.py
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from . import config as app_config
from .errors import InvalidTokenError, NoAuthError, NotConfiguredError, UpstreamUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthContext:
    identity: Optional[Identity]
    token: Optional[str]

    @property
    def is_anonymous(self) -> bool:
        return self.identity is None


ANONYMOUS = AuthContext(identity=None, token=None)


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise NoAuthError()
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise NoAuthError("No token provided", code="NO_TOKEN")
    return token


class IdentityProvider:
    """
    Verifies bearer tokens against the Supabase auth REST API
    (`GET /auth/v1/user`). With a service key it can also delete identities.
    """

    def __init__(
        self,
        url: str = app_config.SUPABASE_URL,
        anon_key: Optional[str] = app_config.SUPABASE_ANON_KEY,
        service_key: Optional[str] = app_config.SUPABASE_SERVICE_KEY,
        timeout_seconds: float = app_config.AUTH_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = (url or "").rstrip("/")
        self._anon_key = anon_key
        self._service_key = service_key
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        if not self.configured:
            logger.warning("AUTH: Identity provider not configured. Authenticated routes will return 503.")

    @property
    def configured(self) -> bool:
        return bool(self.url and self._anon_key)

    @property
    def can_delete_identities(self) -> bool:
        return bool(self.url and self._service_key)

    async def verify(self, token: str) -> Identity:
        if not self.configured:
            raise NotConfiguredError("Authentication service not configured", code="AUTH_NOT_CONFIGURED")

        headers = {"apikey": self._anon_key, "Authorization": f"Bearer {token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.get(f"{self.url}/auth/v1/user", headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"AUTH: Error contacting identity provider: {e}")
            raise UpstreamUnavailableError("Authentication service error", code="AUTH_SERVICE_ERROR", original_error=e) from e

        if response.status_code in (401, 403):
            logger.warning(f"AUTH: Token rejected by identity provider (HTTP {response.status_code})")
            raise InvalidTokenError()
        if response.status_code >= 400:
            logger.error(f"AUTH: Identity provider returned HTTP {response.status_code}")
            raise UpstreamUnavailableError("Authentication service error", code="AUTH_SERVICE_ERROR")

        try:
            user = response.json()
        except ValueError as e:
            raise InvalidTokenError(original_error=e) from e
        if not isinstance(user, dict) or not user.get("id"):
            raise InvalidTokenError()

        return Identity(
            id=str(user["id"]),
            email=user.get("email"),
            user_metadata=user.get("user_metadata") or {},
        )

    async def delete_identity(self, user_id: str) -> bool:
        """Removes the identity through the admin API. Returns False when it could not."""
        if not self.can_delete_identities:
            logger.info(f"AUTH: No service key configured; identity {user_id} left at provider")
            return False

        headers = {"apikey": self._service_key, "Authorization": f"Bearer {self._service_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.delete(f"{self.url}/auth/v1/admin/users/{user_id}", headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"AUTH: Failed to delete identity {user_id} at provider: {e}")
            return False

        logger.info(f"AUTH: Identity {user_id} deleted at provider")
        return True
