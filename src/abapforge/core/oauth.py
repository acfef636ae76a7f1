"""
OAuth2 client-credentials token cache.

The provider keeps one bearer token and refreshes it once ``now >= expires_at``.  The server
reported lifetime is shortened by :data:`EXPIRY_MARGIN` so a token is never presented in the last
minute of its validity.  Concurrent refreshes are tolerated: the last writer wins and any token the
server issued is acceptable.
"""

import logging
import time
from typing import (
    Callable,
    Dict,
    Optional,
)

import httpx

from abapforge.core.errors import (
    AuthenticationError,
    transport_error_from,
)

logger = logging.getLogger(__name__)

EXPIRY_MARGIN = 60.0
"""Seconds subtracted from ``expires_in`` before the cached token is considered stale."""

DEFAULT_TOKEN_TIMEOUT = 30.0


class OAuth2TokenProvider:
    """Fetch, cache and hand out bearer tokens for one OAuth2 client."""

    def __init__(
        self,
        token_url: Optional[str],
        client_id: Optional[str],
        client_secret: Optional[str],
        scope: Optional[str] = None,
        tenant: Optional[str] = None,
        tenant_header: str = "X-Tenant-Id",
        timeout: float = DEFAULT_TOKEN_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.tenant = tenant
        self.tenant_header = tenant_header
        self.timeout = timeout
        self._client = client
        self._clock = clock

        self.access_token: Optional[str] = None
        self.expires_at: float = 0.0

    def is_token_expired(self) -> bool:
        """True when no token is cached or the cached one has reached its (margined) expiry."""
        return self.access_token is None or self._clock() >= self.expires_at

    async def get_token(self) -> str:
        """Return the cached bearer, refreshing it first when stale."""
        if not self.is_token_expired():
            return self.access_token  # type: ignore[return-value]
        return await self.refresh_token()

    async def refresh_token(self) -> str:
        """Run the client-credentials grant and cache the result."""
        if not (self.token_url and self.client_id and self.client_secret):
            raise AuthenticationError(
                "OAuth2 credentials incomplete: token_url, client_id and client_secret are required",
                details={
                    "has_token_url": bool(self.token_url),
                    "has_client_id": bool(self.client_id),
                    "has_client_secret": bool(self.client_secret),
                },
            )

        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if self.scope:
            form["scope"] = self.scope

        logger.debug("Fetching OAuth2 token from %s (client_id=%s)", self.token_url, self.client_id)
        try:
            response = await self._post(form)
        except httpx.TransportError as exc:
            raise transport_error_from(exc, "OAuth2 token request failed") from exc

        if not response.is_success:
            raise AuthenticationError(
                f"OAuth2 token request failed: {response.status_code} {response.reason_phrase}",
                details={
                    "token_url": self.token_url,
                    "status": response.status_code,
                    "body": response.text,
                },
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise AuthenticationError(
                "OAuth2 token response is not valid JSON",
                details={"token_url": self.token_url, "status": response.status_code, "body": response.text},
            ) from exc

        if not isinstance(data, dict) or not data.get("access_token"):
            raise AuthenticationError(
                "OAuth2 token response missing access_token",
                details={"token_url": self.token_url, "status": response.status_code, "body": response.text},
            )

        expires_in = float(data.get("expires_in") or 3600)
        self.access_token = data["access_token"]
        self.expires_at = self._clock() + expires_in - EXPIRY_MARGIN
        logger.info("OAuth2 token acquired (expires_in=%s)", data.get("expires_in"))
        return self.access_token

    async def get_headers(self) -> Dict[str, str]:
        """Authorization header plus the tenant header when a tenant is configured."""
        token = await self.get_token()
        headers = {"Authorization": f"Bearer {token}"}
        if self.tenant:
            headers[self.tenant_header] = self.tenant
        return headers

    def invalidate(self) -> None:
        """Drop the cached token (called after the downstream answers 401)."""
        self.access_token = None
        self.expires_at = 0.0
        logger.debug("OAuth2 token cache invalidated")

    async def _post(self, form: Dict[str, str]) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if self._client is not None:
            return await self._client.post(
                self.token_url, data=form, headers=headers, timeout=self.timeout
            )
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(self.token_url, data=form, headers=headers)
