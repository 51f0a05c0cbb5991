"""ASPOS OAuth client - bearer token acquisition.

Uses the OAuth 2.0 client_credentials grant against the configured token
endpoint. Tokens are fetched fresh on every call unless a cache TTL is set.
"""

import time
from dataclasses import dataclass

import httpx
import structlog

from aspos_sync.clients.base import AsposApiConfig
from aspos_sync.exceptions import AuthError

logger = structlog.get_logger()

DEFAULT_EXPIRES_IN = 3600
EXPIRY_MARGIN_SECONDS = 60


def _parse_expires_in(value) -> float:
    """Token lifetime in seconds; missing or malformed values fall back to the default."""
    if value is None or value == "":
        return float(DEFAULT_EXPIRES_IN)
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        logger.warning("Token response has malformed expires_in", expires_in=value)
        return float(DEFAULT_EXPIRES_IN)
    return seconds if seconds > 0 else float(DEFAULT_EXPIRES_IN)


@dataclass(frozen=True)
class Credential:
    """Short-lived bearer token."""

    value: str
    expires_at: float

    @property
    def expired(self) -> bool:
        return time.time() >= self.expires_at - EXPIRY_MARGIN_SECONDS

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.value}"}


class TokenProvider:
    """Acquires ASPOS access tokens."""

    def __init__(self, config: AsposApiConfig, client: httpx.AsyncClient):
        self.config = config
        self.client = client
        self._cached: Credential | None = None
        self._cached_until = 0.0

    async def acquire_token(self) -> Credential:
        """Return a bearer credential, raising AuthError on any failure."""
        if self.config.token_cache_ttl > 0 and self._cached is not None:
            if not self._cached.expired and time.time() < self._cached_until:
                return self._cached

        payload = {
            "grant_type": "client_credentials",
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }

        try:
            response = await self.client.post(self.config.token_url, data=payload)
        except httpx.HTTPError as e:
            logger.error("Token request failed", token_url=self.config.token_url, error=str(e))
            raise AuthError(f"Token request failed: {e}") from e

        if not response.is_success:
            logger.error(
                "Token endpoint returned an error",
                token_url=self.config.token_url,
                status=response.status_code,
            )
            raise AuthError(f"Token endpoint returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise AuthError("Token response is not valid JSON") from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            logger.error("Token response has no access_token", token_url=self.config.token_url)
            raise AuthError("Token response has no access_token")

        expires_in = _parse_expires_in(data.get("expires_in"))
        credential = Credential(value=token, expires_at=time.time() + expires_in)

        if self.config.token_cache_ttl > 0:
            self._cached = credential
            self._cached_until = time.time() + self.config.token_cache_ttl

        logger.debug("Access token acquired", expires_in=expires_in)
        return credential

    async def verify(self) -> bool:
        """Live check that the configured credentials can obtain a token."""
        try:
            await self.acquire_token()
        except AuthError:
            return False
        return True
