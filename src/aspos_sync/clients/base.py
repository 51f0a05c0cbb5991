"""Connection parameters shared by the ASPOS token provider and fetcher."""

from dataclasses import dataclass

import httpx

from aspos_sync.config import Settings


@dataclass(frozen=True)
class AsposApiConfig:
    """Immutable ASPOS connection settings, built once and passed at call time."""

    client_id: str
    client_secret: str
    token_url: str
    base_url: str
    timeout: float = 300.0
    page_size: int = 100
    token_cache_ttl: int = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "AsposApiConfig":
        return cls(
            client_id=settings.aspos_client_id,
            client_secret=settings.aspos_client_secret,
            token_url=settings.aspos_token_url,
            base_url=settings.aspos_api_base_url,
            timeout=settings.aspos_api_timeout,
            page_size=settings.aspos_page_size,
            token_cache_ttl=settings.aspos_token_cache_ttl_seconds,
        )

    def url(self, path: str) -> str:
        """Join an API path onto the base URL."""
        return f"{self.base_url}/{path.lstrip('/')}"


def create_http_client(
    config: AsposApiConfig, transport: httpx.AsyncBaseTransport | None = None
) -> httpx.AsyncClient:
    """Create the async HTTP client used for every upstream call."""
    return httpx.AsyncClient(
        timeout=config.timeout,
        transport=transport,
        headers={"Accept": "application/json"},
    )
