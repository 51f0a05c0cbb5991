"""ASPOS upstream API clients."""

from aspos_sync.clients.auth import Credential, TokenProvider
from aspos_sync.clients.base import AsposApiConfig, create_http_client
from aspos_sync.clients.pagination import Page, PageShape, PaginatedFetcher, decode_page

__all__ = [
    "AsposApiConfig",
    "Credential",
    "Page",
    "PageShape",
    "PaginatedFetcher",
    "TokenProvider",
    "create_http_client",
    "decode_page",
]
