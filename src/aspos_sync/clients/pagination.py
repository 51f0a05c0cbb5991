"""Paginated fetching over the ASPOS REST API.

Upstream endpoints wrap their results in different envelopes depending on the
endpoint and API version. Each response is decoded into a Page by structural
matchers tried in a fixed order:

1. ``{"data": [...], "pagination": {"hasMore": bool}}``
2. ``{"data": [...], "hasMore": bool}``
3. ``{"data": [...]}`` - more pages inferred from a full-sized page
4. ``[...]`` - more pages inferred from a full-sized page
"""

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
import structlog

from aspos_sync.exceptions import NetworkError, UpstreamFormatError

logger = structlog.get_logger()


class PageShape(str, Enum):
    """Envelope variants observed upstream."""

    ENVELOPE_PAGINATION = "envelope_pagination"
    ENVELOPE_HAS_MORE = "envelope_has_more"
    ENVELOPE = "envelope"
    BARE_ARRAY = "bare_array"


@dataclass(frozen=True)
class Page:
    """One decoded page of upstream records."""

    shape: PageShape
    records: list[dict[str, Any]]
    has_more: bool


def _match_envelope_pagination(payload: Any, page_size: int) -> Page | None:
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
        return None
    pagination = payload.get("pagination")
    if not isinstance(pagination, dict) or "hasMore" not in pagination:
        return None
    return Page(PageShape.ENVELOPE_PAGINATION, payload["data"], bool(pagination["hasMore"]))


def _match_envelope_has_more(payload: Any, page_size: int) -> Page | None:
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
        return None
    if "hasMore" not in payload:
        return None
    return Page(PageShape.ENVELOPE_HAS_MORE, payload["data"], bool(payload["hasMore"]))


def _match_envelope(payload: Any, page_size: int) -> Page | None:
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
        return None
    records = payload["data"]
    return Page(PageShape.ENVELOPE, records, len(records) >= page_size)


def _match_bare_array(payload: Any, page_size: int) -> Page | None:
    if not isinstance(payload, list):
        return None
    return Page(PageShape.BARE_ARRAY, payload, len(payload) >= page_size)


PAGE_MATCHERS: tuple[Callable[[Any, int], Page | None], ...] = (
    _match_envelope_pagination,
    _match_envelope_has_more,
    _match_envelope,
    _match_bare_array,
)


def decode_page(payload: Any, page_size: int) -> Page:
    """Decode a response body into a Page, raising UpstreamFormatError if no shape matches."""
    for match in PAGE_MATCHERS:
        page = match(payload, page_size)
        if page is not None:
            return page
    raise UpstreamFormatError(
        f"Unrecognised response envelope: {type(payload).__name__}"
    )


class PaginatedFetcher:
    """Streams every record of a paginated upstream resource."""

    def __init__(self, client: httpx.AsyncClient, page_size: int = 100):
        self.client = client
        self.page_size = page_size

    async def _get(
        self, url: str, headers: dict[str, str], query: dict[str, Any], label: str
    ) -> Any:
        try:
            response = await self.client.get(url, headers=headers, params=query)
        except httpx.HTTPError as e:
            raise NetworkError(f"GET {label} failed: {e}", url=url) from e

        if not response.is_success:
            raise NetworkError(
                f"GET {label} returned HTTP {response.status_code}",
                url=url,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamFormatError(f"GET {label} returned invalid JSON") from e

    async def fetch_page(
        self,
        url: str,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
        page: int = 1,
    ) -> Page:
        """Fetch and decode a single page."""
        query = {**(params or {}), "page": page, "limit": self.page_size}
        payload = await self._get(url, headers, query, f"{url} page {page}")
        return decode_page(payload, self.page_size)

    async def fetch_records(
        self,
        url: str,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch an unpaginated resource in one request and return its records."""
        payload = await self._get(url, headers, dict(params or {}), url)
        return decode_page(payload, self.page_size).records

    async def fetch_all(
        self,
        url: str,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Yield records from page 1 onward until upstream reports no more pages.

        Any failed page aborts the whole fetch; records already yielded stay
        yielded. A page identical to the previous one ends the fetch.
        """
        page_number = 1
        previous: list[dict[str, Any]] | None = None
        while True:
            page = await self.fetch_page(url, headers, params, page_number)
            logger.debug(
                "Fetched page",
                url=url,
                page=page_number,
                records=len(page.records),
                shape=page.shape.value,
            )

            if page.records and page.records == previous:
                logger.warning("Upstream repeated a page, stopping", url=url, page=page_number)
                break

            for record in page.records:
                yield record

            if not page.records or len(page.records) < self.page_size or not page.has_more:
                break
            previous = page.records
            page_number += 1
