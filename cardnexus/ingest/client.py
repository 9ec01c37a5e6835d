"""
HTTP clients for upstream card data.

PokemonTcgClient pages through the Pokemon TCG API; RawFileClient pulls
static JSON documents (GitHub raw files, bulk endpoints). Both issue one
request at a time and retry through a shared RetryPolicy. Neither touches
the disk.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Self

import httpx

from cardnexus.config import MAX_PAGE_SIZE, FetchConfig
from cardnexus.ingest.retry import (
    Classifier,
    RetryPolicy,
    Sleep,
    classify_http_error,
)

logger = logging.getLogger(__name__)


@dataclass
class CardPage:
    """One page of raw card records as returned by the API."""

    records: list[dict[str, Any]]
    total_count: int | None
    page: int
    page_size: int

    @property
    def is_short(self) -> bool:
        """Fewer records than requested, so nothing follows."""
        return len(self.records) < self.page_size


class _AsyncClientOwner:
    """Shared lifecycle for clients wrapping an optional httpx.AsyncClient."""

    def __init__(self, http_client: httpx.AsyncClient | None, timeout: float, user_agent: str):
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": user_agent},
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


class PokemonTcgClient(_AsyncClientOwner):
    """
    Rate-limited page fetcher for the Pokemon TCG API.

    Usage:
        async with PokemonTcgClient(config) as client:
            page = await client.fetch_page("regulationMark:G", 1, 25)
    """

    def __init__(
        self,
        config: FetchConfig,
        http_client: httpx.AsyncClient | None = None,
        *,
        policy: RetryPolicy | None = None,
        classify: Classifier = classify_http_error,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        super().__init__(http_client, config.timeout, config.user_agent)
        self.config = config
        self.policy = policy or RetryPolicy.from_config(config)
        self._classify = classify
        self._sleep = sleep

    def _headers(self) -> dict[str, str]:
        headers = {
            "User-Agent": self.config.user_agent,
            "Accept": "application/json",
        }
        if self.config.api_key:
            headers["X-Api-Key"] = self.config.api_key
        return headers

    async def fetch_page(self, query: str, page: int, page_size: int) -> CardPage:
        """
        Fetch one page of cards.

        Args:
            query: Search filter, e.g. "regulationMark:G"
            page: 1-based page number
            page_size: Records per page, at most the API maximum

        Returns:
            CardPage with the records and the API-reported total

        Raises:
            ValueError: If page or page_size are out of range
            PageFetchError: If the request failed within the retry policy
        """
        if page < 1:
            raise ValueError(f"page must be 1-based, got {page}")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")

        url = f"{self.config.base_url}/cards"
        params = {"q": query, "page": page, "pageSize": page_size}

        async def _request() -> dict[str, Any]:
            response = await self._http.get(
                url, params=params, headers=self._headers(), timeout=self.config.timeout
            )
            response.raise_for_status()
            payload: dict[str, Any] = response.json()
            return payload

        payload = await self.policy.run(
            _request, self._classify, sleep=self._sleep, label=f"page {page}"
        )

        records = payload.get("data") or []
        total = payload.get("totalCount")
        total_count = int(total) if total is not None else None
        return CardPage(records=records, total_count=total_count, page=page, page_size=page_size)


def is_last_page(page: CardPage, fetched: int) -> bool:
    """
    True after a short page or once the reported total is covered.

    The total is covered when fetched reaches it or when this page ends at or
    past it, which still holds after a skipped page. Without a reported total
    only a short page ends the listing.
    """
    if page.is_short:
        return True
    if page.total_count is None:
        return False
    return fetched >= page.total_count or page.page * page.page_size >= page.total_count


async def iter_pages(
    client: PokemonTcgClient,
    query: str,
    page_size: int,
    *,
    request_delay: float,
    sleep: Sleep = asyncio.sleep,
    start_page: int = 1,
) -> AsyncIterator[CardPage]:
    """
    Yield pages in order until the result set is exhausted.

    Stops after a short page or once the running total reaches the
    API-reported total, whichever comes first. Sleeps request_delay
    between pages, never after the last one.
    """
    page_number = start_page
    fetched = (start_page - 1) * page_size

    while True:
        page = await client.fetch_page(query, page_number, page_size)
        fetched += len(page.records)

        logger.info(
            "Page %d: %d records (%d/%s)",
            page_number,
            len(page.records),
            fetched,
            page.total_count,
        )
        yield page

        if is_last_page(page, fetched):
            return

        page_number += 1
        await sleep(request_delay)


class RawFileClient(_AsyncClientOwner):
    """
    Fetches whole JSON documents over HTTPS.

    No pagination and no auth; used for static dumps and bulk endpoints.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        http_client: httpx.AsyncClient | None = None,
        *,
        classify: Classifier = classify_http_error,
        timeout: float = 60.0,
        user_agent: str = "CardNexus Fetcher/2.0",
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        super().__init__(http_client, timeout, user_agent)
        self.policy = policy
        self.timeout = timeout
        self._classify = classify
        self._sleep = sleep

    async def fetch_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """
        Fetch and decode one JSON document.

        Raises:
            PageFetchError: If the request failed within the retry policy
        """

        async def _request() -> Any:
            response = await self._http.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()

        label = url.rsplit("/", 1)[-1] or url
        return await self.policy.run(_request, self._classify, sleep=self._sleep, label=label)
