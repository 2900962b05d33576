# =============================================================================
# Market Data — TTL-Cached Quotes & Fundamentals
# =============================================================================
#
# Sits between the analysis pipeline and the upstream quote/statistics
# provider (Twelve Data by default).
#
# ARCHITECTURE:
#   MarketDataProvider (Protocol)     — raw JSON from upstream
#   └── TwelveDataProvider            — httpx client, /quote and /statistics
#   TTLCache[T]                       — cachetools.TTLCache on an injectable clock
#   MarketDataService                 — cache + timeout + payload parsing
#       ├── get_quote(symbol)         — 10 s TTL, 5 s hard timeout
#       └── get_fundamentals(symbol)  — 300 s TTL, no timeout
#
# CACHE RULES:
#   - a hit (age < ttl) never touches the network
#   - expired entries are dropped lazily by cachetools; no timers
#   - failures are never cached; the next call retries upstream
#   - no locking: two concurrent misses on one key may both fetch,
#     the later write wins
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, Generic, Protocol, TypeVar

import cachetools
import httpx

from tadawul_advisor.config import settings
from tadawul_advisor.errors import DataFetchError, PayloadValidationError
from tadawul_advisor.models.market import Fundamentals, Quote

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# TTL Cache
# ---------------------------------------------------------------------------


class TTLCache(Generic[T]):
    """
    Key → value map whose entries expire `ttl_seconds` after they are set.

    Storage is a `cachetools.TTLCache` driven by the injected clock. An
    entry read at age >= ttl counts as a miss.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        maxsize: int = 1024,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._items: cachetools.TTLCache = cachetools.TTLCache(
            maxsize=maxsize, ttl=ttl_seconds, timer=clock,
        )

    def __len__(self) -> int:
        self._items.expire()
        return len(self._items)

    def get(self, key: str) -> T | None:
        return self._items.get(key)

    def set(self, key: str, value: T) -> None:
        self._items[key] = value

    def clear(self) -> None:
        self._items.clear()

    async def get_or_fetch(self, key: str, fetch: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value or await `fetch()` and store its result."""
        cached = self.get(key)
        if cached is not None:
            return cached
        # fetch() raising leaves the cache untouched
        value = await fetch()
        self.set(key, value)
        return value


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class MarketDataProvider(Protocol):
    """Upstream source of raw quote and statistics payloads."""

    async def get_quote(self, symbol: str) -> dict[str, Any]:
        ...

    async def get_statistics(self, symbol: str) -> dict[str, Any]:
        ...


# ---------------------------------------------------------------------------
# Implementation: Twelve Data
# ---------------------------------------------------------------------------


class TwelveDataProvider:
    """
    Twelve Data REST client.

    Non-2xx responses, transport errors and `{"status": "error"}` bodies
    all become DataFetchError. The httpx client is created lazily and
    reused across calls.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.market_data_api_key
        self._base_url = (base_url or settings.market_data_url).rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url, timeout=self._timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def get_quote(self, symbol: str) -> dict[str, Any]:
        return await self._request("/quote", symbol)

    async def get_statistics(self, symbol: str) -> dict[str, Any]:
        return await self._request("/statistics", symbol)

    async def _request(self, endpoint: str, symbol: str) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.get(
                endpoint,
                params={"symbol": symbol, "apikey": self._api_key},
                headers={"Cache-Control": "no-cache"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DataFetchError(
                f"HTTP error {e.response.status_code} from {endpoint}",
                symbol=symbol,
                endpoint=endpoint,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise DataFetchError(
                f"Request to {endpoint} failed: {e}", symbol=symbol, endpoint=endpoint,
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise PayloadValidationError(f"Non-JSON body from {endpoint}") from e

        if isinstance(data, dict) and data.get("status") == "error":
            raise DataFetchError(
                data.get("message") or "API error",
                symbol=symbol,
                endpoint=endpoint,
                status_code=data.get("code"),
            )
        return data


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class MarketDataService:
    """Cached, typed access to quotes and fundamentals."""

    def __init__(
        self,
        provider: MarketDataProvider,
        quote_ttl_seconds: float = 10.0,
        fundamentals_ttl_seconds: float = 300.0,
        quote_timeout_seconds: float = 5.0,
        exchange_suffix: str = "TADAWUL",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._provider = provider
        self._quote_timeout = quote_timeout_seconds
        self._exchange_suffix = exchange_suffix
        self.quotes: TTLCache[Quote] = TTLCache(quote_ttl_seconds, clock)
        self.fundamentals: TTLCache[Fundamentals] = TTLCache(fundamentals_ttl_seconds, clock)

    def format_symbol(self, symbol: str) -> str:
        """Normalise "2222", "2222.SAU" or "2222:TADAWUL" to "2222:TADAWUL"."""
        ticker = symbol.split(":", 1)[0]
        for suffix in (".SAU", ".TADAWUL"):
            if ticker.upper().endswith(suffix):
                ticker = ticker[: -len(suffix)]
        return f"{ticker}:{self._exchange_suffix}"

    async def get_quote(self, symbol: str) -> Quote:
        """
        Latest quote for `symbol`.

        Raises:
            DataFetchError: upstream failure, or no answer within the timeout.
            PayloadValidationError: the payload lacks symbol or price.
        """
        formatted = self.format_symbol(symbol)

        async def fetch() -> Quote:
            try:
                payload = await asyncio.wait_for(
                    self._provider.get_quote(formatted), timeout=self._quote_timeout,
                )
            except asyncio.TimeoutError as e:
                raise DataFetchError(
                    f"Quote request timed out after {self._quote_timeout}s",
                    symbol=formatted,
                    endpoint="/quote",
                ) from e
            logger.debug("Fetched quote for %s", formatted)
            return Quote.from_payload(payload)

        return await self.quotes.get_or_fetch(formatted, fetch)

    async def get_fundamentals(self, symbol: str) -> Fundamentals:
        """
        Fundamentals for `symbol` from the statistics endpoint.

        Raises:
            DataFetchError: upstream failure.
            PayloadValidationError: the payload has no statistics object.
        """
        formatted = self.format_symbol(symbol)

        async def fetch() -> Fundamentals:
            payload = await self._provider.get_statistics(formatted)
            logger.debug("Fetched statistics for %s", formatted)
            return Fundamentals.from_statistics(formatted, payload)

        return await self.fundamentals.get_or_fetch(formatted, fetch)


def create_market_data_service(
    provider: MarketDataProvider | None = None,
) -> MarketDataService:
    """Build the service from settings (Twelve Data unless a provider is given)."""
    return MarketDataService(
        provider=provider or TwelveDataProvider(),
        quote_ttl_seconds=settings.quote_cache_ttl_seconds,
        fundamentals_ttl_seconds=settings.fundamentals_cache_ttl_seconds,
        quote_timeout_seconds=settings.quote_timeout_seconds,
        exchange_suffix=settings.market_exchange_suffix,
    )
