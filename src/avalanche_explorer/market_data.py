#!/usr/bin/env python3
"""
Market data, indexer and Glacier lookups used to enrich explorer responses.

None of these services is essential: every failure is logged and degrades to
an absent value so the RPC-derived part of a response is always served.
Successful lookups are memoized in TTL caches; failures are never cached.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from .cache import TtlCache
from .config import UpstreamConfig
from .models import PriceData, TransactionHistoryPoint

logger = logging.getLogger(__name__)

HISTORY_DAYS = 14

COIN_DETAIL_PARAMS: dict[str, str] = {
    "localization": "false",
    "tickers": "false",
    "community_data": "false",
    "developer_data": "false",
    "sparkline": "false",
}


class MarketDataClient:
    """Client for CoinGecko, the transaction indexer and the Glacier data API."""

    def __init__(
        self,
        config: UpstreamConfig,
        clock: Callable[[], float] = time.monotonic,
        transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        """Initialize the market data client.

        Args:
            config: Upstream service configuration
            clock: Time source for cache expiry (seconds)
            transport: Optional transport override (used by tests)
        """
        self.config: UpstreamConfig = config
        self._clock = clock
        self._transport = transport

        self._price_cache: TtlCache[str, PriceData] = TtlCache(config.price_cache_ttl, "price")
        self._native_price_cache: TtlCache[str, float] = TtlCache(config.price_cache_ttl, "native-price")
        self._cumulative_cache: TtlCache[str, int] = TtlCache(config.cumulative_txs_cache_ttl, "cumulative-txs")
        self._daily_cache: TtlCache[str, dict[str, list[TransactionHistoryPoint]]] = TtlCache(
            config.daily_txs_cache_ttl, "daily-txs"
        )

    async def _get_json(self, url: str, params: dict[str, str] | None = None) -> Any:
        """GET a JSON document.

        Raises:
            httpx.HTTPStatusError: On non-2xx responses
            httpx.HTTPError: On transport failures
        """
        async with httpx.AsyncClient(transport=self._transport, timeout=self.config.request_timeout) as client:
            response: httpx.Response = await client.get(
                url, params=params, headers={"Accept": "application/json"}
            )
            response.raise_for_status()
            return response.json()

    async def fetch_native_price(self) -> float:
        """USD price of the native reference token (AVAX), 0.0 when unavailable."""
        coin_id = self.config.native_coingecko_id
        cached = self._native_price_cache.get(coin_id, self._clock())
        if cached is not None:
            return cached

        try:
            data = await self._get_json(
                f"{self.config.coingecko_url}/simple/price",
                params={"ids": coin_id, "vs_currencies": "usd"},
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to fetch {coin_id} price: {e}")
            return 0.0

        price = float((data.get(coin_id) or {}).get("usd") or 0)
        self._native_price_cache.put(coin_id, price, self._clock())
        return price

    async def fetch_price(self, coingecko_id: str) -> PriceData | None:
        """Fetch price, market cap, volume and supply of a token.

        Args:
            coingecko_id: CoinGecko coin id

        Returns:
            PriceData, or None when the market-data service is unavailable
        """
        cached = self._price_cache.get(coingecko_id, self._clock())
        if cached is not None:
            return cached

        try:
            data = await self._get_json(
                f"{self.config.coingecko_url}/coins/{coingecko_id}", params=COIN_DETAIL_PARAMS
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to fetch price for {coingecko_id}: {e}")
            return None

        market_data: dict[str, Any] = data.get("market_data") or {}
        price_usd = float((market_data.get("current_price") or {}).get("usd") or 0)

        native_price = await self.fetch_native_price()
        symbol = data.get("symbol")

        price_data = PriceData(
            price=price_usd,
            price_in_avax=price_usd / native_price if native_price > 0 else None,
            change_24h=float(market_data.get("price_change_percentage_24h") or 0),
            market_cap=float((market_data.get("market_cap") or {}).get("usd") or 0),
            volume_24h=float((market_data.get("total_volume") or {}).get("usd") or 0),
            total_supply=float(market_data.get("total_supply") or 0),
            symbol=symbol.upper() if symbol else None,
        )

        self._price_cache.put(coingecko_id, price_data, self._clock())
        return price_data

    async def fetch_cumulative_txs(self, evm_chain_id: str) -> int:
        """Lifetime transaction count of a chain from the indexer, 0 when unavailable."""
        cached = self._cumulative_cache.get(evm_chain_id, self._clock())
        if cached is not None:
            return cached

        try:
            data = await self._get_json(f"{self.config.indexer_url}/{evm_chain_id}/stats/cumulative-txs")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to fetch cumulative txs for chain {evm_chain_id}: {e}")
            return 0

        cumulative_txs = int(data.get("cumulativeTxs") or 0)
        self._cumulative_cache.put(evm_chain_id, cumulative_txs, self._clock())
        return cumulative_txs

    async def fetch_daily_txs_by_chain(self) -> dict[str, list[TransactionHistoryPoint]]:
        """Daily transaction counts of every indexed chain, last 14 days.

        The indexer answers with one shared ``dates`` axis and a ``values``
        series per chain; both are sliced to the trailing window.
        """
        cached = self._daily_cache.get("all", self._clock())
        if cached is not None:
            return cached

        try:
            data = await self._get_json(f"{self.config.indexer_url}/global/overview/dailyTxsByChainCompact")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to fetch daily txs: {e}")
            return {}

        dates: list[str] = data.get("dates") or []
        chains: list[dict[str, Any]] = data.get("chains") or []
        if not dates or not chains:
            return {}

        start = max(0, len(dates) - HISTORY_DAYS)
        window = dates[start:]

        result: dict[str, list[TransactionHistoryPoint]] = {}
        for chain in chains:
            values = (chain.get("values") or [])[start:]
            result[str(chain.get("evmChainId"))] = [
                TransactionHistoryPoint(
                    date=date,
                    transactions=int(values[index] or 0) if index < len(values) else 0,
                )
                for index, date in enumerate(window)
            ]

        self._daily_cache.put("all", result, self._clock())
        return result

    async def check_glacier_support(self, chain_id: str) -> bool:
        """Whether the Glacier data API indexes this chain."""
        try:
            data = await self._get_json(f"{self.config.glacier_url}/v1/chains/{chain_id}")
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Glacier does not support chain {chain_id}: {e}")
            return False

        return bool(isinstance(data, dict) and data.get("chainId"))
