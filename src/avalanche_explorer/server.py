"""
FastAPI application serving the explorer API.

Routes:
    GET /api/explorer/{chainId}                      explorer data of one chain
    GET /api/explorer/{chainId}/block/{blockNumber}  block detail
    GET /health                                      liveness probe

Errors are returned as ``{"error": message}`` with the matching status code.
"""

import asyncio
import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from .config import ExplorerConfig
from .fetcher import ExplorerFetcher
from .market_data import MarketDataClient
from .registry import ChainRegistry

logger = logging.getLogger(__name__)

CHAIN_NOT_FOUND = "Chain not found. Provide rpcUrl query parameter for custom chains."
RPC_NOT_CONFIGURED = "RPC URL not configured. Provide rpcUrl query parameter for custom chains."
BLOCK_CHAIN_NOT_FOUND = "Chain not found or RPC URL missing. Provide rpcUrl query parameter for custom chains."


async def _no_price() -> None:
    return None


def _parse_cursor(value: str | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value, 10)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid lastFetchedBlock: {value}") from None


def _parse_block_ref(value: str) -> int | str:
    """Block route parameter: a 0x quantity is passed through, a decimal number is converted."""
    if value.startswith("0x"):
        return value
    try:
        number = int(value, 10)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid block number: {value}") from None
    if number < 0:
        raise HTTPException(status_code=400, detail=f"Invalid block number: {value}")
    return number


def create_app(
    config: ExplorerConfig,
    registry: ChainRegistry,
    fetcher: ExplorerFetcher,
    market_data: MarketDataClient
) -> FastAPI:
    """Build the explorer API application.

    Args:
        config: Explorer configuration
        registry: Chain registry (registry values win over query overrides)
        fetcher: Per-chain explorer fetcher
        market_data: Price and Glacier lookups

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(title="Avalanche Explorer API")
    app.state.config = config

    @app.exception_handler(HTTPException)
    def http_exception_handler(request: Any, exc: HTTPException) -> JSONResponse:
        """Consistent JSON error response for HTTPException."""
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.get("/health")
    def health() -> dict[str, str]:
        """Liveness probe: API is up."""
        return {"status": "ok"}

    @app.get("/api/explorer/{chain_id}")
    async def get_explorer_data(
        chain_id: str,
        initial_load: str | None = Query(None, alias="initialLoad"),
        price_only: str | None = Query(None, alias="priceOnly"),
        last_fetched_block: str | None = Query(None, alias="lastFetchedBlock"),
        rpc_url: str | None = Query(None, alias="rpcUrl"),
        token_symbol: str | None = Query(None, alias="tokenSymbol"),
        blockchain_id: str | None = Query(None, alias="blockchainId"),
    ) -> dict[str, Any]:
        """Explorer data of one chain: a snapshot on initial load, a delta afterwards."""
        chain = registry.get(chain_id)
        if chain is None and not rpc_url:
            raise HTTPException(status_code=404, detail=CHAIN_NOT_FOUND)

        effective_rpc_url = (chain.rpc_url if chain else None) or rpc_url
        effective_symbol = (chain.token_symbol if chain else None) or token_symbol or None
        effective_blockchain_id = (chain.blockchain_id if chain else None) or blockchain_id or None
        coingecko_id = chain.coingecko_id if chain else None

        if price_only == "true":
            price, glacier_supported = await asyncio.gather(
                market_data.fetch_price(coingecko_id) if coingecko_id else _no_price(),
                market_data.check_glacier_support(chain_id),
            )
            return {
                "price": price.to_dict() if price else None,
                "tokenSymbol": effective_symbol,
                "glacierSupported": glacier_supported,
            }

        if not effective_rpc_url:
            raise HTTPException(status_code=400, detail=RPC_NOT_CONFIGURED)

        cursor = _parse_cursor(last_fetched_block)
        try:
            data, glacier_supported = await asyncio.gather(
                fetcher.fetch_explorer_data(
                    chain_id=chain_id,
                    rpc_url=effective_rpc_url,
                    coingecko_id=coingecko_id,
                    token_symbol=effective_symbol,
                    current_blockchain_id=effective_blockchain_id,
                    initial_load=initial_load == "true",
                    last_fetched_block=cursor,
                ),
                market_data.check_glacier_support(chain_id),
            )
        except Exception as e:
            logger.error(f"Failed to fetch explorer data for chain {chain_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e) or "Failed to fetch explorer data") from e

        return {**data.to_dict(), "glacierSupported": glacier_supported}

    @app.get("/api/explorer/{chain_id}/block/{block_number}")
    async def get_block(
        chain_id: str,
        block_number: str,
        rpc_url: str | None = Query(None, alias="rpcUrl"),
    ) -> dict[str, Any]:
        """Full detail of one block, including the summed fees of its transactions."""
        chain = registry.get(chain_id)
        effective_rpc_url = (chain.rpc_url if chain else None) or rpc_url
        if not effective_rpc_url:
            raise HTTPException(status_code=404, detail=BLOCK_CHAIN_NOT_FOUND)

        block_ref = _parse_block_ref(block_number)
        try:
            detail = await fetcher.fetch_block_detail(effective_rpc_url, block_ref)
        except Exception as e:
            logger.error(f"Error fetching block {block_number} for chain {chain_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to fetch block data") from e

        if detail is None:
            raise HTTPException(status_code=404, detail="Block not found")
        return detail.to_dict()

    return app
