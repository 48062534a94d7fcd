#!/usr/bin/env python3
"""
Per-chain explorer fetcher.

Turns the JSON-RPC view of one chain into an ``ExplorerData`` snapshot (first
load) or delta (subsequent polls). The caller's ``last_fetched_block`` cursor
bounds the work of a poll: when the chain has not advanced, exactly one
``eth_blockNumber`` call is made.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar

from .config import ExplorerConfig
from .icm import IcmRoute, extract_route, icm_log_filter, is_cross_chain
from .market_data import MarketDataClient
from .models import (
    Block,
    BlockDetail,
    ChainEndpoint,
    ExplorerData,
    ExplorerStats,
    Transaction,
)
from .utils.hex_utility import hex_to_int, wei_to_gwei, wei_to_token
from .utils.rpc_utility import RpcUtility

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_TIME = 2.0

T = TypeVar("T")


class ChainDataSource(Protocol):
    """Anything the multi-chain poller can pull explorer data from."""

    async def fetch_chain(
        self,
        endpoint: ChainEndpoint,
        initial_load: bool,
        last_fetched_block: int | None
    ) -> ExplorerData:
        ...


class ExplorerFetcher:
    """Fetches blocks, transactions, ICM messages and stats of one chain at a time."""

    def __init__(
        self,
        config: ExplorerConfig,
        market_data: MarketDataClient,
        rpc_factory: Callable[[str], RpcUtility] | None = None
    ) -> None:
        """Initialize the fetcher.

        Args:
            config: Explorer configuration
            market_data: Client for price, indexer and Glacier lookups
            rpc_factory: Builds an RPC client for a URL (defaults to RpcUtility)
        """
        self.config: ExplorerConfig = config
        self.market_data: MarketDataClient = market_data
        self._rpc_factory = rpc_factory or (
            lambda url: RpcUtility(url, timeout=config.fetcher.rpc_timeout)
        )

    async def fetch_chain(
        self,
        endpoint: ChainEndpoint,
        initial_load: bool,
        last_fetched_block: int | None
    ) -> ExplorerData:
        """Fetch a registry chain in-process (poller data source)."""
        if not endpoint.rpc_url:
            raise ValueError(f"{endpoint} has no RPC URL")

        return await self.fetch_explorer_data(
            chain_id=endpoint.chain_id,
            rpc_url=endpoint.rpc_url,
            coingecko_id=endpoint.coingecko_id,
            token_symbol=endpoint.token_symbol,
            current_blockchain_id=endpoint.blockchain_id,
            initial_load=initial_load,
            last_fetched_block=last_fetched_block,
        )

    def _window_size(self, latest: int, last_fetched_block: int | None) -> int:
        """Number of blocks to fetch walking down from ``latest``."""
        if last_fetched_block is not None and last_fetched_block > 0:
            return min(latest - last_fetched_block, self.config.fetcher.max_blocks_per_poll)
        return self.config.fetcher.initial_block_count

    async def _tolerant(self, description: str, call: Awaitable[T]) -> T | None:
        """Await a per-record RPC call, logging and dropping it on any failure.

        A node error, a timeout or an undecodable body for one block or
        receipt only loses that record.
        """
        try:
            return await call
        except Exception as e:
            logger.error(f"Failed to fetch {description}: {e}")
            return None

    async def fetch_explorer_data(
        self,
        chain_id: str,
        rpc_url: str,
        coingecko_id: str | None = None,
        token_symbol: str | None = None,
        current_blockchain_id: str | None = None,
        initial_load: bool = False,
        last_fetched_block: int | None = None
    ) -> ExplorerData:
        """Fetch explorer data for a chain.

        Args:
            chain_id: EVM chain id
            rpc_url: JSON-RPC endpoint of the chain
            coingecko_id: Market-data id of the native token, if any
            token_symbol: Native token symbol to report when no price is known
            current_blockchain_id: Hex blockchain id, used to fill ICM routes
            initial_load: First load of the chain (no receipts, historical ICM backfill)
            last_fetched_block: Highest block the caller already has

        Returns:
            ExplorerData snapshot or delta

        Raises:
            Web3Exception: If the node rejects the latest block number request
            Exception: Transport or decoding failures reading the latest block number
        """
        rpc = self._rpc_factory(rpc_url)
        latest = await rpc.block_number()

        if last_fetched_block is not None and last_fetched_block >= latest:
            logger.debug(f"Chain {chain_id}: no new blocks (latest {latest}, have {last_fetched_block})")
            return ExplorerData(
                stats=ExplorerStats(latest_block=latest),
                token_symbol=token_symbol,
            )

        count = self._window_size(latest, last_fetched_block)
        numbers = [latest - offset for offset in range(count) if latest - offset >= 0]
        results = await asyncio.gather(*(
            self._tolerant(f"block {number} of chain {chain_id}", rpc.get_block(number, True))
            for number in numbers
        ))
        raw_blocks: list[dict[str, Any]] = [block for block in results if block]

        receipts: dict[str, dict[str, Any]] = {}
        block_fees: list[int] = [0] * len(raw_blocks)
        if not initial_load:
            receipts = await self._fetch_receipts(rpc, chain_id, raw_blocks)
            for index, raw in enumerate(raw_blocks):
                block_fees[index] = sum(
                    _receipt_fee(receipts.get(tx["hash"])) for tx in _full_transactions(raw)
                )

        blocks = [
            _to_block(raw, gas_fee=wei_to_token(fee) if fee > 0 else None)
            for raw, fee in zip(raw_blocks, block_fees)
        ]

        transactions: list[Transaction] = []
        for raw in raw_blocks:
            timestamp = hex_to_int(raw.get("timestamp"))
            for tx in _full_transactions(raw):
                receipt = receipts.get(tx["hash"])
                route = (
                    extract_route(receipt.get("logs") or [], current_blockchain_id)
                    if is_cross_chain(receipt) else None
                )
                transactions.append(_to_transaction(tx, timestamp, route))

        icm_messages = [tx for tx in transactions if tx.is_cross_chain]
        if initial_load and latest > 0:
            historical = await self._fetch_historical_icm(rpc, chain_id, latest, current_blockchain_id)
            seen = {tx.hash for tx in icm_messages}
            for tx in historical:
                if tx.hash not in seen:
                    icm_messages.append(tx)
                    seen.add(tx.hash)
            icm_messages.sort(key=lambda tx: tx.block_number, reverse=True)

        gas_price = "0"
        try:
            gas_price = wei_to_gwei(await rpc.gas_price())
        except Exception as e:
            logger.debug(f"Chain {chain_id} does not report a gas price: {e}")

        total_transactions = await self.market_data.fetch_cumulative_txs(chain_id)
        history = (await self.market_data.fetch_daily_txs_by_chain()).get(chain_id, [])
        price = await self.market_data.fetch_price(coingecko_id) if coingecko_id else None

        stats = ExplorerStats(
            latest_block=latest,
            total_transactions=total_transactions,
            avg_block_time=_average_block_time(blocks),
            gas_price=f"{gas_price} Gwei",
            last_finalized_block=latest - 2,
            total_gas_fees_in_blocks=None if initial_load else wei_to_token(sum(block_fees)),
        )

        logger.debug(
            f"Chain {chain_id}: {len(blocks)} blocks, {len(transactions)} txs, "
            f"{len(icm_messages)} ICM messages up to block {latest}"
        )

        return ExplorerData(
            stats=stats,
            blocks=blocks,
            transactions=transactions[:self.config.fetcher.recent_transaction_limit],
            icm_messages=icm_messages,
            transaction_history=history,
            price=price,
            token_symbol=(price.symbol if price and price.symbol else None) or token_symbol,
        )

    async def _fetch_receipts(
        self,
        rpc: RpcUtility,
        chain_id: str,
        raw_blocks: list[dict[str, Any]]
    ) -> dict[str, dict[str, Any]]:
        """Fetch the receipts of every transaction in the blocks concurrently."""
        hashes = [tx["hash"] for raw in raw_blocks for tx in _full_transactions(raw)]
        results = await asyncio.gather(*(
            self._tolerant(f"receipt {tx_hash} of chain {chain_id}", rpc.get_transaction_receipt(tx_hash))
            for tx_hash in hashes
        ))
        return {tx_hash: receipt for tx_hash, receipt in zip(hashes, results) if receipt}

    async def _fetch_historical_icm(
        self,
        rpc: RpcUtility,
        chain_id: str,
        latest: int,
        current_blockchain_id: str | None
    ) -> list[Transaction]:
        """Backfill recent ICM messages from send/receive logs of the lookback range.

        Returns an empty list when the log query itself fails.
        """
        from_block = max(0, latest - self.config.fetcher.icm_lookback_blocks)
        try:
            logs = await rpc.get_logs(icm_log_filter(from_block, latest))
        except Exception as e:
            logger.error(f"Failed to fetch historical ICM messages of chain {chain_id}: {e}")
            return []

        # Logs come in block order; keep the newest log per transaction
        recent_logs: dict[str, dict[str, Any]] = {}
        for log in reversed(logs):
            if len(recent_logs) >= self.config.fetcher.historical_icm_limit:
                break
            tx_hash = log.get("transactionHash")
            if tx_hash and tx_hash not in recent_logs:
                recent_logs[tx_hash] = log

        if not recent_logs:
            return []

        tx_results, block_results = await asyncio.gather(
            asyncio.gather(*(
                self._tolerant(f"ICM transaction {tx_hash}", rpc.get_transaction(tx_hash))
                for tx_hash in recent_logs
            )),
            asyncio.gather(*(
                self._tolerant(
                    f"ICM block {log.get('blockNumber')}",
                    rpc.get_block(log.get("blockNumber") or 0, False)
                )
                for log in recent_logs.values()
            )),
        )

        messages: list[Transaction] = []
        for log, tx, block in zip(recent_logs.values(), tx_results, block_results):
            if not tx:
                continue
            route = extract_route([log], current_blockchain_id)
            timestamp = hex_to_int(block.get("timestamp")) if block else 0
            messages.append(_to_transaction(tx, timestamp, route))
        return messages

    async def fetch_block_detail(self, rpc_url: str, block_ref: int | str) -> BlockDetail | None:
        """Fetch one block with the summed fees of all its transactions.

        Args:
            rpc_url: JSON-RPC endpoint of the chain
            block_ref: Block number, or a 0x-prefixed quantity/tag

        Returns:
            BlockDetail, or None if the node does not know the block

        Raises:
            Web3Exception: If the node rejects the block or one of its receipts
            Exception: Transport or decoding failures
        """
        rpc = self._rpc_factory(rpc_url)
        raw = await rpc.get_block(block_ref, True)
        if not raw:
            return None

        transactions = raw.get("transactions") or []
        hashes = tuple(tx["hash"] if isinstance(tx, dict) else tx for tx in transactions)

        gas_fee: str | None = None
        if hashes:
            receipts = await asyncio.gather(*(rpc.get_transaction_receipt(tx_hash) for tx_hash in hashes))
            gas_fee = wei_to_token(sum(_receipt_fee(receipt) for receipt in receipts))

        base_fee = raw.get("baseFeePerGas")
        return BlockDetail(
            number=hex_to_int(raw.get("number")),
            hash=raw.get("hash", ""),
            parent_hash=raw.get("parentHash", ""),
            timestamp=hex_to_int(raw.get("timestamp")),
            miner=raw.get("miner", ""),
            transactions=hashes,
            gas_used=hex_to_int(raw.get("gasUsed")),
            gas_limit=hex_to_int(raw.get("gasLimit")),
            base_fee_per_gas=f"{wei_to_gwei(hex_to_int(base_fee), 2)} Gwei" if base_fee else None,
            gas_fee=gas_fee,
            size=hex_to_int(raw["size"]) if raw.get("size") else None,
            nonce=raw.get("nonce"),
            difficulty=hex_to_int(raw["difficulty"]) if raw.get("difficulty") else None,
            extra_data=raw.get("extraData"),
            state_root=raw.get("stateRoot"),
            receipts_root=raw.get("receiptsRoot"),
            transactions_root=raw.get("transactionsRoot"),
        )


def _full_transactions(raw_block: dict[str, Any]) -> list[dict[str, Any]]:
    """Transaction objects of a block fetched with full transactions."""
    return [tx for tx in raw_block.get("transactions") or [] if isinstance(tx, dict)]


def _receipt_fee(receipt: dict[str, Any] | None) -> int:
    """Fee paid by a transaction in wei (gasUsed * effectiveGasPrice)."""
    if not receipt or not receipt.get("gasUsed") or not receipt.get("effectiveGasPrice"):
        return 0
    return hex_to_int(receipt["gasUsed"]) * hex_to_int(receipt["effectiveGasPrice"])


def _average_block_time(blocks: list[Block]) -> float:
    """Mean spacing of consecutive blocks in seconds, rounded to 2 places."""
    if len(blocks) < 2:
        return DEFAULT_BLOCK_TIME
    diffs = [newer.timestamp - older.timestamp for newer, older in zip(blocks, blocks[1:])]
    return round(sum(diffs) / len(diffs), 2)


def _to_block(raw: dict[str, Any], gas_fee: str | None) -> Block:
    base_fee = raw.get("baseFeePerGas")
    return Block(
        number=hex_to_int(raw.get("number")),
        hash=raw.get("hash", ""),
        timestamp=hex_to_int(raw.get("timestamp")),
        miner=raw.get("miner") or "",
        transaction_count=len(raw.get("transactions") or []),
        gas_used=hex_to_int(raw.get("gasUsed")),
        gas_limit=hex_to_int(raw.get("gasLimit")),
        base_fee_per_gas=wei_to_gwei(hex_to_int(base_fee)) if base_fee else None,
        gas_fee=gas_fee,
    )


def _to_transaction(tx: dict[str, Any], timestamp: int, route: IcmRoute | None = None) -> Transaction:
    """Map an RPC transaction; a route marks it as an ICM message."""
    return Transaction(
        hash=tx["hash"],
        from_address=tx.get("from", ""),
        to_address=tx.get("to"),
        value=wei_to_token(hex_to_int(tx.get("value"))),
        block_number=hex_to_int(tx.get("blockNumber")),
        timestamp=timestamp,
        gas_price=wei_to_gwei(hex_to_int(tx.get("gasPrice"))),
        gas=hex_to_int(tx.get("gas")),
        is_cross_chain=route is not None,
        source_blockchain_id=route.source if route else None,
        destination_blockchain_id=route.destination if route else None,
    )
