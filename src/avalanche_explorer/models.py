#!/usr/bin/env python3
"""Data models for the Avalanche Explorer.

This module provides immutable data classes for the chain registry entries,
the explorer records (blocks, transactions, ICM messages) and the API payloads
exchanged between the explorer API and the multi-chain poller.

All ``to_dict`` methods produce the camelCase wire format of the explorer API;
timestamps travel as ISO-8601 UTC strings and are kept as unix seconds in memory.
"""

from dataclasses import dataclass, field
from typing import Any

from .utils.hex_utility import iso_to_timestamp, timestamp_to_iso

DEFAULT_CHAIN_COLOR = "#6B7280"


@dataclass(frozen=True, slots=True)
class ChainInfo:
    """Display metadata of the chain a merged record came from.

    Attributes:
        chain_id: EVM chain id (decimal string)
        chain_name: Human readable chain name
        chain_slug: URL slug of the chain
        chain_logo_uri: Logo URL (may be empty)
        color: Brand color used for the chain
        token_symbol: Native token symbol
    """

    chain_id: str
    chain_name: str
    chain_slug: str = ""
    chain_logo_uri: str = ""
    color: str = DEFAULT_CHAIN_COLOR
    token_symbol: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "chainId": self.chain_id,
            "chainName": self.chain_name,
            "chainSlug": self.chain_slug,
            "chainLogoURI": self.chain_logo_uri,
            "color": self.color,
            "tokenSymbol": self.token_symbol,
        }


@dataclass(frozen=True, slots=True)
class ChainEndpoint:
    """Static configuration of one chain, loaded once from the chain registry.

    Registry entries are shared reference data: runtime state about a chain
    lives in the poller's ``ChainPollState``, never here.

    Attributes:
        chain_id: EVM chain id (decimal string)
        chain_name: Human readable chain name
        rpc_url: JSON-RPC endpoint, None when the chain exposes none
        token_symbol: Native token symbol
        coingecko_id: Market-data id of the native token
        blockchain_id: Avalanche blockchain id (hex) used for ICM correlation
        slug: URL slug
        logo_uri: Logo URL
        color: Brand color
        category: Registry category (e.g. "DeFi", "Gaming")
        explorers: (name, link) pairs of external block explorers
        is_testnet: Whether the chain is a testnet
    """

    chain_id: str
    chain_name: str
    rpc_url: str | None = None
    token_symbol: str | None = None
    coingecko_id: str | None = None
    blockchain_id: str | None = None
    slug: str = ""
    logo_uri: str = ""
    color: str = DEFAULT_CHAIN_COLOR
    category: str | None = None
    explorers: tuple[tuple[str, str], ...] = ()
    is_testnet: bool = False

    def __str__(self) -> str:
        """Human-readable string representation."""
        return f"ChainEndpoint({self.chain_name}, id={self.chain_id})"

    @classmethod
    def from_registry_entry(cls, entry: dict[str, Any]) -> "ChainEndpoint":
        """Build an endpoint from a chain registry JSON object.

        Raises:
            ValueError: If the entry has no chain id or name
        """
        chain_id = str(entry.get("chainId") or "").strip()
        chain_name = (entry.get("chainName") or "").strip()
        if not chain_id:
            raise ValueError(f"Registry entry without chainId: {entry!r}")
        if not chain_name:
            raise ValueError(f"Registry entry {chain_id} has no chainName")

        network_token = entry.get("networkToken") or {}
        explorers = tuple(
            (item.get("name", ""), item.get("link", ""))
            for item in entry.get("explorers") or []
        )

        return cls(
            chain_id=chain_id,
            chain_name=chain_name,
            rpc_url=entry.get("rpcUrl") or None,
            token_symbol=network_token.get("symbol") or entry.get("tokenSymbol") or None,
            coingecko_id=entry.get("coingeckoId") or None,
            blockchain_id=entry.get("blockchainId") or None,
            slug=entry.get("slug") or "",
            logo_uri=entry.get("chainLogoURI") or "",
            color=entry.get("color") or DEFAULT_CHAIN_COLOR,
            category=entry.get("category") or None,
            explorers=explorers,
            is_testnet=bool(entry.get("isTestnet", False)),
        )

    def chain_info(self, token_symbol: str | None = None) -> ChainInfo:
        """Origin metadata attached to records merged from this chain."""
        return ChainInfo(
            chain_id=self.chain_id,
            chain_name=self.chain_name,
            chain_slug=self.slug,
            chain_logo_uri=self.logo_uri,
            color=self.color,
            token_symbol=token_symbol or self.token_symbol or "N/A",
        )


@dataclass(frozen=True, slots=True)
class Block:
    """A block as shown by the explorer.

    Attributes:
        number: Block number
        hash: Block hash (with 0x prefix)
        timestamp: Block timestamp (unix seconds)
        miner: Fee recipient address
        transaction_count: Number of transactions in the block
        gas_used: Gas used by the block
        gas_limit: Block gas limit
        base_fee_per_gas: Base fee in gwei, None on non EIP-1559 chains
        gas_fee: Sum of transaction fees in native token, None without receipts
        chain: Origin chain, set when merged into the ecosystem buffers
    """

    number: int
    hash: str
    timestamp: int
    miner: str
    transaction_count: int
    gas_used: int
    gas_limit: int
    base_fee_per_gas: str | None = None
    gas_fee: str | None = None
    chain: ChainInfo | None = None

    def __str__(self) -> str:
        """Human-readable string representation."""
        return f"Block(number={self.number}, txs={self.transaction_count}, hash={self.hash[:10]}...)"

    @property
    def unique_key(self) -> tuple[str | None, int]:
        """Deduplication key across chains: (chain id, block number)."""
        return (self.chain.chain_id if self.chain else None, self.number)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "number": str(self.number),
            "hash": self.hash,
            "timestamp": timestamp_to_iso(self.timestamp),
            "miner": self.miner,
            "transactionCount": self.transaction_count,
            "gasUsed": str(self.gas_used),
            "gasLimit": str(self.gas_limit),
        }
        if self.base_fee_per_gas is not None:
            data["baseFeePerGas"] = self.base_fee_per_gas
        if self.gas_fee is not None:
            data["gasFee"] = self.gas_fee
        if self.chain is not None:
            data["chain"] = self.chain.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Block":
        """Parse a block from the explorer API wire format."""
        return cls(
            number=int(data["number"]),
            hash=data["hash"],
            timestamp=iso_to_timestamp(data["timestamp"]),
            miner=data.get("miner", ""),
            transaction_count=int(data.get("transactionCount", 0)),
            gas_used=int(data.get("gasUsed", 0)),
            gas_limit=int(data.get("gasLimit", 0)),
            base_fee_per_gas=data.get("baseFeePerGas"),
            gas_fee=data.get("gasFee"),
        )


@dataclass(frozen=True, slots=True)
class Transaction:
    """A transaction as shown by the explorer; ICM messages use the same shape.

    Attributes:
        hash: Transaction hash
        from_address: Sender address
        to_address: Recipient address, None for contract creation
        value: Transferred value in native token (6 decimals)
        block_number: Block the transaction was included in
        timestamp: Block timestamp (unix seconds)
        gas_price: Gas price in gwei (4 decimals)
        gas: Gas limit of the transaction
        is_cross_chain: Whether a receipt log matched a known ICM topic
        source_blockchain_id: Source blockchain id (hex), cross-chain only
        destination_blockchain_id: Destination blockchain id (hex), cross-chain only
        chain: Origin chain, set when merged into the ecosystem buffers
    """

    hash: str
    from_address: str
    to_address: str | None
    value: str
    block_number: int
    timestamp: int
    gas_price: str
    gas: int
    is_cross_chain: bool = False
    source_blockchain_id: str | None = None
    destination_blockchain_id: str | None = None
    chain: ChainInfo | None = None

    def __str__(self) -> str:
        """Human-readable string representation."""
        kind = "ICM" if self.is_cross_chain else "TX"
        return f"Transaction({kind} {self.hash[:10]}..., block={self.block_number})"

    @property
    def unique_key(self) -> str:
        """Deduplication key: the transaction hash."""
        return self.hash

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "hash": self.hash,
            "from": self.from_address,
            "to": self.to_address,
            "value": self.value,
            "blockNumber": str(self.block_number),
            "timestamp": timestamp_to_iso(self.timestamp),
            "gasPrice": self.gas_price,
            "gas": str(self.gas),
            "isCrossChain": self.is_cross_chain,
        }
        if self.is_cross_chain:
            data["sourceBlockchainId"] = self.source_blockchain_id
            data["destinationBlockchainId"] = self.destination_blockchain_id
        if self.chain is not None:
            data["chain"] = self.chain.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Transaction":
        """Parse a transaction from the explorer API wire format."""
        return cls(
            hash=data["hash"],
            from_address=data.get("from", ""),
            to_address=data.get("to"),
            value=data.get("value", "0.000000"),
            block_number=int(data["blockNumber"]),
            timestamp=iso_to_timestamp(data["timestamp"]),
            gas_price=data.get("gasPrice", "0.0000"),
            gas=int(str(data.get("gas", 0)).replace(",", "")),
            is_cross_chain=bool(data.get("isCrossChain", False)),
            source_blockchain_id=data.get("sourceBlockchainId"),
            destination_blockchain_id=data.get("destinationBlockchainId"),
        )


@dataclass(frozen=True, slots=True)
class ExplorerStats:
    """Summary statistics of one chain.

    ``total_transactions`` comes from the indexing service; the explorer only
    ever sees a window of recent blocks.
    """

    latest_block: int
    total_transactions: int = 0
    avg_block_time: float = 0.0
    gas_price: str = "0"
    last_finalized_block: int | None = None
    total_gas_fees_in_blocks: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "latestBlock": self.latest_block,
            "totalTransactions": self.total_transactions,
            "avgBlockTime": self.avg_block_time,
            "gasPrice": self.gas_price,
        }
        if self.last_finalized_block is not None:
            data["lastFinalizedBlock"] = self.last_finalized_block
        if self.total_gas_fees_in_blocks is not None:
            data["totalGasFeesInBlocks"] = self.total_gas_fees_in_blocks
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExplorerStats":
        """Parse stats from the explorer API wire format."""
        return cls(
            latest_block=int(data.get("latestBlock", 0)),
            total_transactions=int(data.get("totalTransactions", 0)),
            avg_block_time=float(data.get("avgBlockTime", 0)),
            gas_price=data.get("gasPrice", "0"),
            last_finalized_block=data.get("lastFinalizedBlock"),
            total_gas_fees_in_blocks=data.get("totalGasFeesInBlocks"),
        )


@dataclass(frozen=True, slots=True)
class TransactionHistoryPoint:
    """Daily transaction count of a chain (date is ISO ``YYYY-MM-DD``)."""

    date: str
    transactions: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"date": self.date, "transactions": self.transactions}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransactionHistoryPoint":
        return cls(date=data["date"], transactions=int(data.get("transactions", 0)))


@dataclass(frozen=True, slots=True)
class PriceData:
    """Market data of a chain's native token."""

    price: float
    change_24h: float = 0.0
    market_cap: float = 0.0
    volume_24h: float = 0.0
    price_in_avax: float | None = None
    total_supply: float | None = None
    symbol: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "price": self.price,
            "priceInAvax": self.price_in_avax,
            "change24h": self.change_24h,
            "marketCap": self.market_cap,
            "volume24h": self.volume_24h,
            "totalSupply": self.total_supply,
            "symbol": self.symbol,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PriceData":
        return cls(
            price=float(data.get("price", 0)),
            change_24h=float(data.get("change24h", 0)),
            market_cap=float(data.get("marketCap", 0)),
            volume_24h=float(data.get("volume24h", 0)),
            price_in_avax=data.get("priceInAvax"),
            total_supply=data.get("totalSupply"),
            symbol=data.get("symbol"),
        )


@dataclass(frozen=True, slots=True)
class ExplorerData:
    """One fetch result for a chain: a snapshot on first load, a delta afterwards.

    ``transaction_history`` is None when the response carries no history
    (no-op polls), which tells consumers to keep what they already have.
    """

    stats: ExplorerStats
    blocks: list[Block] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    icm_messages: list[Transaction] = field(default_factory=list)
    transaction_history: list[TransactionHistoryPoint] | None = None
    price: PriceData | None = None
    token_symbol: str | None = None

    @property
    def is_empty_delta(self) -> bool:
        """True when the fetch found nothing newer than the caller's cursor."""
        return not self.blocks and not self.transactions and not self.icm_messages

    @property
    def highest_block(self) -> int | None:
        """Highest block number in this result, None if it has no blocks."""
        if not self.blocks:
            return None
        return max(block.number for block in self.blocks)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "stats": self.stats.to_dict(),
            "blocks": [block.to_dict() for block in self.blocks],
            "transactions": [tx.to_dict() for tx in self.transactions],
            "icmMessages": [tx.to_dict() for tx in self.icm_messages],
            "tokenSymbol": self.token_symbol,
        }
        if self.transaction_history is not None:
            data["transactionHistory"] = [point.to_dict() for point in self.transaction_history]
        if self.price is not None:
            data["price"] = self.price.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExplorerData":
        """Parse an explorer API response body."""
        history = data.get("transactionHistory")
        price = data.get("price")
        return cls(
            stats=ExplorerStats.from_dict(data.get("stats") or {}),
            blocks=[Block.from_dict(item) for item in data.get("blocks") or []],
            transactions=[Transaction.from_dict(item) for item in data.get("transactions") or []],
            icm_messages=[Transaction.from_dict(item) for item in data.get("icmMessages") or []],
            transaction_history=(
                [TransactionHistoryPoint.from_dict(item) for item in history]
                if history is not None else None
            ),
            price=PriceData.from_dict(price) if price else None,
            token_symbol=data.get("tokenSymbol"),
        )


@dataclass(frozen=True, slots=True)
class BlockDetail:
    """Full detail of a single block, including the summed fees of its transactions."""

    number: int
    hash: str
    parent_hash: str
    timestamp: int
    miner: str
    transactions: tuple[str, ...]
    gas_used: int
    gas_limit: int
    base_fee_per_gas: str | None = None
    gas_fee: str | None = None
    size: int | None = None
    nonce: str | None = None
    difficulty: int | None = None
    extra_data: str | None = None
    state_root: str | None = None
    receipts_root: str | None = None
    transactions_root: str | None = None

    @property
    def transaction_count(self) -> int:
        return len(self.transactions)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "number": str(self.number),
            "hash": self.hash,
            "parentHash": self.parent_hash,
            "timestamp": timestamp_to_iso(self.timestamp),
            "miner": self.miner,
            "transactionCount": self.transaction_count,
            "transactions": list(self.transactions),
            "gasUsed": str(self.gas_used),
            "gasLimit": str(self.gas_limit),
            "baseFeePerGas": self.base_fee_per_gas,
            "gasFee": self.gas_fee,
            "size": str(self.size) if self.size is not None else None,
            "nonce": self.nonce,
            "difficulty": str(self.difficulty) if self.difficulty is not None else None,
            "extraData": self.extra_data,
            "stateRoot": self.state_root,
            "receiptsRoot": self.receipts_root,
            "transactionsRoot": self.transactions_root,
        }
