#!/usr/bin/env python3
"""
Ecosystem-wide aggregation of per-chain explorer results.

Blocks, transactions and ICM messages from every chain are merged into bounded,
deduplicated buffers ordered newest first. Throughput figures (TPS, blocks per
second, ICM messages per second) and the ecosystem transaction history are
derived from those buffers and the per-chain stats.
"""

import logging
import time
from collections.abc import Callable, Hashable, Iterable, Iterator
from dataclasses import dataclass, replace
from operator import attrgetter
from typing import Generic, TypeVar

from .config import PollingConfig
from .models import (
    Block,
    ChainEndpoint,
    ChainInfo,
    ExplorerData,
    ExplorerStats,
    Transaction,
    TransactionHistoryPoint,
)
from .registry import ChainRegistry

logger = logging.getLogger(__name__)

HISTORY_DAYS = 14

T = TypeVar("T")

InsertCallback = Callable[[list[Hashable]], None]


class AccumulationBuffer(Generic[T]):
    """Bounded, deduplicated collection of records ordered by timestamp, newest first.

    A record whose key is already present is never inserted again, so merging
    the same batch twice leaves the buffer unchanged. Ties in timestamp keep
    their insertion order (new records ahead of older ones).
    """

    def __init__(
        self,
        capacity: int,
        key: Callable[[T], Hashable] = attrgetter("unique_key"),
        timestamp: Callable[[T], int] = attrgetter("timestamp"),
        name: str = "buffer"
    ) -> None:
        if capacity < 0:
            raise ValueError(f"Buffer capacity must be non-negative, got {capacity}")
        self.capacity: int = capacity
        self.name: str = name
        self._key = key
        self._timestamp = timestamp
        self._records: list[T] = []
        self._subscribers: list[InsertCallback] = []

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[T]:
        return iter(self._records)

    @property
    def records(self) -> tuple[T, ...]:
        return tuple(self._records)

    def head(self, count: int) -> list[T]:
        """The ``count`` newest records."""
        return self._records[:max(count, 0)]

    def subscribe(self, callback: InsertCallback) -> Callable[[], None]:
        """Register a callback receiving the keys of inserted records.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)
        return lambda: self._subscribers.remove(callback)

    def merge(self, records: Iterable[T]) -> list[T]:
        """Merge a batch into the buffer.

        Args:
            records: Candidate records (may contain duplicates)

        Returns:
            The records that were not present before, in batch order
        """
        seen = {self._key(record) for record in self._records}
        new_records: list[T] = []
        for record in records:
            key = self._key(record)
            if key in seen:
                continue
            seen.add(key)
            new_records.append(record)

        if not new_records:
            return []

        merged = new_records + self._records
        merged.sort(key=self._timestamp, reverse=True)
        self._records = merged[:self.capacity]

        inserted = [self._key(record) for record in new_records]
        for callback in list(self._subscribers):
            callback(inserted)

        return new_records


@dataclass(frozen=True, slots=True)
class IngestResult:
    """Records of one fetch that were new to the ecosystem buffers."""

    blocks: list[Block]
    transactions: list[Transaction]
    icm_messages: list[Transaction]


class EcosystemAggregator:
    """Merges fetch results of all chains and derives ecosystem metrics."""

    def __init__(self, registry: ChainRegistry, chain_count: int, config: PollingConfig) -> None:
        """Initialize the aggregator.

        Args:
            registry: Chain registry used to resolve ICM routes
            chain_count: Number of chains being polled (sizes the block buffer)
            config: Polling configuration with buffer limits and rate windows
        """
        self.registry: ChainRegistry = registry
        self.config: PollingConfig = config

        self.blocks: AccumulationBuffer[Block] = AccumulationBuffer(
            chain_count * config.blocks_per_chain, name="blocks"
        )
        self.transactions: AccumulationBuffer[Transaction] = AccumulationBuffer(
            config.transaction_limit, name="transactions"
        )
        self.icm_messages: AccumulationBuffer[Transaction] = AccumulationBuffer(
            config.icm_limit, name="icm-messages"
        )

        self._chain_stats: dict[str, ExplorerStats] = {}
        self._histories: dict[str, list[TransactionHistoryPoint]] = {}

    def ingest(self, endpoint: ChainEndpoint, data: ExplorerData, is_first_load: bool) -> IngestResult:
        """Merge one successful fetch of a chain.

        Args:
            endpoint: Chain the data was fetched from
            data: Fetch result
            is_first_load: Whether this was the chain's initial load

        Returns:
            The records that were new to each buffer
        """
        info = endpoint.chain_info(data.token_symbol)

        result = IngestResult(
            blocks=self.blocks.merge(replace(block, chain=info) for block in data.blocks),
            transactions=self.transactions.merge(replace(tx, chain=info) for tx in data.transactions),
            icm_messages=self.icm_messages.merge(replace(tx, chain=info) for tx in data.icm_messages),
        )

        # Only the initial load reports the lifetime transaction count
        if is_first_load:
            self._chain_stats[endpoint.chain_id] = data.stats
        elif (existing := self._chain_stats.get(endpoint.chain_id)) is not None:
            self._chain_stats[endpoint.chain_id] = replace(
                data.stats, total_transactions=existing.total_transactions
            )

        if is_first_load and data.transaction_history:
            self._histories[endpoint.chain_id] = list(data.transaction_history)

        if result.blocks or result.icm_messages:
            logger.debug(
                f"{endpoint.chain_name}: +{len(result.blocks)} blocks, "
                f"+{len(result.transactions)} txs, +{len(result.icm_messages)} ICM"
            )
        return result

    def chain_stats(self, chain_id: str) -> ExplorerStats | None:
        return self._chain_stats.get(chain_id)

    def total_transactions(self) -> int:
        """Sum of the lifetime transaction counts of all chains."""
        return sum(stats.total_transactions for stats in self._chain_stats.values())

    def _rate_window(self, active_chains: int) -> tuple[list[Block], int] | None:
        """Newest blocks used for rates and their time span, or None while warming up."""
        if len(self.blocks) < 2 or len(self.blocks) < active_chains * self.config.rate_warmup_blocks_per_chain:
            return None

        window = self.blocks.head(active_chains * self.config.rate_window_blocks_per_chain)
        if len(window) < 2:
            return None

        span = window[0].timestamp - window[-1].timestamp
        if span <= 0:
            return None
        return window, span

    def tps(self, active_chains: int) -> float | None:
        """Ecosystem transactions per second over the newest blocks."""
        rate_window = self._rate_window(active_chains)
        if rate_window is None:
            return None
        window, span = rate_window
        return round(sum(block.transaction_count for block in window) / span, 2)

    def blocks_per_second(self, active_chains: int) -> float | None:
        """Ecosystem blocks per second over the newest blocks."""
        rate_window = self._rate_window(active_chains)
        if rate_window is None:
            return None
        window, span = rate_window
        return round(len(window) / span, 2)

    def icm_per_second(self, now: float | None = None) -> float | None:
        """ICM messages per second.

        Counts messages in the trailing window ending at ``now``; with fewer
        than two recent messages, falls back to the time span of the newest
        buffered messages.
        """
        if len(self.icm_messages) < 2:
            return None

        now = time.time() if now is None else now
        window = self.config.icm_rate_window
        recent = [message for message in self.icm_messages if now - message.timestamp <= window]
        if len(recent) >= 2:
            return round(len(recent) / window, 3)

        newest = self.icm_messages.head(self.config.icm_rate_fallback_count)
        span = newest[0].timestamp - newest[-1].timestamp
        if span <= 0:
            return None
        return round(len(newest) / span, 3)

    def aggregated_history(self) -> list[TransactionHistoryPoint]:
        """Daily transactions summed over all chains, most recent 14 days."""
        totals: dict[str, int] = {}
        for history in self._histories.values():
            for point in history:
                totals[point.date] = totals.get(point.date, 0) + point.transactions

        return [
            TransactionHistoryPoint(date=date, transactions=count)
            for date, count in sorted(totals.items())[-HISTORY_DAYS:]
        ]

    def resolve_icm_route(self, message: Transaction) -> tuple[ChainInfo | None, ChainInfo | None]:
        """Registry chains of an ICM message's source and destination (None if unknown)."""
        source = self.registry.find_by_blockchain_id(message.source_blockchain_id)
        destination = self.registry.find_by_blockchain_id(message.destination_blockchain_id)
        return (
            source.chain_info() if source else None,
            destination.chain_info() if destination else None,
        )


class HighlightTracker:
    """Remembers recently inserted keys for a short time.

    Subscribes to a buffer's insert events; a key stays highlighted for
    ``duration`` seconds after its insertion.
    """

    def __init__(self, duration: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.duration: float = duration
        self._clock = clock
        self._expiry: dict[Hashable, float] = {}

    def track(self, buffer: AccumulationBuffer) -> Callable[[], None]:
        return buffer.subscribe(self._on_insert)

    def _on_insert(self, keys: list[Hashable]) -> None:
        expires_at = self._clock() + self.duration
        for key in keys:
            self._expiry[key] = expires_at

    def is_highlighted(self, key: Hashable) -> bool:
        expires_at = self._expiry.get(key)
        return expires_at is not None and self._clock() < expires_at

    def active_keys(self) -> set[Hashable]:
        """Currently highlighted keys; expired ones are dropped."""
        now = self._clock()
        self._expiry = {key: expires_at for key, expires_at in self._expiry.items() if now < expires_at}
        return set(self._expiry)
