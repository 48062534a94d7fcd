#!/usr/bin/env python3
"""
Multi-chain poller.

Polls every chain independently on its own timer, feeding successful results
into the ``EcosystemAggregator``. A chain whose initial load keeps failing is
marked passive and never polled again; failures after a successful initial
load are logged and retried on the next tick.
"""

import asyncio
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

from .aggregator import EcosystemAggregator
from .config import PollingConfig
from .fetcher import ChainDataSource
from .models import ChainEndpoint, ExplorerData

logger = logging.getLogger(__name__)


class PollPhase(Enum):
    """Lifecycle phase of a polled chain."""
    INITIALIZING = "initializing"
    POLLING = "polling"
    PASSIVE = "passive"


@dataclass(slots=True)
class ChainPollState:
    """Mutable runtime state of one polled chain.

    Attributes:
        endpoint: Registry entry of the chain
        last_fetched_block: Highest block number merged so far (never decreases)
        is_first_load: True until the initial load succeeds
        retry_count: Failed initial-load attempts
        is_passive: Permanently excluded from polling
        in_flight: A fetch is outstanding
        timer: Handle of the scheduled next poll
    """

    endpoint: ChainEndpoint
    last_fetched_block: int | None = None
    is_first_load: bool = True
    retry_count: int = 0
    is_passive: bool = False
    in_flight: bool = False
    timer: asyncio.TimerHandle | None = None

    @property
    def phase(self) -> PollPhase:
        if self.is_passive:
            return PollPhase.PASSIVE
        if self.is_first_load:
            return PollPhase.INITIALIZING
        return PollPhase.POLLING

    def advance_cursor(self, highest_block: int | None) -> None:
        """Move the cursor forward to ``highest_block``; never backwards."""
        if highest_block is None:
            return
        if self.last_fetched_block is None or highest_block > self.last_fetched_block:
            self.last_fetched_block = highest_block

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class PollStateStore:
    """Poll states of all chains, keyed by chain id, in polling order."""

    def __init__(self, endpoints: Iterable[ChainEndpoint]) -> None:
        self._states: dict[str, ChainPollState] = {}
        for endpoint in endpoints:
            self._states.setdefault(endpoint.chain_id, ChainPollState(endpoint=endpoint))

    def __getitem__(self, chain_id: str) -> ChainPollState:
        return self._states[chain_id]

    def __iter__(self) -> Iterator[ChainPollState]:
        return iter(self._states.values())

    def __len__(self) -> int:
        return len(self._states)

    def get(self, chain_id: str) -> ChainPollState | None:
        return self._states.get(chain_id)

    @property
    def passive_count(self) -> int:
        return sum(1 for state in self if state.is_passive)

    @property
    def active_count(self) -> int:
        return len(self) - self.passive_count

    @property
    def completed_initial_loads(self) -> int:
        """Chains whose initial load is over, successfully or by going passive."""
        return sum(1 for state in self if state.is_passive or not state.is_first_load)


@dataclass(frozen=True, slots=True)
class PollerStatus:
    """Point-in-time snapshot of the poller."""

    total_chains: int
    active_chains: int
    passive_chains: int
    completed_initial_loads: int
    blocks: int
    transactions: int
    icm_messages: int
    total_transactions: int
    tps: float | None
    blocks_per_second: float | None
    icm_per_second: float | None

    def __str__(self) -> str:
        return (
            f"{self.active_chains} of {self.total_chains} chains responding "
            f"({self.completed_initial_loads} loaded, {self.passive_chains} passive), "
            f"buffers: {self.blocks} blocks / {self.transactions} txs / {self.icm_messages} ICM, "
            f"TPS: {self.tps if self.tps is not None else 'warming up'}, "
            f"blocks/s: {self.blocks_per_second if self.blocks_per_second is not None else 'warming up'}, "
            f"ICM/s: {self.icm_per_second if self.icm_per_second is not None else 'n/a'}"
        )


class MultiChainPoller:
    """Staggered, per-chain polling of a fixed set of chains."""

    def __init__(
        self,
        endpoints: Iterable[ChainEndpoint],
        source: ChainDataSource,
        aggregator: EcosystemAggregator,
        config: PollingConfig
    ) -> None:
        """Initialize the poller.

        Args:
            endpoints: Chains to poll, in staggering order
            source: Where explorer data comes from (in-process fetcher or remote API)
            aggregator: Receives successful fetch results
            config: Polling configuration
        """
        self.source: ChainDataSource = source
        self.aggregator: EcosystemAggregator = aggregator
        self.config: PollingConfig = config
        self.states: PollStateStore = PollStateStore(endpoints)

        self.running: bool = False
        self.shutdown_event = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

    def start(self) -> None:
        """Schedule the first poll of every chain, staggered by ``stagger_delay``.

        Must be called from within a running event loop.
        """
        loop = asyncio.get_running_loop()
        self.running = True
        self.shutdown_event.clear()

        for index, state in enumerate(self.states):
            state.timer = loop.call_later(
                index * self.config.stagger_delay, self._spawn_poll, state.endpoint.chain_id
            )
        logger.info(f"Polling {len(self.states)} chains every {self.config.poll_interval}s")

    def _spawn_poll(self, chain_id: str) -> None:
        if not self.running:
            return
        task = asyncio.create_task(self.poll_chain(chain_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _schedule_next(self, state: ChainPollState) -> None:
        if not self.running or state.is_passive:
            return
        loop = asyncio.get_running_loop()
        state.timer = loop.call_later(self.config.poll_interval, self._spawn_poll, state.endpoint.chain_id)

    async def poll_chain(self, chain_id: str) -> None:
        """Run one poll of a chain and schedule the next one.

        Does nothing for passive chains, while a fetch for the chain is still
        outstanding, or once the poller is stopped.
        """
        state = self.states[chain_id]
        if state.is_passive or state.in_flight or not self.running:
            return

        state.cancel_timer()
        state.in_flight = True
        is_first_load = state.is_first_load

        try:
            data = await asyncio.wait_for(
                self.source.fetch_chain(
                    state.endpoint,
                    is_first_load,
                    None if is_first_load else state.last_fetched_block,
                ),
                timeout=self.config.request_timeout,
            )
            if self.running:
                self._apply(state, data, is_first_load)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self.running:
                self._handle_failure(state, is_first_load, e)
        finally:
            state.in_flight = False
            self._schedule_next(state)

    def _apply(self, state: ChainPollState, data: ExplorerData, is_first_load: bool) -> None:
        state.advance_cursor(data.highest_block)
        result = self.aggregator.ingest(state.endpoint, data, is_first_load)

        for message in result.icm_messages:
            source, destination = self.aggregator.resolve_icm_route(message)
            logger.debug(
                f"ICM {message.hash}: {source.chain_name if source else 'unknown'} -> "
                f"{destination.chain_name if destination else 'unknown'}"
            )

        if is_first_load:
            state.is_first_load = False
            state.retry_count = 0
            logger.info(f"Initial load of {state.endpoint.chain_name} complete at block {state.last_fetched_block}")

    def _handle_failure(self, state: ChainPollState, is_first_load: bool, error: Exception) -> None:
        name = state.endpoint.chain_name
        reason = str(error) or type(error).__name__
        logger.warning(f"Error fetching {name}: {reason}")

        if not is_first_load:
            return

        state.retry_count += 1
        if state.retry_count >= self.config.max_initial_retries:
            state.is_passive = True
            state.cancel_timer()
            logger.warning(f"Marking {name} as passive after {state.retry_count} failed attempts")

    def status(self, now: float | None = None) -> PollerStatus:
        """Snapshot of chain liveness, buffer sizes and ecosystem rates."""
        active = self.states.active_count
        return PollerStatus(
            total_chains=len(self.states),
            active_chains=active,
            passive_chains=self.states.passive_count,
            completed_initial_loads=self.states.completed_initial_loads,
            blocks=len(self.aggregator.blocks),
            transactions=len(self.aggregator.transactions),
            icm_messages=len(self.aggregator.icm_messages),
            total_transactions=self.aggregator.total_transactions(),
            tps=self.aggregator.tps(active),
            blocks_per_second=self.aggregator.blocks_per_second(active),
            icm_per_second=self.aggregator.icm_per_second(now),
        )

    def stop(self) -> None:
        """Stop polling: no further fetches are started and pending timers are cancelled."""
        self.running = False
        for state in self.states:
            state.cancel_timer()
        self.shutdown_event.set()

    async def _cleanup_tasks(self) -> None:
        """Cancel outstanding fetches."""
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def run(self) -> None:
        """Poll until ``stop()`` is called, logging status periodically."""
        logger.info("Multi-chain poller starting...")
        self.start()

        try:
            while self.running:
                try:
                    await asyncio.wait_for(
                        self.shutdown_event.wait(), timeout=self.config.status_log_interval
                    )
                    break
                except asyncio.TimeoutError:
                    logger.info(f"Status: {self.status()}")
        finally:
            self.stop()
            await self._cleanup_tasks()
            logger.info("Multi-chain poller stopped")
