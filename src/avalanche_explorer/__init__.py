"""
Avalanche Explorer package.

Multi-chain block/transaction explorer backend for Avalanche L1s: a per-chain
RPC fetcher served over HTTP and a live poller that merges every chain into
shared bounded buffers.
"""

from .aggregator import AccumulationBuffer, EcosystemAggregator
from .config import ExplorerConfig
from .fetcher import ExplorerFetcher
from .models import Block, ChainEndpoint, ExplorerData, Transaction
from .poller import MultiChainPoller
from .registry import ChainRegistry

__all__ = [
    "AccumulationBuffer",
    "Block",
    "ChainEndpoint",
    "ChainRegistry",
    "EcosystemAggregator",
    "ExplorerConfig",
    "ExplorerData",
    "ExplorerFetcher",
    "MultiChainPoller",
    "Transaction",
]
__version__ = "0.1.0"
