"""Read-only registry of the Avalanche L1 chains the explorer knows about."""

import json
import logging
from pathlib import Path
from typing import Any

from .models import ChainEndpoint, ChainInfo

logger = logging.getLogger(__name__)

BUNDLED_REGISTRY_PATH: Path = Path(__file__).parent / "data" / "l1_chains.json"


class ChainRegistry:
    """Chain metadata loaded once at startup.

    Entries are immutable ``ChainEndpoint`` values kept in file order; the
    order of ``pollable_chains()`` is the stable list the poller staggers over.
    """

    def __init__(self, endpoints: list[ChainEndpoint]) -> None:
        self._endpoints: list[ChainEndpoint] = []
        self._by_id: dict[str, ChainEndpoint] = {}
        self._by_blockchain_id: dict[str, ChainEndpoint] = {}

        for endpoint in endpoints:
            if endpoint.chain_id in self._by_id:
                logger.warning(f"Duplicate registry entry for chain {endpoint.chain_id}, keeping the first")
                continue
            self._endpoints.append(endpoint)
            self._by_id[endpoint.chain_id] = endpoint
            if endpoint.blockchain_id:
                self._by_blockchain_id[endpoint.blockchain_id.lower()] = endpoint

    @classmethod
    def load(cls, path: Path | None = None) -> "ChainRegistry":
        """Load the registry from a JSON file (the bundled one by default).

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not a JSON list of chain entries
        """
        registry_path = Path(path) if path else BUNDLED_REGISTRY_PATH
        with registry_path.open() as file:
            raw: Any = json.load(file)

        if not isinstance(raw, list):
            raise ValueError(f"Chain registry {registry_path} must contain a JSON list")

        registry = cls([ChainEndpoint.from_registry_entry(entry) for entry in raw])
        logger.info(f"Loaded {len(registry)} chains from {registry_path}")
        return registry

    def __len__(self) -> int:
        return len(self._endpoints)

    def __iter__(self):
        return iter(self._endpoints)

    def get(self, chain_id: str) -> ChainEndpoint | None:
        return self._by_id.get(str(chain_id))

    def find_by_blockchain_id(self, blockchain_id: str | None) -> ChainEndpoint | None:
        """Find the chain with the given hex blockchain id (case-insensitive)."""
        if not blockchain_id:
            return None
        return self._by_blockchain_id.get(blockchain_id.lower())

    def mainnet_chains(self) -> list[ChainEndpoint]:
        return [endpoint for endpoint in self._endpoints if not endpoint.is_testnet]

    def pollable_chains(self) -> list[ChainEndpoint]:
        """Mainnet chains with an RPC URL, in registry order."""
        return [endpoint for endpoint in self.mainnet_chains() if endpoint.rpc_url]

    def chain_info(self, chain_id: str, token_symbol: str | None = None) -> ChainInfo | None:
        endpoint = self.get(chain_id)
        if endpoint is None:
            return None
        return endpoint.chain_info(token_symbol)
