"""
Async EVM node access through web3.

``RpcUtility`` wraps one ``AsyncWeb3`` instance per RPC URL and hands back
plain dicts (hashes as 0x strings, quantities as ints), so callers never deal
with web3's AttributeDict and HexBytes types.
"""

import logging
from collections.abc import Mapping
from typing import Any

from aiohttp import ClientTimeout
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import BlockNotFound, TransactionNotFound
from web3.providers.async_base import AsyncBaseProvider

logger = logging.getLogger(__name__)


def to_plain(value: Any) -> Any:
    """Recursively turn web3 results into JSON-like Python values."""
    match value:
        case bytes():
            return Web3.to_hex(value)
        case Mapping():
            return {key: to_plain(item) for key, item in value.items()}
        case list() | tuple():
            return [to_plain(item) for item in value]
        case _:
            return value


class RpcUtility:
    """Reads blocks, transactions, receipts and logs from one EVM node.

    Errors raised by web3 (``Web3RPCError`` for JSON-RPC error objects, other
    ``Web3Exception`` subclasses, transport and decoding errors) propagate to
    the caller. Unknown blocks and transactions are returned as None.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 10.0,
        provider: AsyncBaseProvider | None = None
    ) -> None:
        """Initialize the RPC utility.

        Args:
            rpc_url: HTTP(S) URL of the node
            timeout: Request timeout in seconds
            provider: Optional provider override (used by tests)
        """
        self.rpc_url: str = rpc_url
        self.w3 = AsyncWeb3(provider or AsyncHTTPProvider(
            rpc_url,
            request_kwargs={'timeout': ClientTimeout(total=timeout)}
        ))

    async def block_number(self) -> int:
        """Return the latest block number."""
        return await self.w3.eth.block_number

    async def get_block(self, block_ref: int | str, full_transactions: bool = False) -> dict[str, Any] | None:
        """Fetch a block by number, 0x quantity, hash or tag such as "latest"."""
        try:
            block = await self.w3.eth.get_block(block_ref, full_transactions)
        except BlockNotFound:
            logger.debug(f"Block {block_ref} not found at {self.rpc_url}")
            return None
        return to_plain(block)

    async def get_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        try:
            return to_plain(await self.w3.eth.get_transaction(tx_hash))
        except TransactionNotFound:
            return None

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        try:
            return to_plain(await self.w3.eth.get_transaction_receipt(tx_hash))
        except TransactionNotFound:
            return None

    async def get_logs(self, log_filter: dict[str, Any]) -> list[dict[str, Any]]:
        """Run a log query with the given filter object."""
        return to_plain(await self.w3.eth.get_logs(log_filter))

    async def gas_price(self) -> int:
        """Return the node's suggested gas price in wei."""
        return await self.w3.eth.gas_price
