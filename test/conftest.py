"""Shared fixtures: a deterministic fake EVM node plugged into web3 as an async provider."""

import json
from typing import Any
from unittest.mock import MagicMock

import pytest
from web3.providers.async_base import AsyncBaseProvider
from web3.types import RPCEndpoint, RPCResponse

from avalanche_explorer.config import ExplorerConfig
from avalanche_explorer.market_data import MarketDataClient
from avalanche_explorer.models import ChainEndpoint
from avalanche_explorer.utils.rpc_utility import RpcUtility

GENESIS_TIMESTAMP = 1_700_000_000
GWEI = 10**9

# 71,000 gas at 25 gwei = 0.001775 of the native token
RECEIPT_GAS_USED = 71_000
EFFECTIVE_GAS_PRICE = 25 * GWEI

CURRENT_BLOCKCHAIN_ID = "0x0427d4b22a2a78bcddd456742caf91b56badbff985ee19aef14573e7343fd652"
REMOTE_BLOCKCHAIN_ID = "0x" + "ab" * 32


def tx_hash(block_number: int, index: int) -> str:
    """Deterministic transaction hash encoding its block and position."""
    return f"0x{block_number:032x}{index:032x}"


class FakeRpcNode:
    """In-memory EVM node answering the JSON-RPC methods the explorer uses.

    Block ``n`` has timestamp ``GENESIS_TIMESTAMP + n * block_time`` and
    ``txs_per_block`` transactions; every receipt costs 0.001775 in fees.
    """

    def __init__(self, latest: int = 100, txs_per_block: int = 1, block_time: int = 2) -> None:
        self.latest = latest
        self.txs_per_block = txs_per_block
        self.block_time = block_time
        self.gas_price = 25 * GWEI
        self.calls: list[tuple[str, list[Any]]] = []
        self.failing_methods: set[str] = set()
        self.failing_blocks: set[int] = set()
        # Per-record failures keyed by block number or transaction hash
        self.unreachable: set[int | str] = set()
        self.garbled: set[int | str] = set()
        self.receipt_logs: dict[str, list[dict[str, Any]]] = {}
        self.logs: list[dict[str, Any]] = []

    @property
    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def transaction(self, number: int, index: int) -> dict[str, Any]:
        return {
            "hash": tx_hash(number, index),
            "from": "0x1111111111111111111111111111111111111111",
            "to": "0x2222222222222222222222222222222222222222",
            "value": hex(10**15),
            "blockNumber": hex(number),
            "gasPrice": hex(25 * GWEI),
            "gas": hex(21_000),
        }

    def block(self, number: int, full: bool = True) -> dict[str, Any] | None:
        if number < 0 or number > self.latest:
            return None
        transactions = [self.transaction(number, index) for index in range(self.txs_per_block)]
        return {
            "number": hex(number),
            "hash": f"0x{number:064x}",
            "parentHash": f"0x{max(number - 1, 0):064x}",
            "timestamp": hex(GENESIS_TIMESTAMP + number * self.block_time),
            "miner": "0x0100000000000000000000000000000000000000",
            "transactions": transactions if full else [tx["hash"] for tx in transactions],
            "gasUsed": hex(RECEIPT_GAS_USED * self.txs_per_block),
            "gasLimit": hex(15_000_000),
            "baseFeePerGas": hex(25 * GWEI),
            "size": hex(1024),
            "nonce": "0x0000000000000000",
            "difficulty": "0x1",
            "extraData": "0x",
            "stateRoot": "0x" + "01" * 32,
            "receiptsRoot": "0x" + "02" * 32,
            "transactionsRoot": "0x" + "03" * 32,
        }

    def receipt(self, hash_: str) -> dict[str, Any]:
        return {
            "transactionHash": hash_,
            "gasUsed": hex(RECEIPT_GAS_USED),
            "effectiveGasPrice": hex(EFFECTIVE_GAS_PRICE),
            "status": "0x1",
            "logs": self.receipt_logs.get(hash_, []),
        }

    def _result(self, method: str, params: list[Any]) -> Any:
        match method:
            case "eth_blockNumber":
                return hex(self.latest)
            case "eth_getBlockByNumber":
                number = int(params[0], 16)
                if number in self.failing_blocks:
                    raise LookupError(f"block {number} unavailable")
                return self.block(number, full=params[1])
            case "eth_getTransactionReceipt":
                return self.receipt(params[0])
            case "eth_getTransactionByHash":
                body = params[0][2:]
                return self.transaction(int(body[:32], 16), int(body[32:], 16))
            case "eth_getLogs":
                return self.logs
            case "eth_gasPrice":
                return hex(self.gas_price)
            case _:
                raise LookupError(f"method {method} not supported")

    def respond(self, method: str, params: list[Any]) -> bytes:
        """Raw HTTP body the node sends back for one request."""
        self.calls.append((method, params))
        request_id = len(self.calls)
        target = None
        if method == "eth_getBlockByNumber":
            target = int(params[0], 16)
        elif params and isinstance(params[0], str):
            target = params[0]

        if target in self.unreachable:
            raise ConnectionError(f"{method} {target}: 502 Bad Gateway")
        if target in self.garbled:
            return b"<html><body>rate limited</body></html>"

        if method in self.failing_methods:
            return json.dumps({
                "jsonrpc": "2.0", "id": request_id, "error": {"code": -32000, "message": f"{method} failed"}
            }).encode()
        try:
            result = self._result(method, params)
        except LookupError as e:
            return json.dumps({"jsonrpc": "2.0", "id": request_id, "error": {"code": -32000, "message": str(e)}}).encode()
        return json.dumps({"jsonrpc": "2.0", "id": request_id, "result": result}).encode()

    def provider(self) -> "FakeProvider":
        return FakeProvider(self)

    def rpc_factory(self, url: str) -> RpcUtility:
        return RpcUtility(url, timeout=5.0, provider=self.provider())


class FakeProvider(AsyncBaseProvider):
    """web3 async provider answering from a FakeRpcNode instead of the network."""

    def __init__(self, node: FakeRpcNode) -> None:
        super().__init__()
        self.node = node

    async def make_request(self, method: RPCEndpoint, params: Any) -> RPCResponse:
        return json.loads(self.node.respond(method, list(params)))


@pytest.fixture
def node() -> FakeRpcNode:
    return FakeRpcNode()


@pytest.fixture
def config() -> ExplorerConfig:
    return ExplorerConfig()


@pytest.fixture
def market_data() -> MagicMock:
    """MarketDataClient double: async methods are AsyncMocks with neutral results."""
    mock = MagicMock(spec=MarketDataClient)
    mock.fetch_cumulative_txs.return_value = 1234
    mock.fetch_daily_txs_by_chain.return_value = {}
    mock.fetch_price.return_value = None
    mock.fetch_native_price.return_value = 0.0
    mock.check_glacier_support.return_value = False
    return mock


@pytest.fixture
def c_chain() -> ChainEndpoint:
    return ChainEndpoint(
        chain_id="43114",
        chain_name="Avalanche C-Chain",
        rpc_url="https://rpc.test/c",
        token_symbol="AVAX",
        coingecko_id="avalanche-2",
        blockchain_id=CURRENT_BLOCKCHAIN_ID,
        slug="c-chain",
        color="#E84142",
    )
