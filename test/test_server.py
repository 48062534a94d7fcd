"""Unit tests for the explorer HTTP API."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from web3.exceptions import Web3RPCError

from avalanche_explorer.fetcher import ExplorerFetcher
from avalanche_explorer.models import (
    Block,
    BlockDetail,
    ChainEndpoint,
    ExplorerData,
    ExplorerStats,
    PriceData,
)
from avalanche_explorer.registry import ChainRegistry
from avalanche_explorer.server import (
    BLOCK_CHAIN_NOT_FOUND,
    CHAIN_NOT_FOUND,
    RPC_NOT_CONFIGURED,
    create_app,
)
from conftest import CURRENT_BLOCKCHAIN_ID, GENESIS_TIMESTAMP

NO_RPC_CHAIN = ChainEndpoint(chain_id="99999", chain_name="No RPC", coingecko_id="no-rpc", token_symbol="NRP")


def explorer_data(latest: int = 100) -> ExplorerData:
    return ExplorerData(
        stats=ExplorerStats(latest_block=latest, total_transactions=1234, avg_block_time=2.0, gas_price="25 Gwei"),
        blocks=[
            Block(
                number=latest,
                hash=f"0x{latest:064x}",
                timestamp=GENESIS_TIMESTAMP,
                miner="0x01",
                transaction_count=1,
                gas_used=21_000,
                gas_limit=15_000_000,
            )
        ],
        token_symbol="AVAX",
    )


@pytest.fixture
def fetcher() -> MagicMock:
    mock = MagicMock(spec=ExplorerFetcher)
    mock.fetch_explorer_data.return_value = explorer_data()
    mock.fetch_block_detail.return_value = None
    return mock


@pytest.fixture
def client(config, c_chain, fetcher, market_data):
    registry = ChainRegistry([c_chain, NO_RPC_CHAIN])
    app = create_app(config, registry, fetcher, market_data)
    return TestClient(app)


class TestExplorerRoute:
    """Tests for GET /api/explorer/{chainId}."""

    def test_initial_load(self, client, fetcher):
        """Test a registry chain's initial load."""
        response = client.get("/api/explorer/43114", params={"initialLoad": "true"})

        assert response.status_code == 200
        body = response.json()
        assert body["stats"]["latestBlock"] == 100
        assert body["blocks"][0]["number"] == "100"
        assert body["tokenSymbol"] == "AVAX"
        assert body["glacierSupported"] is False
        fetcher.fetch_explorer_data.assert_awaited_once_with(
            chain_id="43114",
            rpc_url="https://rpc.test/c",
            coingecko_id="avalanche-2",
            token_symbol="AVAX",
            current_blockchain_id=CURRENT_BLOCKCHAIN_ID,
            initial_load=True,
            last_fetched_block=None,
        )

    def test_cursor(self, client, fetcher):
        """Test that lastFetchedBlock is passed as an int."""
        response = client.get("/api/explorer/43114", params={"lastFetchedBlock": "95"})

        assert response.status_code == 200
        kwargs = fetcher.fetch_explorer_data.await_args.kwargs
        assert kwargs["initial_load"] is False
        assert kwargs["last_fetched_block"] == 95

    def test_invalid_cursor(self, client, fetcher):
        response = client.get("/api/explorer/43114", params={"lastFetchedBlock": "abc"})

        assert response.status_code == 400
        assert "lastFetchedBlock" in response.json()["error"]
        fetcher.fetch_explorer_data.assert_not_awaited()

    def test_registry_values_win(self, client, fetcher):
        """Test that query overrides do not replace registry values."""
        client.get(
            "/api/explorer/43114",
            params={"rpcUrl": "https://other.test/rpc", "tokenSymbol": "XXX", "blockchainId": "0x01"},
        )

        kwargs = fetcher.fetch_explorer_data.await_args.kwargs
        assert kwargs["rpc_url"] == "https://rpc.test/c"
        assert kwargs["token_symbol"] == "AVAX"
        assert kwargs["current_blockchain_id"] == CURRENT_BLOCKCHAIN_ID

    def test_custom_chain(self, client, fetcher):
        """Test that an unknown chain is served from query parameters."""
        response = client.get(
            "/api/explorer/777",
            params={"rpcUrl": "https://custom.test/rpc", "tokenSymbol": "CST", "initialLoad": "true"},
        )

        assert response.status_code == 200
        kwargs = fetcher.fetch_explorer_data.await_args.kwargs
        assert kwargs["rpc_url"] == "https://custom.test/rpc"
        assert kwargs["token_symbol"] == "CST"
        assert kwargs["coingecko_id"] is None

    def test_unknown_chain(self, client):
        response = client.get("/api/explorer/777")

        assert response.status_code == 404
        assert response.json() == {"error": CHAIN_NOT_FOUND}

    def test_chain_without_rpc(self, client):
        response = client.get("/api/explorer/99999")

        assert response.status_code == 400
        assert response.json() == {"error": RPC_NOT_CONFIGURED}

    def test_rpc_failure(self, client, fetcher):
        """Test that a failure reading the chain head becomes a 500."""
        fetcher.fetch_explorer_data.side_effect = Web3RPCError("eth_blockNumber failed")

        response = client.get("/api/explorer/43114")

        assert response.status_code == 500
        assert "eth_blockNumber failed" in response.json()["error"]

    def test_transport_failure(self, client, fetcher):
        fetcher.fetch_explorer_data.side_effect = ConnectionError("connection refused")

        response = client.get("/api/explorer/43114")

        assert response.status_code == 500
        assert "connection refused" in response.json()["error"]

    def test_unexpected_failure_is_json(self, client, fetcher):
        """Test that any fetch error, not only node errors, becomes a JSON 500."""
        fetcher.fetch_explorer_data.side_effect = ValueError("Cannot interpret 'garbage' as an integer quantity")

        response = client.get("/api/explorer/43114")

        assert response.status_code == 500
        assert response.headers["content-type"] == "application/json"
        assert response.json() == {"error": "Cannot interpret 'garbage' as an integer quantity"}

    def test_glacier_flag(self, client, market_data):
        market_data.check_glacier_support.return_value = True

        response = client.get("/api/explorer/43114")

        assert response.json()["glacierSupported"] is True
        market_data.check_glacier_support.assert_awaited_once_with("43114")


class TestPriceOnly:
    """Tests for priceOnly=true."""

    def test_price(self, client, fetcher, market_data):
        """Test that only price, symbol and Glacier support are returned."""
        market_data.fetch_price.return_value = PriceData(price=35.0, price_in_avax=1.0, symbol="AVAX")

        response = client.get("/api/explorer/43114", params={"priceOnly": "true"})

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"price", "tokenSymbol", "glacierSupported"}
        assert body["price"]["price"] == 35.0
        assert body["tokenSymbol"] == "AVAX"
        fetcher.fetch_explorer_data.assert_not_awaited()

    def test_no_rpc_needed(self, client, market_data):
        """Test that a chain without an RPC URL can still be priced."""
        response = client.get("/api/explorer/99999", params={"priceOnly": "true"})

        assert response.status_code == 200
        assert response.json()["tokenSymbol"] == "NRP"
        market_data.fetch_price.assert_awaited_once_with("no-rpc")

    def test_custom_chain_has_no_price(self, client, market_data):
        response = client.get(
            "/api/explorer/777", params={"priceOnly": "true", "rpcUrl": "https://custom.test/rpc"}
        )

        assert response.status_code == 200
        assert response.json()["price"] is None
        market_data.fetch_price.assert_not_awaited()


class TestBlockRoute:
    """Tests for GET /api/explorer/{chainId}/block/{blockNumber}."""

    def test_block_detail(self, client, fetcher):
        fetcher.fetch_block_detail.return_value = BlockDetail(
            number=100,
            hash="0x" + "64" * 32,
            parent_hash="0x" + "63" * 32,
            timestamp=GENESIS_TIMESTAMP,
            miner="0x01",
            transactions=("0xaa", "0xbb"),
            gas_used=42_000,
            gas_limit=15_000_000,
            base_fee_per_gas="25.00 Gwei",
            gas_fee="0.001050",
        )

        response = client.get("/api/explorer/43114/block/100")

        assert response.status_code == 200
        body = response.json()
        assert body["number"] == "100"
        assert body["transactionCount"] == 2
        assert body["baseFeePerGas"] == "25.00 Gwei"
        assert body["timestamp"] == "2023-11-14T22:13:20.000Z"
        fetcher.fetch_block_detail.assert_awaited_once_with("https://rpc.test/c", 100)

    def test_hex_block_number(self, client, fetcher):
        client.get("/api/explorer/43114/block/0x64")

        fetcher.fetch_block_detail.assert_awaited_once_with("https://rpc.test/c", "0x64")

    def test_block_not_found(self, client):
        response = client.get("/api/explorer/43114/block/100000")

        assert response.status_code == 404
        assert response.json() == {"error": "Block not found"}

    def test_invalid_block_number(self, client, fetcher):
        response = client.get("/api/explorer/43114/block/latest")

        assert response.status_code == 400
        fetcher.fetch_block_detail.assert_not_awaited()

    def test_unknown_chain(self, client):
        response = client.get("/api/explorer/777/block/1")

        assert response.status_code == 404
        assert response.json() == {"error": BLOCK_CHAIN_NOT_FOUND}

    def test_custom_rpc(self, client, fetcher):
        client.get("/api/explorer/777/block/1", params={"rpcUrl": "https://custom.test/rpc"})

        fetcher.fetch_block_detail.assert_awaited_once_with("https://custom.test/rpc", 1)

    def test_rpc_failure(self, client, fetcher):
        """Test that a failing block or receipt lookup becomes a 500."""
        fetcher.fetch_block_detail.side_effect = Web3RPCError("receipt unavailable")

        response = client.get("/api/explorer/43114/block/100")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch block data"}

    def test_unexpected_failure_is_json(self, client, fetcher):
        fetcher.fetch_block_detail.side_effect = KeyError("hash")

        response = client.get("/api/explorer/43114/block/100")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch block data"}


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
