"""Unit tests for configuration loading and validation."""

import pytest

from avalanche_explorer.config import (
    ExplorerConfig,
    FetcherConfig,
    PollingConfig,
    ServerConfig,
    UpstreamConfig,
)


class TestDefaults:
    """Tests for default configuration values."""

    def test_defaults(self):
        """Test the documented defaults."""
        config = ExplorerConfig()

        assert config.fetcher.initial_block_count == 10
        assert config.fetcher.max_blocks_per_poll == 50
        assert config.fetcher.icm_lookback_blocks == 512
        assert config.polling.poll_interval == 3.0
        assert config.polling.stagger_delay == 0.2
        assert config.polling.max_initial_retries == 3
        assert config.upstream.price_cache_ttl == 60.0
        assert config.upstream.daily_txs_cache_ttl == 300.0
        assert config.server.port == 8000
        assert config.api_url is None


class TestFromEnv:
    """Tests for ExplorerConfig.from_env()."""

    def test_reads_environment(self, monkeypatch, tmp_path):
        """Test that environment variables override defaults."""
        registry = tmp_path / "chains.json"
        registry.write_text("[]")
        monkeypatch.setenv("EXPLORER_PORT", "9000")
        monkeypatch.setenv("POLL_INTERVAL", "5")
        monkeypatch.setenv("MAX_INITIAL_RETRIES", "4")
        monkeypatch.setenv("INDEXER_API_URL", "https://indexer.test/api/")
        monkeypatch.setenv("CHAIN_REGISTRY_PATH", str(registry))
        monkeypatch.setenv("EXPLORER_API_URL", "http://localhost:8000/")

        config = ExplorerConfig.from_env()

        assert config.server.port == 9000
        assert config.polling.poll_interval == 5.0
        assert config.polling.max_initial_retries == 4
        assert config.upstream.indexer_url == "https://indexer.test/api"
        assert config.registry_path == registry
        assert config.api_url == "http://localhost:8000"

    def test_non_numeric_value(self, monkeypatch):
        """Test that a malformed number names the variable."""
        monkeypatch.setenv("POLL_INTERVAL", "soon")

        with pytest.raises(ValueError, match="POLL_INTERVAL"):
            ExplorerConfig.from_env()

    def test_missing_registry_file(self, monkeypatch, tmp_path):
        """Test that a registry path must exist."""
        monkeypatch.setenv("CHAIN_REGISTRY_PATH", str(tmp_path / "missing.json"))

        with pytest.raises(ValueError, match="registry file not found"):
            ExplorerConfig.from_env()


class TestValidation:
    """Tests for __post_init__ validation."""

    def test_invalid_url_scheme(self):
        with pytest.raises(ValueError, match="scheme"):
            UpstreamConfig(coingecko_url="ftp://prices.test")

    def test_invalid_port(self):
        with pytest.raises(ValueError, match="port"):
            ServerConfig(port=70000)

    def test_poll_cap(self):
        with pytest.raises(ValueError, match="max 500"):
            FetcherConfig(max_blocks_per_poll=501)

    def test_window_cannot_exceed_warm_up(self):
        """Test that the rate window fits inside the warm-up threshold."""
        with pytest.raises(ValueError, match="warm-up"):
            PollingConfig(rate_warmup_blocks_per_chain=5, rate_window_blocks_per_chain=10)

    def test_retries_must_be_positive(self):
        with pytest.raises(ValueError, match="retries"):
            PollingConfig(max_initial_retries=0)

    def test_invalid_api_url(self):
        with pytest.raises(ValueError, match="Explorer API URL"):
            ExplorerConfig(api_url="localhost:8000")

    def test_log_config(self, caplog):
        """Test that the effective configuration is logged."""
        with caplog.at_level("INFO"):
            ExplorerConfig().log_config()

        assert "Avalanche Explorer Configuration" in caplog.text
        assert "Poll Interval: 3.0 seconds" in caplog.text
