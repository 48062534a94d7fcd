#!/usr/bin/env python3
"""Configuration management for the Avalanche Explorer.

This module provides type-safe configuration dataclasses with validation
for the explorer API and the multi-chain poller. Configuration is loaded from
environment variables with sensible defaults where appropriate.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

# Get logger for this module
logger = logging.getLogger(__name__)


def _validate_http_url(url: str, name: str) -> None:
    """Raise ValueError unless url is an absolute http(s) URL."""
    if not url:
        raise ValueError(f"{name} is required")

    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https'):
        raise ValueError(
            f"Invalid {name} scheme: {parsed.scheme}. Expected http or https"
        )


def _env_number(name: str, default: str, cast: type) -> int | float:
    """Read a numeric environment variable, naming it in the error on bad input."""
    raw = os.environ.get(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True, slots=True)
class FetcherConfig:
    """Configuration for the per-chain explorer fetcher.

    Attributes:
        initial_block_count: Blocks fetched on a chain's first load
        max_blocks_per_poll: Upper bound on blocks fetched by one incremental poll
        icm_lookback_blocks: Block range scanned for historical ICM messages
        historical_icm_limit: Maximum historical ICM transactions hydrated
        recent_transaction_limit: Transactions returned per response
        rpc_timeout: Timeout for a single JSON-RPC request in seconds
    """

    initial_block_count: int = 10
    max_blocks_per_poll: int = 50
    icm_lookback_blocks: int = 512
    historical_icm_limit: int = 10
    recent_transaction_limit: int = 10
    rpc_timeout: float = 10.0

    def __post_init__(self) -> None:
        """Validate fetcher configuration."""
        if self.initial_block_count <= 0:
            raise ValueError(f"Initial block count must be positive, got {self.initial_block_count}")
        if self.max_blocks_per_poll <= 0:
            raise ValueError(f"Max blocks per poll must be positive, got {self.max_blocks_per_poll}")
        if self.max_blocks_per_poll > 500:
            raise ValueError(f"Max blocks per poll too high (max 500), got {self.max_blocks_per_poll}")
        if self.icm_lookback_blocks <= 0:
            raise ValueError(f"ICM lookback blocks must be positive, got {self.icm_lookback_blocks}")
        if self.historical_icm_limit < 0:
            raise ValueError(f"Historical ICM limit must be non-negative, got {self.historical_icm_limit}")
        if self.recent_transaction_limit <= 0:
            raise ValueError(
                f"Recent transaction limit must be positive, got {self.recent_transaction_limit}"
            )
        if self.rpc_timeout <= 0:
            raise ValueError(f"RPC timeout must be positive, got {self.rpc_timeout}")


@dataclass(frozen=True, slots=True)
class UpstreamConfig:
    """Configuration for the REST services the explorer consumes.

    Attributes:
        coingecko_url: Base URL of the market-data API
        indexer_url: Base URL of the transaction indexing service
        glacier_url: Base URL of the Glacier data API
        native_coingecko_id: CoinGecko id of the token prices are denominated in
        request_timeout: HTTP request timeout in seconds
        price_cache_ttl: Seconds a price quote stays fresh
        cumulative_txs_cache_ttl: Seconds a cumulative transaction count stays fresh
        daily_txs_cache_ttl: Seconds the daily transaction matrix stays fresh
    """

    coingecko_url: str = "https://api.coingecko.com/api/v3"
    indexer_url: str = "https://idx6.solokhin.com/api"
    glacier_url: str = "https://glacier-api.avax.network"
    native_coingecko_id: str = "avalanche-2"
    request_timeout: float = 10.0
    price_cache_ttl: float = 60.0
    cumulative_txs_cache_ttl: float = 30.0
    daily_txs_cache_ttl: float = 300.0

    def __post_init__(self) -> None:
        """Validate upstream configuration."""
        _validate_http_url(self.coingecko_url, "CoinGecko API URL")
        _validate_http_url(self.indexer_url, "Indexer API URL")
        _validate_http_url(self.glacier_url, "Glacier API URL")

        # Strip trailing slashes so paths can be appended directly
        for name in ('coingecko_url', 'indexer_url', 'glacier_url'):
            value = getattr(self, name)
            if value.endswith('/'):
                object.__setattr__(self, name, value.rstrip('/'))

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        for name in ('price_cache_ttl', 'cumulative_txs_cache_ttl', 'daily_txs_cache_ttl'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}")


@dataclass(frozen=True, slots=True)
class PollingConfig:
    """Configuration for the multi-chain poller and its buffers."""
    # Timing (seconds)
    poll_interval: float = 3.0
    stagger_delay: float = 0.2
    request_timeout: float = 10.0
    highlight_duration: float = 1.0
    status_log_interval: int = 30

    # Liveness
    max_initial_retries: int = 3

    # Buffer capacities
    blocks_per_chain: int = 20
    transaction_limit: int = 100
    icm_limit: int = 100

    # Rate derivation
    rate_warmup_blocks_per_chain: int = 20
    rate_window_blocks_per_chain: int = 10
    icm_rate_window: float = 60.0
    icm_rate_fallback_count: int = 50

    def __post_init__(self) -> None:
        """Validate polling configuration."""
        if self.poll_interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {self.poll_interval}")
        if self.poll_interval > 300:
            raise ValueError(f"Poll interval too long (max 300s), got {self.poll_interval}")
        if self.stagger_delay < 0:
            raise ValueError(f"Stagger delay must be non-negative, got {self.stagger_delay}")
        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")
        if self.max_initial_retries < 1:
            raise ValueError(f"Max initial retries must be at least 1, got {self.max_initial_retries}")
        if self.max_initial_retries > 10:
            raise ValueError(f"Max initial retries too high (max 10), got {self.max_initial_retries}")

        for name in ('blocks_per_chain', 'transaction_limit', 'icm_limit',
                     'rate_warmup_blocks_per_chain', 'rate_window_blocks_per_chain',
                     'icm_rate_fallback_count'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

        if self.rate_window_blocks_per_chain > self.rate_warmup_blocks_per_chain:
            raise ValueError(
                "Rate window cannot exceed the warm-up threshold "
                f"({self.rate_window_blocks_per_chain} > {self.rate_warmup_blocks_per_chain})"
            )
        if self.icm_rate_window <= 0:
            raise ValueError(f"ICM rate window must be positive, got {self.icm_rate_window}")


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Configuration for the HTTP API server.

    Attributes:
        host: Interface to bind
        port: TCP port to listen on
    """

    host: str = "0.0.0.0"
    port: int = 8000

    def __post_init__(self) -> None:
        """Validate server configuration."""
        if not self.host:
            raise ValueError("Server host is required (EXPLORER_HOST)")
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid server port: {self.port}")


@dataclass(frozen=True, slots=True)
class ExplorerConfig:
    """Main configuration for the Avalanche Explorer.

    Attributes:
        server: HTTP API settings
        upstream: Market data, indexer and Glacier settings
        fetcher: Per-chain fetch window settings
        polling: Multi-chain poller settings
        registry_path: Optional chain registry JSON replacing the bundled one
        api_url: Explorer API base URL the poller drives in remote mode
    """

    server: ServerConfig = field(default_factory=ServerConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    fetcher: FetcherConfig = field(default_factory=FetcherConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    registry_path: Path | None = None
    api_url: str | None = None

    def __post_init__(self) -> None:
        """Validate explorer configuration."""
        if self.registry_path is not None and not Path(self.registry_path).is_file():
            raise ValueError(f"Chain registry file not found: {self.registry_path}")

        if self.api_url:
            _validate_http_url(self.api_url, "Explorer API URL")
            if self.api_url.endswith('/'):
                object.__setattr__(self, 'api_url', self.api_url.rstrip('/'))

    @classmethod
    def from_env(cls) -> "ExplorerConfig":
        """Load configuration from environment variables.

        Returns:
            ExplorerConfig instance with loaded values

        Raises:
            ValueError: If environment variables are present but invalid
        """
        server_config = ServerConfig(
            host=os.environ.get("EXPLORER_HOST", "0.0.0.0"),
            port=_env_number("EXPLORER_PORT", "8000", int)
        )

        upstream_config = UpstreamConfig(
            coingecko_url=os.environ.get("COINGECKO_API_URL", "https://api.coingecko.com/api/v3"),
            indexer_url=os.environ.get("INDEXER_API_URL", "https://idx6.solokhin.com/api"),
            glacier_url=os.environ.get("GLACIER_API_URL", "https://glacier-api.avax.network"),
            request_timeout=_env_number("UPSTREAM_TIMEOUT", "10", float)
        )

        fetcher_config = FetcherConfig(
            max_blocks_per_poll=_env_number("MAX_BLOCKS_PER_POLL", "50", int),
            rpc_timeout=_env_number("RPC_TIMEOUT", "10", float)
        )

        polling_config = PollingConfig(
            poll_interval=_env_number("POLL_INTERVAL", "3", float),
            stagger_delay=_env_number("STAGGER_DELAY", "0.2", float),
            request_timeout=_env_number("REQUEST_TIMEOUT", "10", float),
            max_initial_retries=_env_number("MAX_INITIAL_RETRIES", "3", int)
        )

        registry_path = os.environ.get("CHAIN_REGISTRY_PATH") or None

        return cls(
            server=server_config,
            upstream=upstream_config,
            fetcher=fetcher_config,
            polling=polling_config,
            registry_path=Path(registry_path) if registry_path else None,
            api_url=os.environ.get("EXPLORER_API_URL") or None
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Avalanche Explorer Configuration")
        logger.info("=" * 60)

        logger.info("Server:")
        logger.info(f"  Listen: {self.server.host}:{self.server.port}")

        logger.info("Upstream Services:")
        logger.info(f"  CoinGecko: {self.upstream.coingecko_url}")
        logger.info(f"  Indexer: {self.upstream.indexer_url}")
        logger.info(f"  Glacier: {self.upstream.glacier_url}")

        logger.info("Fetcher Settings:")
        logger.info(f"  Initial Blocks: {self.fetcher.initial_block_count}")
        logger.info(f"  Max Blocks Per Poll: {self.fetcher.max_blocks_per_poll}")
        logger.info(f"  ICM Lookback: {self.fetcher.icm_lookback_blocks} blocks")

        logger.info("Polling Settings:")
        logger.info(f"  Poll Interval: {self.polling.poll_interval} seconds")
        logger.info(f"  Stagger Delay: {self.polling.stagger_delay} seconds")
        logger.info(f"  Request Timeout: {self.polling.request_timeout} seconds")
        logger.info(f"  Max Initial Retries: {self.polling.max_initial_retries}")

        logger.info(f"Chain Registry: {self.registry_path or 'bundled'}")
        if self.api_url:
            logger.info(f"Explorer API: {self.api_url}")

        logger.info("=" * 60)
