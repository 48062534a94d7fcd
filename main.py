#!/usr/bin/env python3
"""Entry point for the Avalanche Explorer backend.

Two commands are available:

    serve  Run the explorer HTTP API (uvicorn)
    poll   Run the multi-chain poller, either in-process against the chains'
           RPC endpoints or against a running explorer API (--api-url)
"""

import argparse
import asyncio
import logging
import os
import sys

import uvicorn
from dotenv import load_dotenv


# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


# Get logger for this module
logger = logging.getLogger(__name__)

from avalanche_explorer.aggregator import EcosystemAggregator
from avalanche_explorer.api_client import ExplorerApiClient
from avalanche_explorer.config import ExplorerConfig
from avalanche_explorer.fetcher import ChainDataSource, ExplorerFetcher
from avalanche_explorer.market_data import MarketDataClient
from avalanche_explorer.poller import MultiChainPoller
from avalanche_explorer.registry import ChainRegistry
from avalanche_explorer.server import create_app


def serve(config: ExplorerConfig, registry: ChainRegistry, log_level: str) -> None:
    """Run the explorer API until interrupted."""
    market_data = MarketDataClient(config.upstream)
    fetcher = ExplorerFetcher(config, market_data)
    app = create_app(config, registry, fetcher, market_data)

    logger.info(f"Serving explorer API for {len(registry)} chains on {config.server.host}:{config.server.port}")
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_level=log_level.lower())


async def poll(config: ExplorerConfig, registry: ChainRegistry) -> None:
    """Poll every pollable chain until interrupted."""
    endpoints = registry.pollable_chains()
    if not endpoints:
        raise ValueError("Chain registry contains no mainnet chains with an RPC URL")

    source: ChainDataSource
    if config.api_url:
        logger.info(f"Polling through explorer API at {config.api_url}")
        source = ExplorerApiClient(config.api_url, timeout=config.polling.request_timeout)
    else:
        logger.info("Polling chain RPC endpoints in-process")
        source = ExplorerFetcher(config, MarketDataClient(config.upstream))

    aggregator = EcosystemAggregator(registry, len(endpoints), config.polling)
    poller = MultiChainPoller(endpoints, source, aggregator, config.polling)
    try:
        await poller.run()
    finally:
        poller.stop()


def main() -> None:
    """Main entry point for the Avalanche Explorer backend.

    Parses startup arguments, loads configuration from the environment
    (and a .env file if present), then runs the selected command.

    Raises:
        SystemExit: On configuration or runtime errors
    """
    load_dotenv()

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Avalanche Explorer - multi-chain explorer API and poller",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  EXPLORER_HOST / EXPLORER_PORT  - API listen address (default: 0.0.0.0:8000)
  COINGECKO_API_URL              - Market data API base URL
  INDEXER_API_URL                - Transaction indexer base URL
  GLACIER_API_URL                - Glacier data API base URL
  POLL_INTERVAL                  - Seconds between polls of a chain (default: 3)
  STAGGER_DELAY                  - Seconds between first polls of chains (default: 0.2)
  REQUEST_TIMEOUT                - Per-poll timeout in seconds (default: 10)
  MAX_INITIAL_RETRIES            - Initial-load failures before a chain goes passive (default: 3)
  CHAIN_REGISTRY_PATH            - Chain registry JSON replacing the bundled one
  EXPLORER_API_URL               - Explorer API the poller drives (overridden by --api-url)
  LOG_LEVEL                      - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "command",
        choices=["serve", "poll"],
        help="serve: run the HTTP API; poll: run the multi-chain poller"
    )
    parser.add_argument(
        "--api-url",
        default=None,
        help="Poll a running explorer API instead of the chains' RPC endpoints"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    args: argparse.Namespace = parser.parse_args()

    setup_logging(args.log_level)
    logger.info(f"=== Avalanche Explorer Starting ({args.command}) ===")

    try:
        if args.api_url:
            os.environ["EXPLORER_API_URL"] = args.api_url
        config: ExplorerConfig = ExplorerConfig.from_env()
        config.log_config()
        registry: ChainRegistry = ChainRegistry.load(config.registry_path)

        if args.command == "serve":
            serve(config, registry, args.log_level)
        else:
            asyncio.run(poll(config, registry))

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables (see --help)")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully...")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
