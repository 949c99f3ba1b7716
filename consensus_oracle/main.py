#!/usr/bin/env python3
"""Consensus Oracle.

Collects one observation per requested source (Chainlink price feeds,
OpenWeatherMap, NASA open data), reduces them with a consensus method into a
single value plus confidence score and optionally anchors the result in an
EVM transaction.

Configure via CLI flags or the matching environment variables.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from collections.abc import Mapping
from typing import Any

from .src.adapters import BaseAdapter, get_adapter, get_available_adapters
from .src.ChainPersistence import ChainPersistence
from .src.OracleAggregator import OracleAggregator
from .src.OracleTypes import CollectRequest, ConsensusMethod, OracleCategory
from .src.Persistence import BasePersistence
from .src.ReliabilityRegistry import ReliabilityRegistry
from .src.TxSubmitterAppd import AppdTxSubmitter
from .src.TxSubmitterWeb3 import Web3TxSubmitter

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

PERSIST_MODES = ("none", "appd", "web3")
ENV_KEY_PREFIXES = ("API_KEY_", "APIKEY_")


def split_pairs(text: str | None, what: str = "parameter") -> list[tuple[str, str]]:
    """Split a comma-separated ``key=value`` string into stripped pairs.

    Blank entries are skipped. Values keep everything after the first '='.

    :param text: Comma-separated string, or None.
    :param what: Noun used in error messages.
    :returns: List of (key, value) tuples in input order.
    :raises ValueError: If an entry has no '=' or an empty key.
    """
    pairs = []
    for item in (text or "").split(","):
        item = item.strip()
        if not item:
            continue
        if "=" not in item:
            raise ValueError(f"Invalid {what} '{item}'. Expected 'key=value'")
        key, value = (part.strip() for part in item.split("=", 1))
        if not key:
            raise ValueError(f"Invalid {what} '{item}'. Key must not be empty")
        pairs.append((key, value))
    return pairs


def parse_api_keys(api_key_str: str | None) -> dict[str, str]:
    """Parse API keys given as ``source=key,...``.

    Example: weather=abc123,nasa=xyz789

    :param api_key_str: Comma-separated API key string.
    :returns: Dict mapping lowercase source names to API keys.
    :raises ValueError: If an entry is malformed.
    """
    return {
        source.lower(): key
        for source, key in split_pairs(api_key_str, "API key entry")
    }


def parse_env_api_keys(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Collect API keys from ``API_KEY_<SOURCE>`` or ``APIKEY_<SOURCE>`` variables.

    :param environ: Environment to read (default: os.environ).
    :returns: Dict mapping lowercase source names to API keys.
    """
    environ = os.environ if environ is None else environ
    api_keys = {}
    for name, value in environ.items():
        prefix = next((p for p in ENV_KEY_PREFIXES if name.startswith(p)), None)
        if prefix and value and len(name) > len(prefix):
            api_keys[name[len(prefix):].lower()] = value
    return api_keys


def parse_params(params_str: str | None) -> dict[str, str]:
    """Parse comma-separated request parameters.

    Format: key1=value1,key2=value2
    Example: space_data_type=earth_imagery,lat=29.78,lon=-95.33

    :param params_str: Comma-separated parameter string.
    :returns: Dict mapping parameter names to values.
    :raises ValueError: If an entry has no '=' or an empty key.
    """
    return dict(split_pairs(params_str))


def build_adapters(
    sources: list[str], api_keys: Mapping[str, str], timeout: float
) -> dict[str, BaseAdapter]:
    """Instantiate one adapter per source name.

    :param sources: Registered adapter names.
    :param api_keys: API keys by source name.
    :param timeout: Request timeout passed to every adapter.
    :returns: Dict mapping source names to adapters.
    """
    return {
        source: get_adapter(source, api_key=api_keys.get(source), timeout=timeout)
        for source in sources
    }


def build_persistence(
    mode: str,
    address: str | None,
    appd_url: str = "",
    private_key: str | None = None,
    rpc_url: str | None = None,
) -> BasePersistence | None:
    """Create the persistence collaborator for a mode.

    :param mode: One of "none", "appd" or "web3".
    :param address: Recipient address of data transactions.
    :param appd_url: Appd URL or socket path (appd mode only).
    :param private_key: Signing key (web3 mode only).
    :param rpc_url: JSON-RPC endpoint (web3 mode only).
    :returns: Persistence collaborator, or None if persistence is disabled.
    :raises ValueError: If the mode is unknown or required settings are missing.
    """
    if mode == "none":
        return None
    if mode not in PERSIST_MODES:
        raise ValueError(f"Unknown persist mode '{mode}'. Expected one of: {', '.join(PERSIST_MODES)}")
    if not address:
        raise ValueError(f"--oracle-data-address is required with --persist {mode}")

    if mode == "appd":
        return ChainPersistence(AppdTxSubmitter(appd_url or ""), address)
    if not private_key:
        raise ValueError("PRIVATE_KEY is required with --persist web3")
    return ChainPersistence(Web3TxSubmitter(private_key, rpc_url=rpc_url), address)


async def run(
    aggregator: OracleAggregator,
    request: CollectRequest,
    list_sources: bool = False,
    test_connections: bool = False,
) -> tuple[bool, dict[str, Any]]:
    """Execute the selected command.

    :param aggregator: Configured aggregator.
    :param request: Collection request (ignored by the listing commands).
    :param list_sources: Print configured sources instead of collecting.
    :param test_connections: Probe configured sources instead of collecting.
    :returns: Tuple of (success, JSON-serializable output).
    """
    try:
        if list_sources:
            return True, {"sources": await aggregator.available_sources()}
        if test_connections:
            status = await aggregator.test_all_connections()
            return all(status.values()), {"connections": status}

        response = await aggregator.collect_data(request)
        return response.success, response.to_dict()
    finally:
        await aggregator.close()


def main() -> None:
    """Main entry point for the Consensus Oracle CLI."""
    available_sources = get_available_adapters()
    categories = [c.value for c in OracleCategory]
    methods = [m.value for m in ConsensusMethod]

    parser = argparse.ArgumentParser(
        description="Consensus Oracle: Multi-source data aggregation with confidence scoring",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available sources:
  {', '.join(available_sources)}

Examples:
  # ETH/USD from Chainlink
  python -m consensus_oracle.main --category price_feed --sources chainlink \\
      --params symbol=ETH/USD

  # Weather by city, reduced by median
  python -m consensus_oracle.main --category weather --sources weather \\
      --params city=London --method median --api-keys weather=your-api-key

  # Three-day forecast by coordinates
  python -m consensus_oracle.main --category weather --sources weather \\
      --params lat=51.5,lon=-0.13,days=3

  # Landsat imagery, anchored through appd
  python -m consensus_oracle.main --category space --sources nasa \\
      --params space_data_type=earth_imagery,lat=29.78,lon=-95.33 \\
      --persist appd --oracle-data-address 0x...

Environment variables (CLI args take precedence):
  CATEGORY, SOURCES, METHOD, PARAMS, FETCH_TIMEOUT, RELIABILITY_WEIGHTS,
  PERSIST, ORACLE_DATA_ADDRESS, ROFL_APPD_URL, RPC_URL, PRIVATE_KEY,
  CHAINLINK_RPC_URL, API_KEY_WEATHER, API_KEY_NASA, etc.
""",
    )

    parser.add_argument(
        "--category",
        type=str,
        help=f"Data category. One of: {', '.join(categories)}",
        default=os.environ.get("CATEGORY") or "price_feed",
    )

    parser.add_argument(
        "--sources",
        type=str,
        help=f"Comma-separated sources. Available: {', '.join(available_sources)}",
        default=os.environ.get("SOURCES") or "chainlink",
    )

    parser.add_argument(
        "--method",
        type=str,
        help=f"Consensus method. One of: {', '.join(methods)} (default: weighted_average)",
        default=os.environ.get("METHOD") or "weighted_average",
    )

    parser.add_argument(
        "--params",
        type=str,
        help="Comma-separated request parameters (e.g., symbol=ETH/USD or city=London)",
        default=os.environ.get("PARAMS"),
    )

    parser.add_argument(
        "--reliability-weights",
        dest="reliability_weights",
        type=str,
        help="Comma-separated reliability overrides (e.g., chainlink=0.9,weather=0.7)",
        default=os.environ.get("RELIABILITY_WEIGHTS"),
    )

    parser.add_argument(
        "--api-keys",
        dest="api_keys",
        type=str,
        help="Comma-separated API keys (e.g., weather=abc,nasa=xyz)",
        default=os.environ.get("API_KEYS"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for individual source requests in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "--persist",
        type=str,
        choices=PERSIST_MODES,
        help="Anchor results on chain via appd or a local web3 signer (default: none)",
        default=os.environ.get("PERSIST") or "none",
    )

    parser.add_argument(
        "--oracle-data-address",
        dest="oracle_data_address",
        type=str,
        help="Recipient address of data transactions",
        default=os.environ.get("ORACLE_DATA_ADDRESS"),
    )

    parser.add_argument(
        "--appd-url",
        dest="appd_url",
        type=str,
        help="ROFL appd URL or socket path (default: /run/rofl-appd.sock)",
        default=os.environ.get("ROFL_APPD_URL") or "",
    )

    parser.add_argument(
        "--rpc-url",
        dest="rpc_url",
        type=str,
        help="JSON-RPC endpoint for web3 persistence (default: http://localhost:8545)",
        default=os.environ.get("RPC_URL"),
    )

    parser.add_argument(
        "--list-sources",
        dest="list_sources",
        action="store_true",
        help="Print configured sources and exit",
    )

    parser.add_argument(
        "--test-connections",
        dest="test_connections",
        action="store_true",
        help="Probe every configured source and exit",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if args.fetch_timeout <= 0:
        parser.error("--fetch-timeout must be positive")

    sources = [s.strip().lower() for s in args.sources.split(",") if s.strip()]
    if not sources:
        parser.error("At least one source must be specified")

    invalid_sources = [s for s in sources if s not in available_sources]
    if invalid_sources:
        parser.error(
            f"Unknown sources: {invalid_sources}. "
            f"Available: {', '.join(available_sources)}"
        )

    try:
        params = parse_params(args.params)
        api_keys = parse_env_api_keys()
        api_keys.update(parse_api_keys(args.api_keys))
        reliability = ReliabilityRegistry.from_string(args.reliability_weights)
        persistence = build_persistence(
            args.persist,
            args.oracle_data_address,
            appd_url=args.appd_url,
            private_key=os.environ.get("PRIVATE_KEY"),
            rpc_url=args.rpc_url,
        )
    except ValueError as e:
        parser.error(str(e))

    # Listing and probing cover every registered source
    configured = (
        available_sources if args.list_sources or args.test_connections else sources
    )

    # Log configuration
    logger.info("=" * 60)
    logger.info("Consensus Oracle - Multi-Source Aggregation")
    logger.info("=" * 60)
    logger.info(f"Category:          {args.category}")
    logger.info(f"Sources:           {', '.join(configured)}")
    logger.info(f"Method:            {args.method}")
    logger.info(f"Parameters:        {params}")
    logger.info(f"Fetch Timeout:     {args.fetch_timeout}s")
    logger.info(f"Persistence:       {args.persist}")
    if api_keys:
        logger.info(f"API Keys:          {', '.join(api_keys.keys())}")
    logger.info("=" * 60)

    try:
        adapters = build_adapters(configured, api_keys, args.fetch_timeout)
        aggregator = OracleAggregator(
            adapters,
            reliability=reliability,
            persistence=persistence,
        )
        request = CollectRequest(
            category=args.category,
            source_names=sources,
            parameters=params,
            method=args.method,
        )
        success, output = asyncio.run(
            run(
                aggregator,
                request,
                list_sources=args.list_sources,
                test_connections=args.test_connections,
            )
        )
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        return
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)

    print(json.dumps(output, indent=2, default=str))
    if not success:
        sys.exit(1)


if __name__ == "__main__":
    main()
