"""Chainlink price feed adapter.

Reads ``latestRoundData()`` from Chainlink aggregator contracts over JSON-RPC.
RPC endpoint: CHAINLINK_RPC_URL env var (default: public Ethereum mainnet node)
Rate Limit: Depends on RPC provider (no key required for public nodes)
"""

import asyncio
import logging
import os
from typing import Any

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import Web3Exception

from ..OracleTypes import OracleCategory, OracleDataPoint
from .base import AdapterError, BaseAdapter, register_adapter

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://ethereum-rpc.publicnode.com"

# Minimal AggregatorV3Interface ABI.
AGGREGATOR_V3_ABI: list[dict[str, Any]] = [
    {
        "inputs": [],
        "name": "latestRoundData",
        "outputs": [
            {"name": "roundId", "type": "uint80"},
            {"name": "answer", "type": "int256"},
            {"name": "startedAt", "type": "uint256"},
            {"name": "updatedAt", "type": "uint256"},
            {"name": "answeredInRound", "type": "uint80"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "description",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Ethereum mainnet aggregator proxies.
PRICE_FEEDS: dict[str, str] = {
    "ETH/USD": "0x5f4eC3Df9cbd43714FE2740f5E3616155c5b8419",
    "BTC/USD": "0xF4030086522a5bEEa4988F8cA5B36dbC97BeE88c",
    "LINK/USD": "0x2c1d072e956AFFC0D435Cb7AC38EF18d24d9127c",
}


@register_adapter
class ChainlinkAdapter(BaseAdapter):
    """Adapter for Chainlink on-chain price feeds.

    Expects a ``symbol`` parameter such as "ETH/USD". No API key required.
    """

    name = "chainlink"
    categories = frozenset({OracleCategory.PRICE_FEED})
    DEFAULT_CONFIDENCE = 0.95
    PROBE_PARAMETERS = {"symbol": "ETH/USD"}

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float | None = None,
        rpc_url: str | None = None,
    ):
        """Initialize the adapter.

        :param api_key: Unused; accepted for registry compatibility.
        :param timeout: Request timeout in seconds.
        :param rpc_url: JSON-RPC endpoint (default: CHAINLINK_RPC_URL env var).
        """
        super().__init__(api_key=api_key, timeout=timeout)
        self.rpc_url = rpc_url or os.environ.get("CHAINLINK_RPC_URL") or DEFAULT_RPC_URL
        self._w3: AsyncWeb3 | None = None

    @property
    def w3(self) -> AsyncWeb3:
        """Lazily created async Web3 connection."""
        if self._w3 is None:
            self._w3 = AsyncWeb3(AsyncHTTPProvider(self.rpc_url))
        return self._w3

    @staticmethod
    def available_feeds() -> list[str]:
        """Symbols with a known aggregator contract."""
        return sorted(PRICE_FEEDS)

    async def _observe(self, parameters: dict[str, Any]) -> OracleDataPoint:
        """Read the latest round for ``parameters['symbol']``.

        :param parameters: Must contain ``symbol`` (e.g., "ETH/USD").
        :returns: Price observation.
        :raises AdapterError: If the feed is unknown or the RPC call fails.
        """
        symbol = str(parameters["symbol"]).upper()
        address = PRICE_FEEDS.get(symbol)
        if address is None:
            raise AdapterError(f"Price feed not available for symbol: {symbol}")

        contract = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address), abi=AGGREGATOR_V3_ABI
        )
        try:
            round_id, answer, _, updated_at, _ = (
                await contract.functions.latestRoundData().call()
            )
            decimals = await contract.functions.decimals().call()
        except (Web3Exception, OSError, asyncio.TimeoutError) as e:
            raise AdapterError(f"RPC call failed for {symbol}: {e}") from e

        if answer <= 0:
            raise AdapterError(f"Non-positive answer {answer} for {symbol}")

        price = answer / (10 ** decimals)
        logger.info(f"[chainlink] {symbol} = {price:.6f} (round {round_id})")

        return self._point(
            OracleCategory.PRICE_FEED,
            {
                "symbol": symbol,
                "price": price,
                "currency": symbol.split("/")[-1],
                "change_24h": None,
            },
            metadata={
                "symbol": symbol,
                "decimals": decimals,
                "round_id": str(round_id),
                "updated_at": updated_at,
                "feed_address": address,
            },
        )

    async def test_connection(self) -> bool:
        """Check that the RPC endpoint answers ``eth_blockNumber``."""
        try:
            await self.w3.eth.block_number
        except Exception as e:
            logger.error(f"[chainlink] Connection test failed: {e}")
            return False
        return True

    def provider_info(self) -> dict[str, Any]:
        info = super().provider_info()
        info.update(
            {
                "rpc_url": self.rpc_url,
                "available_feeds": self.available_feeds(),
            }
        )
        return info
