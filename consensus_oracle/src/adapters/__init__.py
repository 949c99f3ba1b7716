"""
Source adapters for the oracle aggregation engine.

This module provides a unified interface for fetching normalized observations
from price feeds, weather services and space data APIs.

Usage:
    from consensus_oracle.src.adapters import get_adapter, get_available_adapters

    # Get list of available adapters
    available = get_available_adapters()
    # ['chainlink', 'nasa', 'weather']

    # Create an adapter instance
    adapter = get_adapter("chainlink")
    result = await adapter.fetch({"symbol": "ETH/USD"})

    # For adapters requiring API keys
    adapter = get_adapter("weather", api_key="your-api-key")
"""

# Import base classes and utilities
from .base import (
    ADAPTER_REGISTRY,
    AdapterConfigError,
    AdapterError,
    AdapterHTTPError,
    BaseAdapter,
    get_adapter,
    get_available_adapters,
    register_adapter,
)

# Import all adapter implementations to trigger registration
from .chainlink import ChainlinkAdapter
from .nasa import NASAAdapter
from .weather import WeatherAdapter

__all__ = [
    # Base classes
    "BaseAdapter",
    "AdapterError",
    "AdapterConfigError",
    "AdapterHTTPError",
    # Registry functions
    "register_adapter",
    "get_adapter",
    "get_available_adapters",
    "ADAPTER_REGISTRY",
    # Adapter implementations
    "ChainlinkAdapter",
    "NASAAdapter",
    "WeatherAdapter",
]
