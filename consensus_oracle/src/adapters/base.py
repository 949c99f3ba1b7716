"""Base adapter interface and shared HTTP client management.

All source adapters inherit from BaseAdapter and implement ``_observe()``,
which turns source-specific parameters into one normalized OracleDataPoint.
``fetch()`` wraps it with timing and converts adapter errors into a failed
FetchResult so a single source can never take down a request.

A shared httpx.AsyncClient is used across all HTTP adapters to avoid
connection overhead.

.. code-block:: python

    @register_adapter
    class MyAdapter(BaseAdapter):
        name = "myadapter"
        categories = frozenset({OracleCategory.PRICE_FEED})

        async def _observe(self, parameters: dict) -> OracleDataPoint:
            response = await self._get(f"https://api.example.com/{parameters['symbol']}")
            return self._point(OracleCategory.PRICE_FEED, {"price": response.json()["price"]})
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from ..OracleTypes import FetchResult, OracleCategory, OracleDataPoint

logger = logging.getLogger(__name__)


class AdapterError(Exception):
    """Base exception for adapter errors."""

    pass


class AdapterConfigError(AdapterError):
    """Raised when adapter configuration is invalid (e.g., missing API key)."""

    pass


class AdapterHTTPError(AdapterError):
    """Raised when HTTP request fails.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class BaseAdapter(ABC):
    """Abstract base class for source adapters.

    Subclasses must define:
        - name: Class variable identifying the source (e.g., "chainlink")
        - categories: Data categories the source can serve
        - _observe(): Async method producing one OracleDataPoint

    :cvar name: Unique identifier for this adapter.
    :cvar categories: Categories this adapter supports.
    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :cvar DEFAULT_CONFIDENCE: Confidence attached to this source's readings.
    :ivar api_key: Optional API key for authenticated endpoints.
    :ivar timeout: Request timeout in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    # Adapter identification
    name: ClassVar[str] = ""
    categories: ClassVar[frozenset[OracleCategory]] = frozenset()

    DEFAULT_TIMEOUT = 10.0
    DEFAULT_CONFIDENCE: ClassVar[float] = 0.5

    # Parameters used by test_connection() for a cheap probe call
    PROBE_PARAMETERS: ClassVar[dict[str, Any]] = {}

    def __init__(self, api_key: str | None = None, timeout: float | None = None):
        """Initialize the adapter.

        :param api_key: Optional API key for authenticated endpoints.
        :param timeout: Request timeout in seconds (default: 10).
        """
        self.api_key = api_key
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    @property
    def has_api_key(self) -> bool:
        """Check if this adapter has an API key configured."""
        return self.api_key is not None and len(self.api_key) > 0

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        The client is shared across all adapter instances to reuse connections.

        :returns: Shared httpx.AsyncClient instance.
        """
        if BaseAdapter._shared_client is None or BaseAdapter._shared_client.is_closed:
            BaseAdapter._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                follow_redirects=True,
            )
        return BaseAdapter._shared_client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = BaseAdapter._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        BaseAdapter._shared_client = None

    def supports_category(self, category: OracleCategory) -> bool:
        """Check if this adapter can serve the given category."""
        return category in self.categories

    async def fetch(self, parameters: dict[str, Any]) -> FetchResult:
        """Fetch one observation, never raising for source-side failures.

        :param parameters: Adapter-specific parameters built by the router.
        :returns: FetchResult carrying the observation or the error message.
        """
        started = time.perf_counter()
        try:
            observation = await self._observe(parameters)
        except AdapterError as e:
            elapsed = self._elapsed_ms(started)
            logger.warning(f"[{self.name}] Fetch failed ({elapsed}ms): {e}")
            return FetchResult.failed(self.name, str(e), elapsed)
        except (KeyError, ValueError, TypeError) as e:
            elapsed = self._elapsed_ms(started)
            logger.warning(f"[{self.name}] Failed to parse response: {e!r}")
            return FetchResult.failed(
                self.name, f"Malformed response: {e!r}", elapsed
            )

        elapsed = self._elapsed_ms(started)
        logger.debug(f"[{self.name}] Observation retrieved in {elapsed}ms")
        return FetchResult.ok(observation, elapsed)

    @abstractmethod
    async def _observe(self, parameters: dict[str, Any]) -> OracleDataPoint:
        """Produce one normalized observation.

        :param parameters: Adapter-specific parameters.
        :returns: Normalized observation.
        :raises AdapterError: On any source-side failure.
        """
        pass

    async def test_connection(self) -> bool:
        """Probe the source with a cheap request.

        :returns: True if the probe produced an observation.
        """
        result = await self.fetch(dict(self.PROBE_PARAMETERS))
        return result.success

    def provider_info(self) -> dict[str, Any]:
        """Describe this provider for source listings."""
        return {
            "provider": self.name,
            "categories": sorted(c.value for c in self.categories),
            "has_api_key": self.has_api_key,
        }

    def _point(
        self,
        category: OracleCategory,
        value: dict[str, Any],
        metadata: dict[str, Any] | None = None,
        confidence: float | None = None,
    ) -> OracleDataPoint:
        """Build an observation stamped with this source and collection time."""
        return OracleDataPoint(
            source=self.name,
            category=category,
            value=value,
            confidence=self.DEFAULT_CONFIDENCE if confidence is None else confidence,
            metadata=metadata or {},
        )

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request using the shared client.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises AdapterHTTPError: On non-2xx response.
        :raises AdapterError: On network/timeout errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
            if not response.is_success:
                logger.debug(
                    "HTTP GET %s failed with status %s: %s",
                    url,
                    response.status_code,
                    response.text[:200],
                )
                raise AdapterHTTPError(response.status_code, response.text[:200])
            return response
        except httpx.TimeoutException as e:
            raise AdapterError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise AdapterError(f"Request failed: {e}") from e


# Registry of available adapters (populated by subclass imports)
ADAPTER_REGISTRY: dict[str, type[BaseAdapter]] = {}


def register_adapter(cls: type[BaseAdapter]) -> type[BaseAdapter]:
    """Decorator to register an adapter class in the global registry.

    :param cls: Adapter class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If the adapter has no name or no categories.
    """
    if not cls.name:
        raise ValueError(f"Adapter {cls.__name__} must define a 'name' class variable")
    if not cls.categories:
        raise ValueError(f"Adapter {cls.__name__} must declare at least one category")
    ADAPTER_REGISTRY[cls.name] = cls
    return cls


def get_adapter(
    name: str, api_key: str | None = None, timeout: float | None = None
) -> BaseAdapter:
    """Get an adapter instance by name.

    :param name: Adapter name (e.g., "chainlink", "nasa").
    :param api_key: Optional API key.
    :param timeout: Optional request timeout in seconds.
    :returns: Adapter instance.
    :raises ValueError: If adapter name is unknown.
    """
    if name not in ADAPTER_REGISTRY:
        available = ", ".join(sorted(ADAPTER_REGISTRY.keys()))
        raise ValueError(f"Unknown adapter '{name}'. Available: {available}")
    return ADAPTER_REGISTRY[name](api_key=api_key, timeout=timeout)


def get_available_adapters() -> list[str]:
    """Get list of available adapter names.

    :returns: Sorted list of registered adapter names.
    """
    return sorted(ADAPTER_REGISTRY.keys())
