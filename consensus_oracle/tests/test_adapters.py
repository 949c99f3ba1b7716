"""Unit tests for the source adapters."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from web3.exceptions import Web3Exception

from consensus_oracle.src.adapters import (
    ADAPTER_REGISTRY,
    AdapterHTTPError,
    BaseAdapter,
    ChainlinkAdapter,
    NASAAdapter,
    WeatherAdapter,
    get_adapter,
    get_available_adapters,
    register_adapter,
)
from consensus_oracle.src.adapters.chainlink import PRICE_FEEDS
from consensus_oracle.src.OracleTypes import OracleCategory


def json_response(payload: dict) -> MagicMock:
    response = MagicMock()
    response.json.return_value = payload
    return response


def chainlink_w3(answer: int = 250050000000, decimals: int = 8) -> MagicMock:
    contract = MagicMock()
    contract.functions.latestRoundData.return_value.call = AsyncMock(
        return_value=(110680464442257320000, answer, 1700000000, 1700000012, 110680464442257320000)
    )
    contract.functions.decimals.return_value.call = AsyncMock(return_value=decimals)
    w3 = MagicMock()
    w3.eth.contract.return_value = contract
    return w3


class TestRegistry:
    """Test adapter registration and lookup."""

    def test_available_adapters(self) -> None:
        """The three built-in adapters are registered."""
        assert get_available_adapters() == ["chainlink", "nasa", "weather"]

    def test_get_adapter(self) -> None:
        """get_adapter passes key and timeout through."""
        adapter = get_adapter("weather", api_key="k", timeout=3.0)
        assert isinstance(adapter, WeatherAdapter)
        assert adapter.api_key == "k"
        assert adapter.timeout == 3.0

    def test_unknown_adapter(self) -> None:
        """Unknown names raise ValueError listing what is available."""
        with pytest.raises(ValueError, match="Unknown adapter 'pyth'"):
            get_adapter("pyth")

    def test_register_requires_name(self) -> None:
        """Adapters without a name are rejected."""

        class Nameless(BaseAdapter):
            categories = frozenset({OracleCategory.FINANCIAL})

            async def _observe(self, parameters):
                raise NotImplementedError

        with pytest.raises(ValueError, match="must define a 'name'"):
            register_adapter(Nameless)
        assert "" not in ADAPTER_REGISTRY

    def test_register_requires_categories(self) -> None:
        """Adapters without categories are rejected."""

        class Uncategorized(BaseAdapter):
            name = "uncategorized"

            async def _observe(self, parameters):
                raise NotImplementedError

        with pytest.raises(ValueError, match="at least one category"):
            register_adapter(Uncategorized)


class TestBaseAdapter:
    """Test error conversion in BaseAdapter.fetch()."""

    @pytest.mark.asyncio
    async def test_http_error_becomes_failed_result(self) -> None:
        """HTTP errors are reported, not raised."""
        adapter = NASAAdapter()
        with patch.object(
            adapter, "_get", AsyncMock(side_effect=AdapterHTTPError(429, "rate limited"))
        ):
            result = await adapter.fetch({"space_data_type": "apod"})
        assert not result.success
        assert result.error == "HTTP 429: rate limited"
        assert result.source == "nasa"

    @pytest.mark.asyncio
    async def test_malformed_payload(self) -> None:
        """Parse errors are reported as malformed responses."""
        adapter = NASAAdapter()
        with patch.object(adapter, "_get", AsyncMock(return_value=json_response({}))):
            result = await adapter.fetch({"space_data_type": "apod"})
        assert not result.success
        assert result.error.startswith("Malformed response")

    @pytest.mark.asyncio
    async def test_get_raises_on_status(self) -> None:
        """Non-2xx responses raise AdapterHTTPError."""
        adapter = NASAAdapter()
        client = MagicMock()
        client.get = AsyncMock(return_value=httpx.Response(503, text="maintenance"))
        with patch.object(BaseAdapter, "get_shared_client", return_value=client):
            with pytest.raises(AdapterHTTPError) as exc_info:
                await adapter._get("https://api.nasa.gov/planetary/apod")
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_shared_client_lifecycle(self) -> None:
        """The shared client is reused and can be closed."""
        first = BaseAdapter.get_shared_client()
        assert BaseAdapter.get_shared_client() is first
        await BaseAdapter.close_shared_client()
        assert first.is_closed
        assert BaseAdapter._shared_client is None


class TestChainlinkAdapter:
    """Test the Chainlink adapter."""

    @pytest.mark.asyncio
    async def test_latest_round(self) -> None:
        """Answer is scaled by the feed's decimals."""
        adapter = ChainlinkAdapter(rpc_url="http://rpc.invalid")
        adapter._w3 = chainlink_w3()

        result = await adapter.fetch({"symbol": "eth/usd"})

        assert result.success
        point = result.observation
        assert point.source == "chainlink"
        assert point.category == OracleCategory.PRICE_FEED
        assert point.value == {
            "symbol": "ETH/USD",
            "price": 2500.50,
            "currency": "USD",
            "change_24h": None,
        }
        assert point.confidence == 0.95
        assert point.metadata["decimals"] == 8
        assert point.metadata["feed_address"] == PRICE_FEEDS["ETH/USD"]

    @pytest.mark.asyncio
    async def test_unknown_symbol(self) -> None:
        """Symbols without a feed fail without touching the RPC."""
        adapter = ChainlinkAdapter()
        adapter._w3 = chainlink_w3()
        result = await adapter.fetch({"symbol": "DOGE/USD"})
        assert not result.success
        assert "DOGE/USD" in result.error
        adapter._w3.eth.contract.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_positive_answer(self) -> None:
        """Zero or negative answers are rejected."""
        adapter = ChainlinkAdapter()
        adapter._w3 = chainlink_w3(answer=0)
        result = await adapter.fetch({"symbol": "BTC/USD"})
        assert not result.success
        assert "Non-positive answer" in result.error

    @pytest.mark.asyncio
    async def test_rpc_failure(self) -> None:
        """RPC errors become failed results."""
        adapter = ChainlinkAdapter()
        w3 = chainlink_w3()
        w3.eth.contract.return_value.functions.latestRoundData.return_value.call = (
            AsyncMock(side_effect=Web3Exception("execution reverted"))
        )
        adapter._w3 = w3
        result = await adapter.fetch({"symbol": "LINK/USD"})
        assert not result.success
        assert "RPC call failed for LINK/USD" in result.error

    def test_rpc_url_from_env(self, monkeypatch) -> None:
        """CHAINLINK_RPC_URL overrides the default endpoint."""
        monkeypatch.setenv("CHAINLINK_RPC_URL", "http://node.local:8545")
        assert ChainlinkAdapter().rpc_url == "http://node.local:8545"

    @pytest.mark.asyncio
    async def test_connection(self) -> None:
        """Connection test reads the block number."""
        adapter = ChainlinkAdapter()
        block = asyncio.get_running_loop().create_future()
        block.set_result(19_000_000)
        adapter._w3 = MagicMock()
        adapter._w3.eth.block_number = block
        assert await adapter.test_connection()

    @pytest.mark.asyncio
    async def test_connection_failure(self) -> None:
        """Unreachable RPC reports False."""
        adapter = ChainlinkAdapter()
        block = asyncio.get_running_loop().create_future()
        block.set_exception(ConnectionError("refused"))
        adapter._w3 = MagicMock()
        adapter._w3.eth.block_number = block
        assert not await adapter.test_connection()

    def test_provider_info(self) -> None:
        """Provider info lists the supported feeds."""
        info = ChainlinkAdapter(rpc_url="http://rpc").provider_info()
        assert info["available_feeds"] == ["BTC/USD", "ETH/USD", "LINK/USD"]
        assert info["categories"] == ["price_feed"]


class TestWeatherAdapter:
    """Test the OpenWeatherMap adapter."""

    PAYLOAD = {
        "name": "London",
        "coord": {"lat": 51.51, "lon": -0.13},
        "main": {"temp": 14.2, "humidity": 72, "pressure": 1012},
        "wind": {"speed": 4.1},
        "weather": [{"main": "Clouds"}],
    }

    @pytest.mark.asyncio
    async def test_requires_api_key(self) -> None:
        """Missing key is a configuration failure."""
        result = await WeatherAdapter().fetch({"city": "London"})
        assert not result.success
        assert "requires an API key" in result.error

    @pytest.mark.asyncio
    async def test_city(self) -> None:
        """City lookups are normalized."""
        adapter = WeatherAdapter(api_key="secret")
        get = AsyncMock(return_value=json_response(self.PAYLOAD))
        with patch.object(adapter, "_get", get):
            result = await adapter.fetch({"city": "London"})

        assert result.success
        value = result.observation.value
        assert value["temperature"] == 14.2
        assert value["humidity"] == 72.0
        assert value["condition"] == "Clouds"
        assert value["coordinates"] == {"lat": 51.51, "lon": -0.13}
        assert result.observation.confidence == 0.85
        params = get.call_args.kwargs["params"]
        assert params == {"appid": "secret", "units": "metric", "q": "London"}

    @pytest.mark.asyncio
    async def test_coordinates(self) -> None:
        """Coordinate lookups send lat and lon."""
        adapter = WeatherAdapter(api_key="secret")
        get = AsyncMock(return_value=json_response(self.PAYLOAD))
        with patch.object(adapter, "_get", get):
            result = await adapter.fetch({"lat": "51.5", "lon": "-0.1", "units": "imperial"})
        assert result.success
        params = get.call_args.kwargs["params"]
        assert params["lat"] == "51.5"
        assert params["units"] == "imperial"
        assert result.observation.metadata["units"] == "imperial"

    FORECAST = {
        "city": {"name": "London"},
        "list": [
            {
                "dt_txt": "2024-03-01 12:00:00",
                "main": {"temp": 10.0, "temp_min": 9.5, "temp_max": 10.5, "humidity": 70},
                "weather": [{"main": "Rain"}],
            },
            {
                "dt_txt": "2024-03-01 15:00:00",
                "main": {"temp": 12.0, "temp_min": 11.0, "temp_max": 12.5, "humidity": 60},
                "weather": [{"main": "Rain"}],
            },
            {
                "dt_txt": "2024-03-01 18:00:00",
                "main": {"temp": 8.0, "humidity": 80},
                "weather": [{"main": "Clouds"}],
            },
            {
                "dt_txt": "2024-03-02 00:00:00",
                "main": {"temp": 5.0, "temp_min": 4.0, "temp_max": 6.0, "humidity": 90},
                "weather": [{"main": "Clear"}],
            },
        ],
    }

    @pytest.mark.asyncio
    async def test_forecast(self) -> None:
        """A days parameter folds 3-hour slots into daily summaries."""
        adapter = WeatherAdapter(api_key="secret")
        get = AsyncMock(return_value=json_response(self.FORECAST))
        with patch.object(adapter, "_get", get):
            result = await adapter.fetch({"city": "London", "days": "2"})

        assert result.success
        assert get.call_args.args[0].endswith("/forecast")
        assert get.call_args.kwargs["params"]["cnt"] == 16
        value = result.observation.value
        assert value["location"] == "London"
        assert value["days"] == 2
        assert value["forecast"][0] == {
            "date": "2024-03-01",
            "temp_min": 8.0,
            "temp_max": 12.5,
            "humidity": 70.0,
            "condition": "Rain",
        }
        assert value["forecast"][1]["date"] == "2024-03-02"
        assert result.observation.confidence == 0.80
        assert result.observation.metadata["forecast_days"] == 2

    @pytest.mark.asyncio
    async def test_forecast_truncates_to_days(self) -> None:
        """Only the requested number of days is reported."""
        adapter = WeatherAdapter(api_key="secret")
        with patch.object(adapter, "_get", AsyncMock(return_value=json_response(self.FORECAST))):
            result = await adapter.fetch({"lat": 51.5, "lon": -0.1, "days": 1})
        assert [d["date"] for d in result.observation.value["forecast"]] == ["2024-03-01"]

    @pytest.mark.asyncio
    async def test_forecast_empty(self) -> None:
        """An empty slot list is a source failure."""
        adapter = WeatherAdapter(api_key="secret")
        with patch.object(adapter, "_get", AsyncMock(return_value=json_response({"list": []}))):
            result = await adapter.fetch({"city": "London", "days": 3})
        assert not result.success
        assert "no entries" in result.error

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days", [0, 6, "soon", 2.5])
    async def test_forecast_days_out_of_range(self, days) -> None:
        """Forecast length must be a whole number of days from 1 to 5."""
        adapter = WeatherAdapter(api_key="secret")
        get = AsyncMock()
        with patch.object(adapter, "_get", get):
            result = await adapter.fetch({"city": "London", "days": days})
        assert not result.success
        assert "Forecast days" in result.error
        get.assert_not_awaited()

    def test_provider_info(self) -> None:
        """Both current weather and forecasts are advertised."""
        info = WeatherAdapter().provider_info()
        assert info["data_types"] == ["current_weather", "weather_forecast"]
        assert info["max_forecast_days"] == 5


class TestNASAAdapter:
    """Test the NASA adapter."""

    @pytest.mark.asyncio
    async def test_apod(self) -> None:
        """APOD uses DEMO_KEY when no key is configured."""
        adapter = NASAAdapter()
        payload = {
            "title": "Andromeda",
            "url": "https://apod.nasa.gov/a.jpg",
            "date": "2024-05-01",
            "media_type": "image",
        }
        get = AsyncMock(return_value=json_response(payload))
        with patch.object(adapter, "_get", get):
            result = await adapter.fetch({"space_data_type": "apod"})

        assert result.success
        assert result.observation.value["data"]["title"] == "Andromeda"
        assert result.observation.confidence == 0.95
        assert result.observation.metadata["data_type"] == "apod"
        assert get.call_args.kwargs["params"]["api_key"] == "DEMO_KEY"

    @pytest.mark.asyncio
    async def test_asteroids(self) -> None:
        """NEO feed entries are normalized."""
        adapter = NASAAdapter(api_key="real-key")
        payload = {
            "near_earth_objects": {
                "2024-05-01": [
                    {
                        "id": "3542519",
                        "name": "(2010 PK9)",
                        "estimated_diameter": {
                            "meters": {
                                "estimated_diameter_min": 110.0,
                                "estimated_diameter_max": 250.0,
                            }
                        },
                        "close_approach_data": [
                            {
                                "close_approach_date": "2024-05-01",
                                "relative_velocity": {"kilometers_per_hour": "55000.1"},
                                "miss_distance": {"kilometers": "7000000.5"},
                            }
                        ],
                        "is_potentially_hazardous_asteroid": True,
                    }
                ]
            }
        }
        get = AsyncMock(return_value=json_response(payload))
        with patch.object(adapter, "_get", get):
            result = await adapter.fetch({"space_data_type": "asteroid", "date": "2024-05-01"})

        assert result.success
        (neo,) = result.observation.value["data"]
        assert neo["diameter"] == {"min": 110.0, "max": 250.0}
        assert neo["velocity_kph"] == 55000.1
        assert neo["is_potentially_hazardous"] is True
        assert result.observation.confidence == 0.92
        assert get.call_args.kwargs["params"]["api_key"] == "real-key"

    @pytest.mark.asyncio
    async def test_earth_imagery(self) -> None:
        """Earth assets are looked up by coordinates."""
        adapter = NASAAdapter()
        payload = {"url": "https://earth.img/x.png", "id": "LC8", "date": "2024-04-28"}
        with patch.object(adapter, "_get", AsyncMock(return_value=json_response(payload))):
            result = await adapter.fetch(
                {"space_data_type": "earth_imagery", "lat": "29.78", "lon": "-95.33"}
            )
        assert result.success
        assert result.observation.value["data"]["coordinates"] == {"lat": 29.78, "lon": -95.33}
        assert result.observation.confidence == 0.88

    @pytest.mark.asyncio
    async def test_mars_weather_without_sols(self) -> None:
        """An empty InSight feed is a failure."""
        adapter = NASAAdapter()
        with patch.object(
            adapter, "_get", AsyncMock(return_value=json_response({"sol_keys": []}))
        ):
            result = await adapter.fetch({"space_data_type": "mars_weather"})
        assert not result.success
        assert "no sols" in result.error

    @pytest.mark.asyncio
    async def test_unknown_data_type(self) -> None:
        """Unknown dataset names fail."""
        result = await NASAAdapter().fetch({"space_data_type": "comet"})
        assert not result.success
        assert "Unknown space_data_type" in result.error
