"""OpenWeatherMap weather adapter.

Endpoints:
    - https://api.openweathermap.org/data/2.5/weather (current conditions)
    - https://api.openweathermap.org/data/2.5/forecast (5 day / 3 hour)
Rate Limit: 60 calls/minute (free tier)
API Key: Required (API_KEY_WEATHER)
"""

import logging
from collections import Counter
from typing import Any

from ..OracleTypes import OracleCategory, OracleDataPoint
from .base import AdapterConfigError, AdapterError, BaseAdapter, register_adapter

logger = logging.getLogger(__name__)

FORECAST_MAX_DAYS = 5
SLOTS_PER_DAY = 8  # 3-hour steps


@register_adapter
class WeatherAdapter(BaseAdapter):
    """Adapter for OpenWeatherMap current conditions and daily forecasts.

    Accepts either ``city`` or both ``lat`` and ``lon``. Readings are metric
    unless ``units`` says otherwise. A ``days`` parameter switches to a daily
    forecast, which is reported with lower confidence.
    """

    name = "weather"
    categories = frozenset({OracleCategory.WEATHER})
    DEFAULT_CONFIDENCE = 0.85
    FORECAST_CONFIDENCE = 0.80
    PROBE_PARAMETERS = {"city": "London"}
    BASE_URL = "https://api.openweathermap.org/data/2.5"

    async def _observe(self, parameters: dict[str, Any]) -> OracleDataPoint:
        """Fetch current weather or a daily forecast for a location.

        :param parameters: ``city`` or ``lat``/``lon``, optional ``units``
            and ``days``.
        :returns: Weather observation.
        :raises AdapterConfigError: If no API key is configured.
        :raises AdapterError: If the location is missing or the request fails.
        """
        if not self.has_api_key:
            raise AdapterConfigError("OpenWeatherMap requires an API key")

        units = parameters.get("units") or "metric"
        params: dict[str, Any] = {"appid": self.api_key, "units": units}
        if parameters.get("city"):
            params["q"] = parameters["city"]
            location = str(parameters["city"])
        elif parameters.get("lat") is not None and parameters.get("lon") is not None:
            params["lat"] = parameters["lat"]
            params["lon"] = parameters["lon"]
            location = f"{parameters['lat']},{parameters['lon']}"
        else:
            raise AdapterError("Weather lookup requires 'city' or 'lat'/'lon'")

        metadata = {"location": location, "provider": "OpenWeatherMap", "units": units}
        if parameters.get("days") is not None:
            return await self._forecast(params, parse_days(parameters["days"]), metadata)

        response = await self._get(f"{self.BASE_URL}/weather", params=params)
        data = response.json()

        main = data["main"]
        conditions = data.get("weather") or [{}]
        coord = data.get("coord") or {}
        value = {
            "location": data.get("name") or location,
            "temperature": float(main["temp"]),
            "humidity": float(main["humidity"]),
            "pressure": float(main["pressure"]),
            "wind_speed": float((data.get("wind") or {}).get("speed", 0.0)),
            "condition": conditions[0].get("main", "Unknown"),
            "coordinates": {"lat": coord.get("lat"), "lon": coord.get("lon")},
        }
        logger.info(
            f"[weather] {value['location']}: {value['temperature']} "
            f"{value['condition']}"
        )

        return self._point(OracleCategory.WEATHER, value, metadata=metadata)

    async def _forecast(
        self, params: dict[str, Any], days: int, metadata: dict[str, Any]
    ) -> OracleDataPoint:
        """Fetch 3-hour forecast slots and fold them into daily summaries."""
        params = {**params, "cnt": days * SLOTS_PER_DAY}
        response = await self._get(f"{self.BASE_URL}/forecast", params=params)
        data = response.json()

        slots_by_date: dict[str, list[dict[str, Any]]] = {}
        for slot in data.get("list") or []:
            date = str(slot.get("dt_txt", ""))[:10]
            if date:
                slots_by_date.setdefault(date, []).append(slot)
        if not slots_by_date:
            raise AdapterError("Forecast response contained no entries")

        forecast = [
            summarize_day(date, slots)
            for date, slots in sorted(slots_by_date.items())[:days]
        ]
        value = {
            "location": (data.get("city") or {}).get("name") or metadata["location"],
            "forecast": forecast,
            "days": len(forecast),
        }
        logger.info(f"[weather] {value['location']}: {len(forecast)}-day forecast")

        return self._point(
            OracleCategory.WEATHER,
            value,
            metadata={**metadata, "forecast_days": days},
            confidence=self.FORECAST_CONFIDENCE,
        )

    def provider_info(self) -> dict[str, Any]:
        info = super().provider_info()
        info.update(
            {
                "base_url": self.BASE_URL,
                "data_types": ["current_weather", "weather_forecast"],
                "max_forecast_days": FORECAST_MAX_DAYS,
            }
        )
        return info


def parse_days(days: Any) -> int:
    """Coerce a forecast length to an int in [1, FORECAST_MAX_DAYS].

    :raises AdapterError: If the value is not such an integer.
    """
    try:
        count = int(days)
    except (TypeError, ValueError):
        raise AdapterError(f"Forecast days must be an integer, got {days!r}") from None
    if isinstance(days, float) and days != count:
        raise AdapterError(f"Forecast days must be an integer, got {days!r}")
    if not 1 <= count <= FORECAST_MAX_DAYS:
        raise AdapterError(f"Forecast days must be between 1 and {FORECAST_MAX_DAYS}")
    return count


def summarize_day(date: str, slots: list[dict[str, Any]]) -> dict[str, Any]:
    """Reduce one day's forecast slots to min/max temperature and the usual sky."""
    mains = [slot["main"] for slot in slots]
    conditions = Counter(
        (slot.get("weather") or [{}])[0].get("main", "Unknown") for slot in slots
    )
    return {
        "date": date,
        "temp_min": min(float(m.get("temp_min", m["temp"])) for m in mains),
        "temp_max": max(float(m.get("temp_max", m["temp"])) for m in mains),
        "humidity": round(sum(float(m["humidity"]) for m in mains) / len(mains), 1),
        "condition": conditions.most_common(1)[0][0],
    }
