"""NASA open data adapter.

Endpoint: https://api.nasa.gov
Rate Limit: 30 requests/hour with DEMO_KEY, 1000/hour with a personal key
API Key: Optional (API_KEY_NASA, falls back to DEMO_KEY)

Supported ``space_data_type`` values:
    - asteroid: Near Earth Object feed for one day
    - earth_imagery: Landsat asset lookup for lat/lon
    - mars_weather: InSight lander weather by sol
    - apod: Astronomy Picture of the Day (default)
"""

import logging
from datetime import datetime, timezone
from typing import Any

from ..OracleTypes import OracleCategory, OracleDataPoint
from .base import AdapterError, BaseAdapter, register_adapter

logger = logging.getLogger(__name__)

SPACE_DATA_TYPES = ("asteroid", "earth_imagery", "mars_weather", "apod")

# Per-dataset confidence reported with each reading.
DATASET_CONFIDENCE: dict[str, float] = {
    "asteroid": 0.92,
    "earth_imagery": 0.88,
    "mars_weather": 0.85,
    "apod": 0.95,
}


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


@register_adapter
class NASAAdapter(BaseAdapter):
    """Adapter for NASA open APIs (NEO, Earth, InSight, APOD)."""

    name = "nasa"
    categories = frozenset({OracleCategory.SPACE})
    DEFAULT_CONFIDENCE = 0.90
    PROBE_PARAMETERS = {"space_data_type": "apod"}
    BASE_URL = "https://api.nasa.gov"
    DEMO_KEY = "DEMO_KEY"

    @property
    def key(self) -> str:
        return self.api_key if self.has_api_key else self.DEMO_KEY

    async def _observe(self, parameters: dict[str, Any]) -> OracleDataPoint:
        """Dispatch to the dataset named by ``space_data_type``.

        :param parameters: ``space_data_type`` plus dataset-specific fields.
        :returns: Space observation.
        :raises AdapterError: If the dataset is unknown or the request fails.
        """
        data_type = parameters.get("space_data_type") or "apod"
        if data_type == "asteroid":
            value, metadata = await self._asteroids(parameters.get("date") or _today())
        elif data_type == "earth_imagery":
            if parameters.get("lat") is None or parameters.get("lon") is None:
                raise AdapterError("earth_imagery requires 'lat' and 'lon'")
            value, metadata = await self._earth_imagery(
                float(parameters["lat"]),
                float(parameters["lon"]),
                parameters.get("date") or _today(),
            )
        elif data_type == "mars_weather":
            value, metadata = await self._mars_weather()
        elif data_type == "apod":
            value, metadata = await self._apod(parameters.get("date"))
        else:
            raise AdapterError(
                f"Unknown space_data_type '{data_type}'. "
                f"Expected one of: {', '.join(SPACE_DATA_TYPES)}"
            )

        metadata["data_type"] = data_type
        logger.info(f"[nasa] {data_type} data retrieved")
        return self._point(
            OracleCategory.SPACE,
            value,
            metadata=metadata,
            confidence=DATASET_CONFIDENCE[data_type],
        )

    async def _asteroids(self, date: str) -> tuple[dict, dict]:
        response = await self._get(
            f"{self.BASE_URL}/neo/rest/v1/feed",
            params={"start_date": date, "end_date": date, "api_key": self.key},
        )
        data = response.json()

        asteroids = []
        for neo in data["near_earth_objects"].get(date, []):
            approach = (neo.get("close_approach_data") or [{}])[0]
            diameter = neo["estimated_diameter"]["meters"]
            asteroids.append(
                {
                    "id": neo["id"],
                    "name": neo["name"],
                    "diameter": {
                        "min": diameter["estimated_diameter_min"],
                        "max": diameter["estimated_diameter_max"],
                    },
                    "close_approach_date": approach.get("close_approach_date", date),
                    "velocity_kph": float(
                        approach.get("relative_velocity", {}).get("kilometers_per_hour", 0)
                    ),
                    "miss_distance_km": float(
                        approach.get("miss_distance", {}).get("kilometers", 0)
                    ),
                    "is_potentially_hazardous": bool(
                        neo.get("is_potentially_hazardous_asteroid", False)
                    ),
                }
            )

        value = {
            "data_type": "asteroid",
            "data": asteroids,
            "date": date,
            "mission": "Near Earth Object Observations",
            "instrument": "Ground-based telescopes",
        }
        return value, {"date": date, "provider": "NASA NEO API", "count": len(asteroids)}

    async def _earth_imagery(self, lat: float, lon: float, date: str) -> tuple[dict, dict]:
        response = await self._get(
            f"{self.BASE_URL}/planetary/earth/assets",
            params={"lat": lat, "lon": lon, "date": date, "dim": 0.15, "api_key": self.key},
        )
        data = response.json()

        value = {
            "data_type": "earth_imagery",
            "data": {
                "coordinates": {"lat": lat, "lon": lon},
                "image_url": data["url"],
                "asset_id": data.get("id"),
                "acquired": data.get("date"),
                "dataset": (data.get("resource") or {}).get("dataset"),
            },
            "date": date,
            "mission": "Landsat Earth Observation",
            "instrument": "Operational Land Imager (OLI)",
        }
        metadata = {
            "coordinates": {"lat": lat, "lon": lon},
            "date": date,
            "provider": "NASA Earth Imagery API",
        }
        return value, metadata

    async def _mars_weather(self) -> tuple[dict, dict]:
        response = await self._get(
            f"{self.BASE_URL}/insight_weather/",
            params={"feedtype": "json", "ver": "1.0", "api_key": self.key},
        )
        data = response.json()

        sols = []
        for sol_key in data.get("sol_keys", []):
            sol = data[sol_key]
            sols.append(
                {
                    "sol": int(sol_key),
                    "temperature": {
                        "min": sol.get("AT", {}).get("mn"),
                        "max": sol.get("AT", {}).get("mx"),
                    },
                    "pressure": sol.get("PRE", {}).get("av"),
                    "wind_speed": sol.get("HWS", {}).get("av"),
                    "season": sol.get("Season"),
                }
            )
        if not sols:
            raise AdapterError("InSight weather feed returned no sols")

        value = {
            "data_type": "mars_rover",
            "data": {"location": "Elysium Planitia", "sols": sols, "lander": "InSight"},
            "mission": "InSight",
            "instrument": "Temperature and Winds for InSight (TWINS)",
        }
        return value, {"provider": "NASA InSight API", "sol_count": len(sols)}

    async def _apod(self, date: str | None) -> tuple[dict, dict]:
        params = {"api_key": self.key}
        if date:
            params["date"] = date
        response = await self._get(f"{self.BASE_URL}/planetary/apod", params=params)
        data = response.json()

        value = {
            "data_type": "astronomy_picture",
            "data": {
                "title": data["title"],
                "explanation": data.get("explanation", ""),
                "image_url": data["url"],
                "date": data.get("date"),
                "media_type": data.get("media_type"),
                "copyright": data.get("copyright"),
            },
            "date": data.get("date"),
            "mission": "Astronomy Picture of the Day",
            "instrument": "Various space telescopes",
        }
        return value, {"provider": "NASA APOD API"}

    def provider_info(self) -> dict[str, Any]:
        info = super().provider_info()
        info.update({"base_url": self.BASE_URL, "data_types": list(SPACE_DATA_TYPES)})
        return info
