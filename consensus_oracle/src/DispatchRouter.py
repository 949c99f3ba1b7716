"""DispatchRouter: Map a request onto the adapter calls that can serve it.

Routing is a table keyed on ``(category, source)``. Each entry holds a call
builder that extracts only the parameters its adapter understands. The table
is checked against the injected adapters when the router is constructed, so
a route pointing at an adapter that cannot serve its category fails at
startup instead of at request time.

.. code-block:: python

    >>> router = DispatchRouter({"chainlink": ChainlinkAdapter()})
    >>> calls = router.route(
    ...     OracleCategory.PRICE_FEED,
    ...     ["chainlink", "weather"],
    ...     {"symbol": "ETH/USD", "city": "London"},
    ... )
    >>> [(c.source, c.parameters) for c in calls]
    [('chainlink', {'symbol': 'ETH/USD'})]
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .adapters.base import AdapterError
from .adapters.nasa import SPACE_DATA_TYPES
from .adapters.weather import parse_days
from .OracleErrors import InvalidRequest
from .OracleTypes import FetchResult, OracleCategory

if TYPE_CHECKING:
    from .adapters import BaseAdapter

logger = logging.getLogger(__name__)

# Returns the adapter parameters, or None if the request cannot be served.
CallBuilder = Callable[[Mapping[str, Any]], "dict[str, Any] | None"]


def _has_coordinates(parameters: Mapping[str, Any]) -> bool:
    return parameters.get("lat") is not None and parameters.get("lon") is not None


def build_price_feed_call(parameters: Mapping[str, Any]) -> dict[str, Any] | None:
    symbol = parameters.get("symbol")
    if not symbol:
        return None
    return {"symbol": symbol}


def build_weather_call(parameters: Mapping[str, Any]) -> dict[str, Any] | None:
    call: dict[str, Any] = {}
    if parameters.get("city"):
        call["city"] = parameters["city"]
    elif _has_coordinates(parameters):
        call["lat"] = parameters["lat"]
        call["lon"] = parameters["lon"]
    else:
        return None
    if parameters.get("units"):
        call["units"] = parameters["units"]
    if parameters.get("days") is not None:
        call["days"] = parameters["days"]
    return call


def build_space_call(parameters: Mapping[str, Any]) -> dict[str, Any] | None:
    data_type = parameters.get("space_data_type") or "apod"
    call: dict[str, Any] = {"space_data_type": data_type}
    if parameters.get("date"):
        call["date"] = parameters["date"]
    if data_type == "earth_imagery":
        if not _has_coordinates(parameters):
            return None
        call["lat"] = parameters["lat"]
        call["lon"] = parameters["lon"]
    return call


DEFAULT_ROUTES: dict[tuple[OracleCategory, str], CallBuilder] = {
    (OracleCategory.PRICE_FEED, "chainlink"): build_price_feed_call,
    (OracleCategory.WEATHER, "weather"): build_weather_call,
    (OracleCategory.SPACE, "nasa"): build_space_call,
}


def validate_parameters(category: OracleCategory, parameters: Mapping[str, Any]) -> None:
    """Check a category's required-field contract.

    :param category: Requested category.
    :param parameters: Caller-supplied parameters.
    :raises InvalidRequest: If a required parameter is missing or invalid.
    """
    if category == OracleCategory.PRICE_FEED:
        symbol = parameters.get("symbol")
        if not isinstance(symbol, str) or not symbol.strip():
            raise InvalidRequest("price_feed requires a 'symbol' parameter")

    elif category == OracleCategory.WEATHER:
        if not parameters.get("city") and not _has_coordinates(parameters):
            raise InvalidRequest("weather requires a 'city' or both 'lat' and 'lon'")
        if parameters.get("days") is not None:
            try:
                parse_days(parameters["days"])
            except AdapterError as e:
                raise InvalidRequest(str(e)) from None

    elif category == OracleCategory.SPACE:
        data_type = parameters.get("space_data_type") or "apod"
        if data_type not in SPACE_DATA_TYPES:
            raise InvalidRequest(
                f"Invalid space_data_type '{data_type}'. "
                f"Must be one of: {', '.join(SPACE_DATA_TYPES)}"
            )
        if data_type == "earth_imagery" and not _has_coordinates(parameters):
            raise InvalidRequest("earth_imagery requires both 'lat' and 'lon'")

    if category in (OracleCategory.WEATHER, OracleCategory.SPACE) and _has_coordinates(
        parameters
    ):
        try:
            float(parameters["lat"])
            float(parameters["lon"])
        except (TypeError, ValueError):
            raise InvalidRequest("'lat' and 'lon' must be numeric") from None


@dataclass(frozen=True)
class PendingCall:
    """A deferred adapter invocation.

    :ivar source: Source the call is addressed to.
    :ivar category: Category being requested.
    :ivar parameters: Parameters relevant to this adapter only.
    :ivar adapter: Adapter that will execute the call.
    """

    source: str
    category: OracleCategory
    parameters: dict[str, Any] = field(hash=False)
    adapter: BaseAdapter = field(hash=False, repr=False)

    async def run(self) -> FetchResult:
        """Execute the adapter call."""
        return await self.adapter.fetch(self.parameters)


class DispatchRouter:
    """Routes (category, source) pairs to adapter calls.

    :ivar adapters: Dict mapping source names to adapter instances.
    :ivar routes: Dict mapping (category, source) to call builders.
    """

    def __init__(
        self,
        adapters: Mapping[str, BaseAdapter],
        routes: Mapping[tuple[OracleCategory, str], CallBuilder] | None = None,
    ) -> None:
        """Initialize and validate the routing table.

        :param adapters: Dict mapping source names to adapter instances.
        :param routes: Routing table (default: DEFAULT_ROUTES).
        :raises ValueError: If a route names an unknown category, or if its
            adapter is configured but cannot serve the route's category.
        """
        self.adapters = dict(adapters)
        self.routes = dict(DEFAULT_ROUTES if routes is None else routes)

        for (category, source), builder in self.routes.items():
            if not isinstance(category, OracleCategory):
                raise ValueError(f"Route ({category!r}, {source!r}) has an unknown category")
            if not callable(builder):
                raise ValueError(f"Route ({category.value}, {source}) has no call builder")
            adapter = self.adapters.get(source)
            if adapter is not None and not adapter.supports_category(category):
                raise ValueError(
                    f"Adapter '{source}' does not support category '{category.value}'"
                )

        unrouted = [
            s for s in self.adapters if not any(src == s for _, src in self.routes)
        ]
        if unrouted:
            logger.warning(f"Adapters without any route: {unrouted}")

    @property
    def known_sources(self) -> set[str]:
        """Source names that appear in the routing table or adapter set."""
        return {source for _, source in self.routes} | set(self.adapters)

    def supports(self, source: str, category: OracleCategory) -> bool:
        """Check whether a configured adapter serves the given category."""
        return (category, source) in self.routes and source in self.adapters

    def route(
        self,
        category: OracleCategory,
        source_names: list[str],
        parameters: Mapping[str, Any],
    ) -> list[PendingCall]:
        """Build one pending call per requested source able to serve the category.

        Sources without a route for the category, without a configured
        adapter, or whose builder rejects the parameters are skipped.

        :param category: Requested category.
        :param source_names: Requested source names (duplicates ignored).
        :param parameters: Caller-supplied parameters.
        :returns: List of pending calls, possibly empty.
        """
        calls: list[PendingCall] = []
        seen: set[str] = set()
        for source in source_names:
            if source in seen:
                continue
            seen.add(source)

            builder = self.routes.get((category, source))
            adapter = self.adapters.get(source)
            if builder is None or adapter is None:
                logger.debug(f"[{source}] Does not serve {category.value}, skipping")
                continue

            call_parameters = builder(parameters)
            if call_parameters is None:
                logger.debug(f"[{source}] Missing parameters for {category.value}, skipping")
                continue

            calls.append(
                PendingCall(
                    source=source,
                    category=category,
                    parameters=call_parameters,
                    adapter=adapter,
                )
            )
        return calls
