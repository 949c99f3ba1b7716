"""ReliabilityRegistry: Static per-source trust weights.

Weights are loaded once at startup and are read-only afterwards. Changing a
weight requires restarting with new configuration; there is no runtime
mutation API.

.. code-block:: python

    >>> registry = ReliabilityRegistry()
    >>> registry.reliability_of("chainlink")
    0.95
    >>> registry.reliability_of("unknown-source")
    0.5
    >>> registry = ReliabilityRegistry.from_string("weather=0.6")
    >>> registry.reliability_of("weather")
    0.6
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType

DEFAULT_RELIABILITY = 0.5

DEFAULT_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {
        "chainlink": 0.95,
        "weather": 0.80,
        "nasa": 0.90,
        "aggregated": 0.85,
    }
)


def parse_reliability_weights(weights_str: str | None) -> dict[str, float]:
    """Parse comma-separated ``source=weight`` pairs.

    Format: source1=weight1,source2=weight2
    Example: chainlink=0.9,weather=0.7

    :param weights_str: Comma-separated weight string.
    :returns: Dict mapping lowercase source names to weights.
    :raises ValueError: If an entry is malformed or a weight is outside [0, 1].
    """
    if not weights_str:
        return {}

    weights: dict[str, float] = {}
    for item in weights_str.split(","):
        item = item.strip()
        if not item:
            continue
        if "=" not in item:
            raise ValueError(f"Invalid reliability entry '{item}'. Expected 'source=weight'")
        source, raw = item.split("=", 1)
        try:
            weight = float(raw.strip())
        except ValueError:
            raise ValueError(f"Invalid reliability weight for '{source.strip()}': {raw!r}") from None
        weights[source.strip().lower()] = weight
    return weights


class ReliabilityRegistry(Mapping[str, float]):
    """Immutable mapping from source identifier to trust weight in [0, 1].

    :ivar default: Weight returned for sources without an entry.
    """

    def __init__(
        self,
        overrides: Mapping[str, float] | None = None,
        *,
        base: Mapping[str, float] = DEFAULT_WEIGHTS,
        default: float = DEFAULT_RELIABILITY,
    ) -> None:
        """Initialize the registry.

        :param overrides: Weights that replace or extend ``base``.
        :param base: Starting weights (defaults to the built-in table).
        :param default: Weight for unknown sources.
        :raises ValueError: If any weight lies outside [0, 1].
        """
        merged = dict(base)
        merged.update(overrides or {})
        for source, weight in list(merged.items()) + [("<default>", default)]:
            if not 0.0 <= weight <= 1.0:
                raise ValueError(
                    f"Reliability weight for {source} must be in [0, 1], got {weight}"
                )
        self._weights: Mapping[str, float] = MappingProxyType(merged)
        self.default = default

    @classmethod
    def from_string(cls, weights_str: str | None) -> ReliabilityRegistry:
        """Build a registry from a ``source=weight,...`` override string."""
        return cls(parse_reliability_weights(weights_str))

    def reliability_of(self, source: str) -> float:
        """Return the trust weight for a source, or the default if unknown."""
        return self._weights.get(source, self.default)

    def __getitem__(self, source: str) -> float:
        return self._weights[source]

    def __iter__(self) -> Iterator[str]:
        return iter(self._weights)

    def __len__(self) -> int:
        return len(self._weights)

    def __repr__(self) -> str:
        return f"ReliabilityRegistry({dict(self._weights)!r}, default={self.default})"
