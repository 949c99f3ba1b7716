"""Unit tests for ReliabilityRegistry."""

import pytest

from consensus_oracle.src.ReliabilityRegistry import (
    DEFAULT_RELIABILITY,
    ReliabilityRegistry,
    parse_reliability_weights,
)


class TestParseReliabilityWeights:
    """Test the override string parser."""

    def test_empty(self) -> None:
        """Empty or missing input yields no overrides."""
        assert parse_reliability_weights(None) == {}
        assert parse_reliability_weights("") == {}

    def test_pairs(self) -> None:
        """Entries are split, trimmed and lowercased."""
        weights = parse_reliability_weights(" Chainlink=0.9 , weather = 0.7,")
        assert weights == {"chainlink": 0.9, "weather": 0.7}

    def test_missing_separator(self) -> None:
        """Entries without '=' are rejected."""
        with pytest.raises(ValueError, match="Invalid reliability entry"):
            parse_reliability_weights("chainlink")

    def test_non_numeric(self) -> None:
        """Non-numeric weights are rejected."""
        with pytest.raises(ValueError, match="Invalid reliability weight"):
            parse_reliability_weights("chainlink=high")


class TestReliabilityRegistry:
    """Test registry lookups and validation."""

    def test_defaults(self) -> None:
        """Built-in weights are present."""
        registry = ReliabilityRegistry()
        assert registry.reliability_of("chainlink") == 0.95
        assert registry.reliability_of("weather") == 0.80
        assert registry.reliability_of("nasa") == 0.90
        assert registry.reliability_of("aggregated") == 0.85

    def test_unknown_source(self) -> None:
        """Unknown sources get the default weight."""
        assert ReliabilityRegistry().reliability_of("nobody") == DEFAULT_RELIABILITY

    def test_overrides(self) -> None:
        """Overrides replace and extend the defaults."""
        registry = ReliabilityRegistry({"chainlink": 0.5, "custom": 0.3})
        assert registry.reliability_of("chainlink") == 0.5
        assert registry.reliability_of("custom") == 0.3
        assert registry.reliability_of("nasa") == 0.90

    def test_from_string(self) -> None:
        """Registry can be built from an override string."""
        registry = ReliabilityRegistry.from_string("weather=0.6")
        assert registry.reliability_of("weather") == 0.6
        assert ReliabilityRegistry.from_string(None) == ReliabilityRegistry()

    @pytest.mark.parametrize("weight", [-0.1, 1.5])
    def test_out_of_range(self, weight: float) -> None:
        """Weights outside [0, 1] are rejected at construction."""
        with pytest.raises(ValueError, match="must be in \\[0, 1\\]"):
            ReliabilityRegistry({"chainlink": weight})

    def test_invalid_default(self) -> None:
        """The fallback weight is validated too."""
        with pytest.raises(ValueError):
            ReliabilityRegistry(default=2.0)

    def test_read_only(self) -> None:
        """The registry exposes no mutation."""
        registry = ReliabilityRegistry()
        with pytest.raises(TypeError):
            registry["chainlink"] = 0.1  # type: ignore[index]

    def test_mapping_interface(self) -> None:
        """The registry behaves as a read-only mapping."""
        registry = ReliabilityRegistry(base={"a": 0.1})
        assert dict(registry) == {"a": 0.1}
        assert len(registry) == 1
        assert "a" in registry
