"""OracleTypes: Normalized records shared by adapters, router and consensus.

Every adapter emits :class:`OracleDataPoint` instances regardless of the
upstream payload shape, so consensus never needs to know which API produced a
reading. All records are created per request and discarded afterwards.

.. code-block:: python

    >>> point = OracleDataPoint(
    ...     source="chainlink",
    ...     category=OracleCategory.PRICE_FEED,
    ...     value={"symbol": "ETH/USD", "price": 2500.5, "currency": "USD"},
    ...     confidence=1.7,
    ... )
    >>> point.confidence
    1.0
    >>> point.numeric_value()
    2500.5
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Confidence assumed for observations that do not report one.
DEFAULT_OBSERVATION_CONFIDENCE = 0.5


class OracleCategory(str, Enum):
    """Data categories the engine recognizes."""

    PRICE_FEED = "price_feed"
    WEATHER = "weather"
    SPACE = "space"
    CRYPTO_METRICS = "crypto_metrics"
    IOT_SENSOR = "iot_sensor"
    FINANCIAL = "financial"


class ConsensusMethod(str, Enum):
    """Algorithms available for reducing observations to a single value.

    ``AI_CONSENSUS`` is reserved for a reducer backed by an external inference
    service and currently behaves exactly like ``WEIGHTED_AVERAGE``.
    """

    MAJORITY_VOTE = "majority"
    WEIGHTED_AVERAGE = "weighted_average"
    MEDIAN = "median"
    AI_CONSENSUS = "ai_consensus"


# Categories whose payload carries a numeric field consensus can average over.
NUMERIC_FIELDS: dict[OracleCategory, str] = {
    OracleCategory.PRICE_FEED: "price",
}


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def clamp_confidence(confidence: float | None) -> float | None:
    """Clamp a self-reported confidence into [0, 1], keeping None as None."""
    if confidence is None:
        return None
    return max(0.0, min(1.0, float(confidence)))


@dataclass
class OracleDataPoint:
    """One normalized reading from one source.

    :ivar source: Identifier of the originating adapter.
    :ivar category: Data category the reading belongs to.
    :ivar value: Category-specific payload (e.g. symbol/price/currency).
    :ivar observed_at: Collection time in epoch milliseconds.
    :ivar confidence: Self-reported confidence in [0, 1], or None.
    :ivar metadata: Advisory annotations, ignored by consensus.
    """

    source: str
    category: OracleCategory
    value: dict[str, Any]
    observed_at: int = field(default_factory=now_ms)
    confidence: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.source:
            raise ValueError("OracleDataPoint.source must be non-empty")
        self.category = OracleCategory(self.category)
        self.confidence = clamp_confidence(self.confidence)

    @property
    def effective_confidence(self) -> float:
        """Confidence used by consensus (default 0.5 when unreported)."""
        if self.confidence is None:
            return DEFAULT_OBSERVATION_CONFIDENCE
        return self.confidence

    def numeric_value(self) -> float | None:
        """Return the category's numeric field as float, or None if non-numeric."""
        field_name = NUMERIC_FIELDS.get(self.category)
        if field_name is None:
            return None
        return float(self.value[field_name])

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "category": self.category.value,
            "value": self.value,
            "observed_at": self.observed_at,
            "confidence": self.confidence,
            "metadata": self.metadata,
        }


@dataclass
class FetchResult:
    """Outcome of a single adapter call.

    :ivar success: True if an observation was produced.
    :ivar source: Source the call was addressed to.
    :ivar observation: The normalized reading on success.
    :ivar error: Human-readable failure reason on failure.
    :ivar timestamp: Completion time in epoch milliseconds.
    :ivar response_time_ms: Wall-clock duration of the call.
    """

    success: bool
    source: str
    observation: OracleDataPoint | None = None
    error: str | None = None
    timestamp: int = field(default_factory=now_ms)
    response_time_ms: int = 0

    @classmethod
    def ok(
        cls, observation: OracleDataPoint, response_time_ms: int = 0
    ) -> FetchResult:
        return cls(
            success=True,
            source=observation.source,
            observation=observation,
            response_time_ms=response_time_ms,
        )

    @classmethod
    def failed(cls, source: str, error: str, response_time_ms: int = 0) -> FetchResult:
        return cls(
            success=False,
            source=source,
            error=error,
            response_time_ms=response_time_ms,
        )


@dataclass
class CollectRequest:
    """A request to collect and reduce observations for one category.

    :ivar category: Requested data category.
    :ivar source_names: Sources to query; must be non-empty.
    :ivar parameters: Category-specific parameters (symbol, city, ...).
    :ivar method: Consensus method; weighted average when unspecified.
    """

    category: OracleCategory | str
    source_names: list[str]
    parameters: dict[str, Any] = field(default_factory=dict)
    method: ConsensusMethod | str | None = None


@dataclass
class ConsensusResult:
    """Output of the consensus calculator.

    :ivar value: Aggregated payload.
    :ivar confidence: Aggregate confidence in [0, 1].
    :ivar participating_sources: Sources whose observations were reduced.
    :ivar method: Method that produced the value.
    :ivar outliers: Always empty; no outlier detection is performed.
    """

    value: dict[str, Any]
    confidence: float
    participating_sources: list[str]
    method: ConsensusMethod
    outliers: list[str] = field(default_factory=list)


@dataclass
class AggregatedResult:
    """The trusted value produced for one request."""

    category: OracleCategory
    sources: list[str]
    aggregated_value: dict[str, Any]
    confidence: float
    produced_at: int
    observations: list[OracleDataPoint]
    method: ConsensusMethod

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "sources": list(self.sources),
            "aggregated_value": self.aggregated_value,
            "confidence": self.confidence,
            "produced_at": self.produced_at,
            "observations": [o.to_dict() for o in self.observations],
            "method": self.method.value,
        }


@dataclass
class PersistenceReceipt:
    """Acknowledgement returned by a persistence collaborator.

    :ivar reference_id: Identifier of the stored record (e.g. data hash).
    :ivar confirmation_info: Collaborator-specific confirmation details.
    """

    reference_id: str
    confirmation_info: dict[str, Any] = field(default_factory=dict)


@dataclass
class CollectResponse:
    """Envelope returned by ``collect_data``; never raises for domain errors."""

    success: bool
    execution_time_ms: int
    sources_requested: list[str]
    sources_used: list[str] = field(default_factory=list)
    attempted_sources: list[str] = field(default_factory=list)
    aggregated_data: AggregatedResult | None = None
    error: str | None = None
    error_kind: str | None = None
    failures: dict[str, str] = field(default_factory=dict)
    persistence: PersistenceReceipt | None = None
    persistence_error: str | None = None

    @property
    def consensus_achieved(self) -> bool:
        """True when the aggregate confidence is above one half."""
        return self.aggregated_data is not None and self.aggregated_data.confidence > 0.5

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "aggregated_data": (
                self.aggregated_data.to_dict() if self.aggregated_data else None
            ),
            "error": self.error,
            "error_kind": self.error_kind,
            "execution_time_ms": self.execution_time_ms,
            "sources_requested": list(self.sources_requested),
            "sources_used": list(self.sources_used),
            "attempted_sources": list(self.attempted_sources),
            "consensus_achieved": self.consensus_achieved,
            "failures": dict(self.failures),
            "persistence": (
                {
                    "reference_id": self.persistence.reference_id,
                    "confirmation_info": self.persistence.confirmation_info,
                }
                if self.persistence
                else None
            ),
            "persistence_error": self.persistence_error,
        }
