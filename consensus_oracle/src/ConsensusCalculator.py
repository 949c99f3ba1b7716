"""ConsensusCalculator: Reduce observations to one value and a confidence.

Methods:
    - majority: mean of the numeric field; confidence is the share of
      observations within ``tolerance_percent`` of that mean.
    - weighted_average: reliability x confidence weighted mean; confidence is
      the mean weight, capped at 1.
    - median: standard median; fixed confidence.
    - ai_consensus: currently identical to weighted_average.

Categories without a numeric field fall back to picking one observation's
payload as-is (first, heaviest or middle, depending on the method).

.. code-block:: python

    >>> calc = ConsensusCalculator(ReliabilityRegistry())
    >>> points = [
    ...     OracleDataPoint("a", "price_feed", {"price": 2500.0}),
    ...     OracleDataPoint("b", "price_feed", {"price": 2501.0}),
    ...     OracleDataPoint("c", "price_feed", {"price": 2499.0}),
    ... ]
    >>> result = calc.consensus(points, ConsensusMethod.MAJORITY_VOTE)
    >>> result.value["price"], result.confidence
    (2500.0, 1.0)
"""

from __future__ import annotations

import logging
from statistics import median as _median

from .OracleErrors import InvariantViolation
from .OracleTypes import (
    NUMERIC_FIELDS,
    ConsensusMethod,
    ConsensusResult,
    OracleDataPoint,
)
from .ReliabilityRegistry import ReliabilityRegistry

logger = logging.getLogger(__name__)

# Confidence assigned by the median method regardless of sample size.
MEDIAN_CONFIDENCE = 0.8
MEDIAN_NON_NUMERIC_CONFIDENCE = 0.6


class ConsensusCalculator:
    """Applies a consensus method to a non-empty list of observations.

    :ivar reliability: Registry consulted for per-source weights.
    :ivar tolerance_percent: Band around the mean counted as agreement by
        the majority method.
    """

    def __init__(
        self,
        reliability: ReliabilityRegistry,
        tolerance_percent: float = 5.0,
    ) -> None:
        """Initialize the calculator.

        :param reliability: Reliability registry for weighted methods.
        :param tolerance_percent: Majority agreement band (default 5%).
        :raises ValueError: If tolerance_percent is not positive.
        """
        if tolerance_percent <= 0:
            raise ValueError("tolerance_percent must be positive")
        self.reliability = reliability
        self.tolerance_percent = tolerance_percent
        self._methods = {
            ConsensusMethod.MAJORITY_VOTE: self.majority_vote,
            ConsensusMethod.WEIGHTED_AVERAGE: self.weighted_average,
            ConsensusMethod.MEDIAN: self.median,
            ConsensusMethod.AI_CONSENSUS: self.ai_consensus,
        }

    def consensus(
        self,
        observations: list[OracleDataPoint],
        method: ConsensusMethod | str = ConsensusMethod.WEIGHTED_AVERAGE,
    ) -> ConsensusResult:
        """Reduce observations with the given method.

        :param observations: Successful observations (must be non-empty).
        :param method: Consensus method to apply.
        :returns: ConsensusResult with value, confidence and provenance.
        :raises InvariantViolation: If observations is empty.
        :raises ValueError: If method is not a known ConsensusMethod.
        """
        if not observations:
            raise InvariantViolation("consensus invoked with no observations")

        method = ConsensusMethod(method)
        logger.info(
            f"Calculating consensus: method={method.value}, "
            f"observations={len(observations)}"
        )
        value, confidence = self._methods[method](observations)

        return ConsensusResult(
            value=value,
            confidence=max(0.0, min(1.0, confidence)),
            participating_sources=[o.source for o in observations],
            method=method,
            outliers=[],
        )

    def majority_vote(self, observations: list[OracleDataPoint]) -> tuple[dict, float]:
        """Mean of the numeric field; confidence is the in-band share."""
        field_name = NUMERIC_FIELDS.get(observations[0].category)
        if field_name is None:
            return dict(observations[0].value), 1.0 / len(observations)

        values = [o.numeric_value() for o in observations]
        mean = sum(values) / len(values)
        tolerance = abs(mean) * self.tolerance_percent / 100
        in_band = [v for v in values if abs(v - mean) <= tolerance]

        return (
            {**observations[0].value, field_name: mean},
            len(in_band) / len(values),
        )

    def weighted_average(
        self, observations: list[OracleDataPoint]
    ) -> tuple[dict, float]:
        """Reliability x confidence weighted mean of the numeric field."""
        weights = [
            self.reliability.reliability_of(o.source) * o.effective_confidence
            for o in observations
        ]
        total_weight = sum(weights)

        if total_weight == 0:
            return dict(observations[0].value), 0.0

        field_name = NUMERIC_FIELDS.get(observations[0].category)
        if field_name is not None:
            values = [o.numeric_value() for o in observations]
            if len(set(values)) == 1:
                # Unanimous: skip the division so the value is returned exactly
                aggregated = values[0]
            else:
                weighted = sum(v * w for v, w in zip(values, weights, strict=True))
                aggregated = weighted / total_weight
            return (
                {**observations[0].value, field_name: aggregated},
                min(total_weight / len(observations), 1.0),
            )

        # Non-numeric: highest individual weight wins, first one on ties
        best_index = 0
        for i, weight in enumerate(weights):
            if weight > weights[best_index]:
                best_index = i
        return dict(observations[best_index].value), weights[best_index]

    def median(self, observations: list[OracleDataPoint]) -> tuple[dict, float]:
        """Standard median of the numeric field with a fixed confidence."""
        field_name = NUMERIC_FIELDS.get(observations[0].category)
        if field_name is None:
            middle = observations[len(observations) // 2]
            return dict(middle.value), MEDIAN_NON_NUMERIC_CONFIDENCE

        value = _median(o.numeric_value() for o in observations)
        return {**observations[0].value, field_name: value}, MEDIAN_CONFIDENCE

    def ai_consensus(self, observations: list[OracleDataPoint]) -> tuple[dict, float]:
        """Placeholder for an inference-backed reducer.

        TODO: delegate to an external reasoning collaborator once one is
        injectable; until then this is exactly weighted_average.
        """
        return self.weighted_average(observations)
