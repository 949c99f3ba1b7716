"""ResponseCollector: Concurrent execution of pending adapter calls.

All calls are started together and awaited together. A failing or slow
source never blocks or invalidates the others: its failure is recorded
against its source name and the remaining observations are returned.

Architecture:
    - Fires every pending call with ``asyncio.gather``
    - Applies an optional per-call deadline
    - Converts exceptions, failed FetchResults and unusable payloads into
      per-source failures
    - Returns successful observations (order is not significant)
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .OracleTypes import FetchResult, OracleDataPoint

if TYPE_CHECKING:
    from .DispatchRouter import PendingCall

logger = logging.getLogger(__name__)


@dataclass
class CollectionOutcome:
    """Result of collecting a batch of calls.

    :ivar observations: Successful, normalized observations.
    :ivar failures: Dict mapping failed source names to error messages.
    :ivar results: Raw FetchResult per dispatched call.
    """

    observations: list[OracleDataPoint] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    results: list[FetchResult] = field(default_factory=list)

    @property
    def attempted_sources(self) -> list[str]:
        return [r.source for r in self.results]

    @property
    def successful_sources(self) -> list[str]:
        return [o.source for o in self.observations]


class ResponseCollector:
    """Runs pending calls concurrently and isolates per-call failures.

    :ivar fetch_timeout: Per-call deadline in seconds, or None for none.
    """

    def __init__(self, fetch_timeout: float | None = None) -> None:
        """Initialize the collector.

        :param fetch_timeout: Optional per-call deadline (default: None, adapters
            enforce their own request timeouts).
        :raises ValueError: If fetch_timeout is not positive.
        """
        if fetch_timeout is not None and fetch_timeout <= 0:
            raise ValueError("fetch_timeout must be positive if specified")
        self.fetch_timeout = fetch_timeout

    async def collect(self, calls: list[PendingCall]) -> CollectionOutcome:
        """Execute all calls and wait for every one of them.

        Cancelling the awaiting task cancels every in-flight call.

        :param calls: Pending calls from the DispatchRouter.
        :returns: CollectionOutcome with observations and failures.
        """
        outcome = CollectionOutcome()
        if not calls:
            return outcome

        results = await asyncio.gather(*(self._run_call(c) for c in calls))

        for call, result in zip(calls, results, strict=True):
            outcome.results.append(result)
            if not result.success or result.observation is None:
                outcome.failures[call.source] = result.error or "No data returned"
                continue

            problem = self._check_observation(result.observation)
            if problem is not None:
                logger.warning(f"[{call.source}] Discarding observation: {problem}")
                outcome.failures[call.source] = problem
                continue
            outcome.observations.append(result.observation)

        logger.info(
            f"Collected {len(outcome.observations)}/{len(calls)} observations"
            + (f", failed: {sorted(outcome.failures)}" if outcome.failures else "")
        )
        return outcome

    async def _run_call(self, call: PendingCall) -> FetchResult:
        """Run a single call, converting any failure into a FetchResult.

        :param call: Pending call to execute.
        :returns: The adapter's FetchResult, or a failed one on error.
        """
        try:
            if self.fetch_timeout is None:
                return await call.run()
            return await asyncio.wait_for(call.run(), timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{call.source}] Timeout after {self.fetch_timeout}s")
            return FetchResult.failed(call.source, f"Timeout after {self.fetch_timeout}s")
        except Exception as e:
            logger.warning(f"[{call.source}] Error fetching {call.category.value}: {e}")
            return FetchResult.failed(call.source, str(e) or type(e).__name__)

    @staticmethod
    def _check_observation(observation: OracleDataPoint) -> str | None:
        """Check that a numeric category carries a usable number.

        :param observation: Observation reported as successful.
        :returns: Failure message, or None if the observation is usable.
        """
        try:
            value = observation.numeric_value()
        except (KeyError, TypeError, ValueError) as e:
            return f"Malformed observation: {e!r}"
        if value is not None and not math.isfinite(value):
            return f"Malformed observation: non-finite value {value}"
        return None
