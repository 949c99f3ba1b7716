"""OracleAggregator: Public entry point of the aggregation engine.

One request flows through the engine in two phases:

1. Compute: validate the request, route it to adapters, collect their
   observations concurrently and reduce them with the requested consensus
   method. Failures in this phase are typed :class:`OracleError` subclasses.
2. Anchor (optional): hand the aggregated result to a persistence
   collaborator. Failures in this phase are logged and reported but never
   change the computed result.

Architecture:
    - DispatchRouter builds one pending call per applicable source
    - ResponseCollector runs them with asyncio.gather and isolates failures
    - ConsensusCalculator reduces observations with reliability weights
    - A BasePersistence implementation anchors results (NullPersistence by default)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import Any

from .adapters import BaseAdapter
from .ConsensusCalculator import ConsensusCalculator
from .DispatchRouter import CallBuilder, DispatchRouter, validate_parameters
from .OracleErrors import (
    InvalidRequest,
    InvariantViolation,
    NoApplicableSource,
    NoDataAvailable,
    OracleError,
)
from .OracleTypes import (
    AggregatedResult,
    CollectRequest,
    CollectResponse,
    ConsensusMethod,
    OracleCategory,
    PersistenceReceipt,
    now_ms,
)
from .Persistence import BasePersistence, NullPersistence
from .ReliabilityRegistry import ReliabilityRegistry
from .ResponseCollector import CollectionOutcome, ResponseCollector

logger = logging.getLogger(__name__)


class OracleAggregator:
    """Collects observations from several sources and reduces them.

    :ivar adapters: Dict mapping source names to adapter instances.
    :ivar reliability: Per-source reliability weights.
    :ivar persistence: Collaborator used to anchor results.
    :ivar router: Dispatch router built from the adapters.
    :ivar collector: Concurrent response collector.
    :ivar calculator: Consensus calculator.
    """

    def __init__(
        self,
        adapters: Mapping[str, BaseAdapter],
        reliability: ReliabilityRegistry | None = None,
        persistence: BasePersistence | None = None,
        fetch_timeout: float | None = None,
        routes: Mapping[tuple[OracleCategory, str], CallBuilder] | None = None,
    ) -> None:
        """Initialize the aggregator.

        :param adapters: Dict mapping source names to adapter instances.
        :param reliability: Reliability registry (default: built-in weights).
        :param persistence: Persistence collaborator (default: NullPersistence).
        :param fetch_timeout: Optional per-call deadline for the collector.
        :param routes: Optional routing table override.
        :raises ValueError: If the routing table does not match the adapters.
        """
        self.adapters = dict(adapters)
        self.reliability = reliability or ReliabilityRegistry()
        self.persistence = persistence or NullPersistence()
        self.router = DispatchRouter(self.adapters, routes)
        self.collector = ResponseCollector(fetch_timeout)
        self.calculator = ConsensusCalculator(self.reliability)

        logger.info(
            f"OracleAggregator initialized: sources={sorted(self.adapters)}, "
            f"persistence={type(self.persistence).__name__}"
        )

    def _validate(
        self, request: CollectRequest
    ) -> tuple[OracleCategory, ConsensusMethod]:
        """Check a request before anything is dispatched.

        :param request: Incoming request.
        :returns: Tuple of (category, method) coerced to their enums.
        :raises InvalidRequest: If any part of the request is invalid.
        """
        if not request.source_names:
            raise InvalidRequest("At least one source must be specified")

        try:
            category = OracleCategory(request.category)
        except ValueError:
            raise InvalidRequest(f"Unknown category: {request.category!r}") from None

        unknown = [s for s in request.source_names if s not in self.router.known_sources]
        if unknown:
            raise InvalidRequest(
                f"Unknown sources: {unknown}. Available: {sorted(self.router.known_sources)}"
            )

        try:
            method = ConsensusMethod(request.method or ConsensusMethod.WEIGHTED_AVERAGE)
        except ValueError:
            raise InvalidRequest(f"Unknown consensus method: {request.method!r}") from None

        validate_parameters(category, request.parameters)
        return category, method

    async def aggregate(self, request: CollectRequest) -> AggregatedResult:
        """Compute the aggregated result for a request.

        :param request: Request to serve.
        :returns: Aggregated result built from the successful observations.
        :raises InvalidRequest: If the request is malformed.
        :raises NoApplicableSource: If no requested source serves the category.
        :raises NoDataAvailable: If every dispatched call failed.
        """
        result, _ = await self._compute(request)
        return result

    async def _compute(
        self, request: CollectRequest
    ) -> tuple[AggregatedResult, CollectionOutcome]:
        """Run validation, routing, collection and consensus.

        :param request: Request to serve.
        :returns: Tuple of (aggregated result, collection outcome).
        :raises InvalidRequest: If the request is malformed.
        :raises NoApplicableSource: If no requested source serves the category.
        :raises NoDataAvailable: If every dispatched call failed.
        """
        category, method = self._validate(request)

        calls = self.router.route(category, request.source_names, request.parameters)
        if not calls:
            raise NoApplicableSource(
                f"None of {request.source_names} can serve '{category.value}' "
                f"with parameters {sorted(request.parameters)}"
            )

        outcome = await self.collector.collect(calls)
        if not outcome.observations:
            raise NoDataAvailable(outcome.attempted_sources, outcome.failures)

        consensus = self.calculator.consensus(outcome.observations, method)
        result = AggregatedResult(
            category=category,
            sources=outcome.successful_sources,
            aggregated_value=consensus.value,
            confidence=consensus.confidence,
            produced_at=now_ms(),
            observations=outcome.observations,
            method=consensus.method,
        )
        return result, outcome

    async def persist(self, result: AggregatedResult) -> PersistenceReceipt | None:
        """Anchor a result with the persistence collaborator.

        :param result: Aggregated result.
        :returns: Receipt, or None if nothing was stored.
        :raises Exception: Whatever the collaborator raised.
        """
        receipt = await self.persistence.submit(result)
        if receipt is not None:
            logger.info(f"Result persisted: {receipt.reference_id}")
        return receipt

    async def collect_data(self, request: CollectRequest) -> CollectResponse:
        """Serve a request end to end without raising for domain errors.

        :param request: Request to serve.
        :returns: CollectResponse describing success or failure.
        """
        started = time.perf_counter()
        requested = list(request.source_names)

        try:
            result, outcome = await self._compute(request)
        except OracleError as e:
            if isinstance(e, InvariantViolation):
                logger.error(f"Invariant violated while aggregating: {e}")
            else:
                logger.warning(f"Aggregation failed ({e.kind}): {e}")
            return CollectResponse(
                success=False,
                execution_time_ms=self._elapsed_ms(started),
                sources_requested=requested,
                error=str(e),
                error_kind=e.kind,
                attempted_sources=(
                    e.attempted_sources if isinstance(e, NoDataAvailable) else []
                ),
                failures=e.failures if isinstance(e, NoDataAvailable) else {},
            )

        response = CollectResponse(
            success=True,
            execution_time_ms=0,
            sources_requested=requested,
            sources_used=list(result.sources),
            attempted_sources=outcome.attempted_sources,
            aggregated_data=result,
            failures=dict(outcome.failures),
        )

        try:
            response.persistence = await self.persist(result)
        except Exception as e:
            logger.warning(f"Persistence failed, returning unanchored result: {e}")
            response.persistence_error = str(e) or type(e).__name__

        response.execution_time_ms = self._elapsed_ms(started)
        logger.info(
            f"Aggregated {result.category.value} from {len(result.sources)}/"
            f"{len(requested)} sources, confidence={result.confidence:.4f}, "
            f"consensus={'yes' if response.consensus_achieved else 'no'}"
        )
        return response

    async def available_sources(self) -> list[dict[str, Any]]:
        """Describe every configured source.

        :returns: List of dicts with name, categories, reliability and
            provider details. Sources whose description fails are omitted.
        """
        sources = []
        for name, adapter in self.adapters.items():
            try:
                info = adapter.provider_info()
            except Exception as e:
                logger.warning(f"[{name}] provider_info() failed: {e}")
                continue
            sources.append(
                {
                    "name": name,
                    "categories": sorted(c.value for c in adapter.categories),
                    "reliability": self.reliability.reliability_of(name),
                    "provider_info": info,
                }
            )
        return sources

    async def test_all_connections(self) -> dict[str, bool]:
        """Probe every configured source concurrently.

        :returns: Dict mapping source names to probe success.
        """
        names = list(self.adapters)
        results = await asyncio.gather(
            *(self.adapters[n].test_connection() for n in names),
            return_exceptions=True,
        )

        status: dict[str, bool] = {}
        for name, result in zip(names, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(f"[{name}] Connection test raised: {result}")
                status[name] = False
            else:
                status[name] = bool(result)
        return status

    async def close(self) -> None:
        """Release shared resources held by the adapters."""
        await BaseAdapter.close_shared_client()

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)
