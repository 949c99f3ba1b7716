"""
Consensus Oracle - Multi-Source Aggregation Module

This module reduces observations from independent data sources into one
trusted value with a confidence score:
- OracleTypes: Normalized observation, request and result records
- DispatchRouter: Maps a request onto the adapter calls that can serve it
- ResponseCollector: Concurrent execution with per-source failure isolation
- ConsensusCalculator: Majority, weighted average and median reducers
- ReliabilityRegistry: Static per-source trust weights
- OracleAggregator: Public orchestrator with best-effort persistence
- adapters: Chainlink, OpenWeatherMap and NASA source adapters
"""

from .ChainPersistence import ChainPersistence
from .ConsensusCalculator import ConsensusCalculator
from .DispatchRouter import DEFAULT_ROUTES, DispatchRouter, PendingCall
from .OracleAggregator import OracleAggregator
from .OracleErrors import (
    InvalidRequest,
    InvariantViolation,
    NoApplicableSource,
    NoDataAvailable,
    OracleError,
    PersistenceError,
)
from .OracleTypes import (
    AggregatedResult,
    CollectRequest,
    CollectResponse,
    ConsensusMethod,
    ConsensusResult,
    FetchResult,
    OracleCategory,
    OracleDataPoint,
    PersistenceReceipt,
)
from .Persistence import BasePersistence, NullPersistence
from .ReliabilityRegistry import ReliabilityRegistry
from .ResponseCollector import CollectionOutcome, ResponseCollector

__all__ = [
    "AggregatedResult",
    "BasePersistence",
    "ChainPersistence",
    "CollectRequest",
    "CollectResponse",
    "CollectionOutcome",
    "ConsensusCalculator",
    "ConsensusMethod",
    "ConsensusResult",
    "DEFAULT_ROUTES",
    "DispatchRouter",
    "FetchResult",
    "InvalidRequest",
    "InvariantViolation",
    "NoApplicableSource",
    "NoDataAvailable",
    "NullPersistence",
    "OracleAggregator",
    "OracleCategory",
    "OracleDataPoint",
    "OracleError",
    "PendingCall",
    "PersistenceError",
    "PersistenceReceipt",
    "ReliabilityRegistry",
    "ResponseCollector",
]
