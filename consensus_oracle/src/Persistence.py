"""Persistence: Interface for anchoring aggregated results elsewhere."""

from abc import ABC, abstractmethod

from .OracleTypes import AggregatedResult, PersistenceReceipt


class BasePersistence(ABC):
    """Abstract base class for persistence collaborators.

    Persistence is always a best-effort side effect of aggregation: callers
    catch whatever ``submit`` raises and keep the aggregated result.
    """

    @abstractmethod
    async def submit(self, result: AggregatedResult) -> PersistenceReceipt | None:
        """Store an aggregated result.

        :param result: Result produced by the orchestrator.
        :returns: Receipt for the stored record, or None if nothing was stored.
        :raises PersistenceError: If the submission failed.
        """
        pass


class NullPersistence(BasePersistence):
    """Persistence that stores nothing. Used when anchoring is disabled."""

    async def submit(self, result: AggregatedResult) -> None:
        return None
