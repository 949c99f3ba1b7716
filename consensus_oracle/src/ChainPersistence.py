"""ChainPersistence: Anchor aggregated results in an EVM transaction.

The aggregated result is serialized to canonical JSON (sorted keys, compact
separators) and hashed with keccak256. The JSON bytes are carried as calldata
of a transaction to the configured oracle data address, and the hash is the
reference id returned to the caller so the record can be looked up later.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from web3 import Web3
from web3.types import TxParams

from .OracleErrors import PersistenceError
from .OracleTypes import AggregatedResult, PersistenceReceipt
from .Persistence import BasePersistence
from .TxSubmitter import TxSubmitter

logger = logging.getLogger(__name__)

# Gas limit for data-carrying transactions.
DEFAULT_GAS_LIMIT = 150_000

# Source label recorded for engine-produced records.
AGGREGATED_SOURCE = "aggregated"


def canonical_record(result: AggregatedResult) -> str:
    """Serialize the part of a result that is anchored on chain.

    :param result: Aggregated result.
    :returns: Canonical JSON string.
    """
    record = {
        "source": AGGREGATED_SOURCE,
        "data_type": result.category.value,
        "value": result.aggregated_value,
        "confidence": result.confidence,
        "sources": list(result.sources),
        "method": result.method.value,
        "timestamp": result.produced_at,
    }
    return json.dumps(record, sort_keys=True, separators=(",", ":"), default=str)


def data_hash(record: str) -> str:
    """Return the 0x-prefixed keccak256 hash of a record."""
    return Web3.to_hex(Web3.keccak(text=record))


class ChainPersistence(BasePersistence):
    """Persists aggregated results as transaction calldata.

    :ivar submitter: Transaction submitter that signs and sends.
    :ivar address: Recipient address of the data transactions.
    :ivar gas_limit: Gas limit attached to each transaction.
    """

    def __init__(
        self,
        submitter: TxSubmitter,
        address: str,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        value: int = 0,
    ) -> None:
        """Initialize chain persistence.

        :param submitter: Transaction submitter.
        :param address: Recipient address (checksummed or lowercase hex).
        :param gas_limit: Gas limit per transaction (default: 150000).
        :param value: Wei attached to each transaction (default: 0).
        :raises ValueError: If the address is not a valid hex address.
        """
        if not address or not Web3.is_address(address):
            raise ValueError(f"Invalid oracle data address: {address!r}")
        if gas_limit <= 0:
            raise ValueError("gas_limit must be positive")
        self.submitter = submitter
        self.address = Web3.to_checksum_address(address)
        self.gas_limit = gas_limit
        self.value = value

    def build_transaction(self, record: str) -> TxParams:
        """Build the data-carrying transaction for a canonical record."""
        return {
            "to": self.address,
            "data": Web3.to_hex(text=record),
            "value": self.value,
            "gas": self.gas_limit,
        }

    async def submit(self, result: AggregatedResult) -> PersistenceReceipt:
        """Anchor a result on chain.

        The submitter is synchronous and runs in a worker thread.

        :param result: Aggregated result to anchor.
        :returns: Receipt whose reference id is the record's keccak256 hash.
        :raises PersistenceError: If submission fails for any reason.
        """
        record = canonical_record(result)
        reference_id = data_hash(record)
        tx = self.build_transaction(record)

        logger.info(
            f"Submitting {result.category.value} record {reference_id} "
            f"({len(record)} bytes) to {self.address}"
        )
        try:
            confirmation: dict[str, Any] = await asyncio.to_thread(
                self.submitter.submit_tx, tx
            )
        except Exception as e:
            raise PersistenceError(f"Submission of {reference_id} failed: {e}") from e

        logger.info(f"Record {reference_id} submitted: {confirmation}")
        return PersistenceReceipt(reference_id=reference_id, confirmation_info=confirmation)
