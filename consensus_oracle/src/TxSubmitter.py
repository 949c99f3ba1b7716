"""TxSubmitter: Abstract base class for handing transactions to a signer."""

from abc import ABC, abstractmethod
from typing import Any

from web3.types import TxParams


def strip_hex_prefix(value: Any) -> str:
    """Return a lowercase hex string without the ``0x`` prefix."""
    text = str(value)
    if text.startswith(("0x", "0X")):
        text = text[2:]
    return text.lower()


class TxSubmitter(ABC):
    """Abstract base class for transaction submitters.

    Implementations own the signing key (or delegate to a daemon that does)
    and return whatever confirmation the signer reports.
    """

    @abstractmethod
    def submit_tx(self, tx: TxParams) -> dict[str, Any]:
        """Sign and submit a transaction.

        :param tx: Transaction parameters (to, data, gas, value).
        :returns: Dict describing the submission result.
        :raises RuntimeError: If the transaction could not be submitted.
        """
        pass
