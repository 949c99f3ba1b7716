"""TxSubmitterWeb3: Sign locally and submit transactions over JSON-RPC."""

import logging
import os
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.middleware import SignAndSendRawMiddlewareBuilder
from web3.types import TxParams

from .TxSubmitter import TxSubmitter

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "http://localhost:8545"


class Web3TxSubmitter(TxSubmitter):
    """Transaction submitter that signs with a local private key.

    :ivar w3: Web3 instance with signing middleware installed.
    :ivar account: Account used to sign transactions.
    :ivar receipt_timeout: Seconds to wait for a receipt.
    """

    def __init__(
        self,
        private_key: str,
        rpc_url: str | None = None,
        w3: Web3 | None = None,
        receipt_timeout: float = 120.0,
    ) -> None:
        """Initialize the submitter.

        :param private_key: Hex-encoded secp256k1 private key.
        :param rpc_url: JSON-RPC endpoint (default: RPC_URL env var or localhost).
        :param w3: Optional preconfigured Web3 instance.
        :param receipt_timeout: Seconds to wait for a receipt (default: 120).
        :raises ValueError: If the private key is missing or invalid.
        """
        if not private_key:
            raise ValueError("A private key is required for web3 submission")
        self.account: LocalAccount = Account.from_key(private_key)
        self.receipt_timeout = receipt_timeout

        if w3 is None:
            rpc_url = rpc_url or os.environ.get("RPC_URL") or DEFAULT_RPC_URL
            w3 = Web3(Web3.HTTPProvider(rpc_url))
        self.w3 = w3
        self.w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(self.account))
        self.w3.eth.default_account = self.account.address

    def submit_tx(self, tx: TxParams) -> dict[str, Any]:
        """Send a transaction and wait for its receipt.

        :param tx: Transaction parameters.
        :returns: Dict with tx hash, block number, gas used and status.
        :raises RuntimeError: If the transaction reverted.
        """
        tx = {**tx, "from": self.account.address}
        tx_hash = self.w3.eth.send_transaction(tx)
        logger.info(f"Transaction sent: {Web3.to_hex(tx_hash)}")

        receipt = self.w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self.receipt_timeout
        )
        if receipt["status"] != 1:
            raise RuntimeError(f"Transaction {Web3.to_hex(tx_hash)} reverted")

        return {
            "transaction_hash": Web3.to_hex(tx_hash),
            "block_number": receipt["blockNumber"],
            "gas_used": receipt["gasUsed"],
            "status": receipt["status"],
        }
