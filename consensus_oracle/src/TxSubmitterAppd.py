"""TxSubmitterAppd: Submit transactions through the ROFL appd daemon."""

import logging
import time
from typing import Any

import cbor2
import httpx
from web3.types import TxParams

from .TxSubmitter import TxSubmitter, strip_hex_prefix

logger = logging.getLogger(__name__)

# Retry configuration for sign-submit requests
MAX_RETRIES = 10
BACKOFF_BASE = 1.0
BACKOFF_MAX = 5.0


def backoff_delay(attempt: int) -> float:
    """Delay before retry number ``attempt + 1``, capped at BACKOFF_MAX."""
    return min(BACKOFF_BASE * (1.5**attempt), BACKOFF_MAX)


class AppdTxSubmitter(TxSubmitter):
    """Transaction submitter backed by the appd sign-submit endpoint.

    The daemon holds the signing key. Requests go over the daemon's Unix
    socket unless an ``http(s)://`` URL is given.

    :cvar ROFL_SOCKET_PATH: Default Unix socket path for appd.
    :ivar url: Optional HTTP URL or socket path override.
    :ivar max_retries: Attempts before giving up.
    """

    ROFL_SOCKET_PATH = "/run/rofl-appd.sock"
    SIGN_SUBMIT_PATH = "/rofl/v1/tx/sign-submit"

    def __init__(self, url: str = "", max_retries: int = MAX_RETRIES) -> None:
        """Initialize the submitter.

        :param url: Optional URL or socket path. Empty uses the default socket.
        :param max_retries: Attempts before giving up (default: 10).
        """
        self.url = url
        self.max_retries = max(1, max_retries)

    @property
    def base_url(self) -> str:
        return self.url if self.url.startswith("http") else "http://localhost"

    def _build_transport(self) -> httpx.HTTPTransport | None:
        """Unix socket transport, or None to let httpx use TCP."""
        if self.url.startswith("http"):
            return None
        socket_path = self.url or self.ROFL_SOCKET_PATH
        logger.debug(f"Using appd socket {socket_path}")
        return httpx.HTTPTransport(uds=socket_path)

    def _sleep(self, attempt: int) -> None:
        time.sleep(backoff_delay(attempt))

    def _post_with_retry(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST JSON to the appd until it succeeds or retries run out.

        :param path: Endpoint path.
        :param payload: JSON body.
        :returns: Decoded JSON response.
        :raises RuntimeError: If every attempt failed.
        """
        url = self.base_url + path
        last_error = "no attempts made"

        with httpx.Client(transport=self._build_transport()) as client:
            for attempt in range(1, self.max_retries + 1):
                try:
                    response = client.post(url, json=payload, timeout=None)
                except httpx.RequestError as exc:
                    last_error = str(exc)
                else:
                    if response.is_success:
                        return response.json()
                    last_error = f"{response.status_code} {response.reason_phrase}"

                logger.warning(
                    f"[appd] {path} attempt {attempt}/{self.max_retries} failed: {last_error}"
                )
                if attempt < self.max_retries:
                    self._sleep(attempt - 1)

        raise RuntimeError(
            f"appd POST {path} failed after {self.max_retries} attempts: {last_error}"
        )

    def submit_tx(self, tx: TxParams) -> dict[str, Any]:
        """Submit a transaction via the appd sign-submit endpoint.

        :param tx: Transaction parameters including data, to, gas, value.
        :returns: Appd result with the CBOR-decoded call output under ``data``.
        """
        call = {
            "gas_limit": int(tx["gas"]),
            "to": strip_hex_prefix(tx["to"]) if tx.get("to") else "",
            "value": str(tx.get("value", 0)),
            "data": strip_hex_prefix(tx.get("data", "")),
        }
        logger.debug(f"[appd] sign-submit to={call['to']} gas={call['gas_limit']}")

        result = self._post_with_retry(
            self.SIGN_SUBMIT_PATH,
            {"tx": {"kind": "eth", "data": call}, "encrypted": False},
        )
        if result.get("data"):
            result["data"] = cbor2.loads(bytes.fromhex(result["data"]))
        return result
