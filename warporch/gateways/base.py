"""
Chain Gateway interface.

A ChainGateway is the executor's only way to touch a chain: it deploys
contracts, sends transactions, reads contract state and waits for receipts.
How it does so (RPC client, signer, hyperlane tooling) is up to the
implementation; warporch never imports a chain SDK.

Error contract:
- raise TransientError for anything worth retrying (timeouts, nonce races)
- raise PermanentError for deterministic failures (reverts, insufficient funds)
- any other exception is treated as an invalid gateway response and aborts the job

State queries understood by read_state:
    {"query": "code"}          -> truthy if the address holds contract code
    {"query": "coreConfig"}    -> core settings dict (owner/defaultIsm/defaultHook/requiredHook)
    {"query": "routeId"}       -> route fingerprint a router was deployed with
    {"query": "mailbox"}       -> mailbox address a router dispatches through
    {"query": "wrappedToken"}  -> token address a collateral router wraps
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

# Contract names passed to deploy_contract
CORE_CONTRACT = "core"
WARP_ROUTE_CONTRACT = "warpRoute"

# Receipt status values (EIP-658)
RECEIPT_SUCCESS = 1
RECEIPT_REVERTED = 0


class ChainGateway(ABC):
    """
    Abstract base class for per-chain gateways.

    Implementations must be thread-safe: a timed-out attempt may still be
    running on its worker thread when the next attempt starts.
    """

    chain: str

    @abstractmethod
    def deploy_contract(self, contract: str, params: dict[str, Any], fingerprint: str) -> str:
        """
        Deploy a contract set and wait until it is usable.

        Args:
            contract: CORE_CONTRACT or WARP_ROUTE_CONTRACT
            params: Deployment parameters
            fingerprint: Deployment fingerprint to record alongside the
                         deployment so find_deployment can see it later

        Returns:
            The deployed address (mailbox for core, router for warp routes)
        """
        pass

    @abstractmethod
    def send_transaction(self, call: dict[str, Any]) -> str:
        """
        Submit a transaction.

        Args:
            call: {"to": address, "method": name, "args": {...}}

        Returns:
            Transaction hash
        """
        pass

    @abstractmethod
    def read_state(self, address: str, query: dict[str, Any]) -> Any:
        """Read contract state. See the module docstring for known queries."""
        pass

    @abstractmethod
    def await_confirmation(self, tx_hash: str, timeout: float) -> dict[str, Any]:
        """
        Wait for a transaction receipt.

        Returns:
            {"tx_hash": ..., "status": RECEIPT_SUCCESS | RECEIPT_REVERTED, "block_number": ...}
        """
        pass

    @abstractmethod
    def find_deployment(self, fingerprint: str) -> Optional[str]:
        """
        Look up a prior deployment by fingerprint.

        Returns:
            The deployed address, or None if nothing was deployed for it
        """
        pass
