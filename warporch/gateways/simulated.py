"""
In-memory chain gateway for tests and dry runs.

Behaves like a well-behaved chain: deployments get deterministic addresses,
state reads reflect what was deployed or applied, and every transaction is
confirmed immediately. Every call is appended to ``calls`` so tests can
assert what reached the chain.
"""

import hashlib
import threading
from typing import Any, Optional

from warporch.errors import PermanentError
from warporch.gateways.base import (
    CORE_CONTRACT,
    RECEIPT_SUCCESS,
    WARP_ROUTE_CONTRACT,
    ChainGateway,
)


def _derive_address(*parts: str) -> str:
    digest = hashlib.sha256(":".join(parts).encode()).hexdigest()
    return "0x" + digest[:40]


class SimulatedChainGateway(ChainGateway):
    """Deterministic in-memory gateway for one chain."""

    def __init__(self, chain: str):
        self.chain = chain
        self.calls: list[tuple[str, Any]] = []
        self._lock = threading.Lock()
        self._deployments: dict[str, str] = {}
        self._contracts: dict[str, dict[str, Any]] = {}
        self._receipts: dict[str, dict[str, Any]] = {}
        self._block = 0

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------

    def seed_core(self, mailbox: str, settings: dict[str, Any]) -> None:
        """Pretend a core deployment already exists at ``mailbox``."""
        with self._lock:
            self._contracts[mailbox] = {
                "code": True,
                "coreConfig": dict(settings),
            }

    def set_contract_state(self, address: str, **fields: Any) -> None:
        """Overwrite stored fields of a contract (e.g. to simulate a misconfigured router)."""
        with self._lock:
            self._contracts.setdefault(address, {"code": True}).update(fields)

    def deploy_count(self, contract: Optional[str] = None) -> int:
        """Number of deploy_contract calls, optionally for one contract name."""
        return sum(
            1 for name, args in self.calls
            if name == "deploy_contract" and (contract is None or args[0] == contract)
        )

    # ------------------------------------------------------------------
    # ChainGateway
    # ------------------------------------------------------------------

    def deploy_contract(self, contract: str, params: dict[str, Any], fingerprint: str) -> str:
        with self._lock:
            self.calls.append(("deploy_contract", (contract, params, fingerprint)))
            address = _derive_address(self.chain, contract, fingerprint)
            if contract == CORE_CONTRACT:
                self._contracts[address] = {
                    "code": True,
                    "coreConfig": {k: v for k, v in params.items()},
                }
            elif contract == WARP_ROUTE_CONTRACT:
                self._contracts[address] = {
                    "code": True,
                    "routeId": params.get("routeId"),
                    "mailbox": params.get("mailbox"),
                    "wrappedToken": params.get("config", {}).get("token"),
                }
            else:
                raise PermanentError(f"Unknown contract '{contract}'")
            self._deployments[fingerprint] = address
            self._block += 1
            return address

    def send_transaction(self, call: dict[str, Any]) -> str:
        with self._lock:
            self.calls.append(("send_transaction", call))
            target = self._contracts.get(call.get("to", ""))
            if target is None:
                raise PermanentError(f"No contract at {call.get('to')}")
            if call.get("method") == "applyCoreConfig":
                target["coreConfig"] = {**target.get("coreConfig", {}), **call.get("args", {})}
            self._block += 1
            tx_hash = "0x" + hashlib.sha256(
                f"{self.chain}:{self._block}:{call}".encode()
            ).hexdigest()
            self._receipts[tx_hash] = {
                "tx_hash": tx_hash,
                "status": RECEIPT_SUCCESS,
                "block_number": self._block,
            }
            return tx_hash

    def read_state(self, address: str, query: dict[str, Any]) -> Any:
        with self._lock:
            self.calls.append(("read_state", (address, query)))
            contract = self._contracts.get(address)
            name = query.get("query")
            if contract is None:
                return False if name == "code" else None
            value = contract.get(name)
            return dict(value) if isinstance(value, dict) else value

    def await_confirmation(self, tx_hash: str, timeout: float) -> dict[str, Any]:
        with self._lock:
            self.calls.append(("await_confirmation", tx_hash))
            if tx_hash not in self._receipts:
                raise PermanentError(f"Unknown transaction {tx_hash}")
            return dict(self._receipts[tx_hash])

    def find_deployment(self, fingerprint: str) -> Optional[str]:
        with self._lock:
            self.calls.append(("find_deployment", fingerprint))
            return self._deployments.get(fingerprint)
