"""
warporch.gateways - Chain Gateway capability consumed by the executor.

- ChainGateway: abstract per-chain interface (deploy, send, read, confirm, lookup)
- GatewayRegistry: chain id -> ChainGateway
- SimulatedChainGateway: deterministic in-memory gateway for tests and dry runs
"""

from warporch.gateways.base import (
    CORE_CONTRACT,
    RECEIPT_REVERTED,
    RECEIPT_SUCCESS,
    WARP_ROUTE_CONTRACT,
    ChainGateway,
)
from warporch.gateways.registry import GatewayRegistry
from warporch.gateways.simulated import SimulatedChainGateway

__all__ = [
    "CORE_CONTRACT",
    "RECEIPT_REVERTED",
    "RECEIPT_SUCCESS",
    "WARP_ROUTE_CONTRACT",
    "ChainGateway",
    "GatewayRegistry",
    "SimulatedChainGateway",
]
