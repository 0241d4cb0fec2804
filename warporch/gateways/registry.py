"""
Gateway Registry for looking up the ChainGateway of each chain.

The executor resolves every step's chain through the registry; a plan may
only run if every chain it touches has a registered gateway.
"""

from typing import Iterable

from warporch.gateways.base import ChainGateway


class GatewayRegistry:
    """
    Registry of chain gateways keyed by chain id.

    Usage:
        registry = GatewayRegistry()
        registry.register("holesky", HoleskyGateway(rpc_url, signer))

        gateway = registry.get("holesky")

        # Or, for tests and dry runs
        registry = GatewayRegistry.create_simulated(["holesky", "tangletestnet"])
    """

    def __init__(self) -> None:
        self._gateways: dict[str, ChainGateway] = {}

    def register(self, chain: str, gateway: ChainGateway) -> None:
        """
        Register the gateway for a chain.

        Args:
            chain: Chain id
            gateway: ChainGateway instance for this chain
        """
        self._gateways[chain] = gateway

    def get(self, chain: str) -> ChainGateway:
        """
        Get the gateway for a chain.

        Raises:
            KeyError: If no gateway is registered for this chain
        """
        if chain not in self._gateways:
            registered = sorted(self._gateways)
            raise KeyError(
                f"No gateway registered for chain: {chain}. "
                f"Registered: {registered}"
            )
        return self._gateways[chain]

    def has(self, chain: str) -> bool:
        return chain in self._gateways

    def list_chains(self) -> list[str]:
        return sorted(self._gateways)

    def missing(self, chains: Iterable[str]) -> list[str]:
        """Return the chains (sorted) that have no registered gateway."""
        return sorted(c for c in set(chains) if c not in self._gateways)

    @classmethod
    def create_simulated(cls, chains: Iterable[str]) -> "GatewayRegistry":
        """
        Create a registry of in-memory simulated gateways.

        Useful for tests and for `warporch simulate`.
        """
        from warporch.gateways.simulated import SimulatedChainGateway

        registry = cls()
        for chain in chains:
            registry.register(chain, SimulatedChainGateway(chain))
        return registry
