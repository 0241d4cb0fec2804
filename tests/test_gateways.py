"""Tests for the gateway registry and the simulated gateway."""

import pytest

from warporch.errors import PermanentError
from warporch.gateways import (
    CORE_CONTRACT,
    RECEIPT_SUCCESS,
    WARP_ROUTE_CONTRACT,
    ChainGateway,
    GatewayRegistry,
    SimulatedChainGateway,
)


class TestGatewayRegistry:
    def test_register_and_get(self):
        registry = GatewayRegistry()
        gateway = SimulatedChainGateway("holesky")
        registry.register("holesky", gateway)

        assert registry.get("holesky") is gateway
        assert registry.has("holesky")
        assert registry.list_chains() == ["holesky"]

    def test_missing_chain(self):
        registry = GatewayRegistry.create_simulated(["holesky"])
        with pytest.raises(KeyError):
            registry.get("sepolia")
        assert registry.missing(["sepolia", "holesky", "arbitrum"]) == ["arbitrum", "sepolia"]

    def test_create_simulated(self):
        registry = GatewayRegistry.create_simulated(["b", "a"])
        assert registry.list_chains() == ["a", "b"]
        assert all(isinstance(registry.get(c), ChainGateway) for c in ("a", "b"))


class TestSimulatedChainGateway:
    def test_deterministic_addresses(self):
        first = SimulatedChainGateway("holesky").deploy_contract(CORE_CONTRACT, {}, "fp-1")
        second = SimulatedChainGateway("holesky").deploy_contract(CORE_CONTRACT, {}, "fp-1")
        other = SimulatedChainGateway("sepolia").deploy_contract(CORE_CONTRACT, {}, "fp-1")

        assert first == second
        assert first != other
        assert first.startswith("0x") and len(first) == 42

    def test_find_deployment(self):
        gateway = SimulatedChainGateway("holesky")
        assert gateway.find_deployment("fp-1") is None
        address = gateway.deploy_contract(WARP_ROUTE_CONTRACT, {"routeId": "r"}, "fp-1")
        assert gateway.find_deployment("fp-1") == address
        assert gateway.read_state(address, {"query": "routeId"}) == "r"

    def test_unknown_contract(self):
        with pytest.raises(PermanentError):
            SimulatedChainGateway("holesky").deploy_contract("paymaster", {}, "fp")

    def test_apply_core_config(self):
        gateway = SimulatedChainGateway("holesky")
        mailbox = "0x" + "d4" * 20
        gateway.seed_core(mailbox, {"owner": "0x1"})

        tx_hash = gateway.send_transaction(
            {"to": mailbox, "method": "applyCoreConfig", "args": {"owner": "0x2"}}
        )
        receipt = gateway.await_confirmation(tx_hash, timeout=1)

        assert receipt["status"] == RECEIPT_SUCCESS
        assert gateway.read_state(mailbox, {"query": "coreConfig"}) == {"owner": "0x2"}

    def test_unknown_transaction(self):
        with pytest.raises(PermanentError):
            SimulatedChainGateway("holesky").await_confirmation("0xdead", timeout=1)

    def test_read_unknown_address(self):
        gateway = SimulatedChainGateway("holesky")
        assert gateway.read_state("0x" + "00" * 20, {"query": "code"}) is False
        assert gateway.read_state("0x" + "00" * 20, {"query": "mailbox"}) is None

    def test_deploy_count(self):
        gateway = SimulatedChainGateway("holesky")
        gateway.deploy_contract(CORE_CONTRACT, {}, "a")
        gateway.deploy_contract(WARP_ROUTE_CONTRACT, {}, "b")
        assert gateway.deploy_count() == 2
        assert gateway.deploy_count(CORE_CONTRACT) == 1
