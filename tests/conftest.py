import logging

import pytest
import yaml

from warporch.config import WarporchConfig
from warporch.gateways import GatewayRegistry

OWNER_HOLESKY = "0x" + "a1" * 20
OWNER_TANGLE = "0x" + "b2" * 20
TOKEN_HOLESKY = "0x" + "c3" * 20
MAILBOX_HOLESKY = "0x" + "d4" * 20
RELAYER = "0x" + "e5" * 20


@pytest.fixture(autouse=True)
def reset_warporch_logger():
    # setup_logging (called by the CLI) detaches the logger from root; undo for caplog
    yield
    logger = logging.getLogger("warporch")
    logger.handlers = []
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def settings() -> WarporchConfig:
    """Settings with no backoff so retry tests run instantly."""
    return WarporchConfig(
        max_attempts=3,
        backoff_seconds=0.0,
        max_backoff_seconds=0.0,
        step_timeout_s=5.0,
        confirmation_timeout_s=5.0,
        report_backoff_seconds=0.0,
    )


@pytest.fixture
def route_doc() -> dict:
    """Two-chain route: collateral on holesky, synthetic on tangletestnet."""
    return {
        "version": "warp-route/1",
        "chains": {
            "holesky": {
                "type": "collateral",
                "owner": OWNER_HOLESKY,
                "token": TOKEN_HOLESKY,
            },
            "tangletestnet": {
                "type": "synthetic",
                "owner": OWNER_TANGLE,
            },
        },
    }


@pytest.fixture
def core_doc() -> dict:
    """Existing core deployment on holesky only."""
    return {
        "version": "core/1",
        "chains": {
            "holesky": {
                "owner": OWNER_HOLESKY,
                "mailbox": MAILBOX_HOLESKY,
                "defaultIsm": {"type": "trustedRelayerIsm", "relayer": RELAYER},
            },
        },
    }


@pytest.fixture
def encode():
    """Serialize a document dict to the bytes a job carries."""
    def _encode(doc: dict) -> bytes:
        return yaml.safe_dump(doc, sort_keys=False).encode("utf-8")
    return _encode


@pytest.fixture
def route_bytes(route_doc, encode) -> bytes:
    return encode(route_doc)


@pytest.fixture
def core_bytes(core_doc, encode) -> bytes:
    return encode(core_doc)


@pytest.fixture
def gateways() -> GatewayRegistry:
    return GatewayRegistry.create_simulated(["holesky", "tangletestnet"])
