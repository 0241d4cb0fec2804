"""Tests for the config codec.

Tests cover:
- Decoding the route and existing-core documents
- Every ConfigError kind (malformed, unsupported version, invalid reference, policy)
- Restrictive defaults outside advanced mode
"""

import json

import pytest

from warporch import codec
from warporch.errors import ConfigError, ConfigErrorKind
from warporch.schemas import TokenType

from conftest import MAILBOX_HOLESKY, OWNER_HOLESKY, OWNER_TANGLE, RELAYER, TOKEN_HOLESKY


def _kind(excinfo) -> ConfigErrorKind:
    return excinfo.value.kind


class TestDecodeValid:
    """Well-formed documents decode into a WarpRouteConfig."""

    def test_two_chain_route(self, route_bytes):
        config = codec.decode(route_bytes)

        assert config.version == "warp-route/1"
        assert config.chain_ids == ["holesky", "tangletestnet"]
        holesky = config.chains["holesky"]
        assert holesky.token_type == TokenType.COLLATERAL
        assert holesky.owner == OWNER_HOLESKY
        assert holesky.token == TOKEN_HOLESKY
        assert config.chains["tangletestnet"].token_type == TokenType.SYNTHETIC
        assert config.existing_core == {}

    def test_routes_default_to_every_pair(self, route_doc, encode):
        route_doc["chains"]["arbitrumsepolia"] = {"type": "native", "owner": OWNER_TANGLE}
        config = codec.decode(encode(route_doc))
        assert config.routes == (
            ("arbitrumsepolia", "holesky"),
            ("arbitrumsepolia", "tangletestnet"),
            ("holesky", "tangletestnet"),
        )

    def test_explicit_routes_are_normalized(self, route_doc, encode):
        route_doc["routes"] = [["tangletestnet", "holesky"], ["holesky", "tangletestnet"]]
        config = codec.decode(encode(route_doc))
        assert config.routes == (("holesky", "tangletestnet"),)

    def test_addresses_are_lowercased(self, route_doc, encode):
        route_doc["chains"]["holesky"]["owner"] = "0x" + "AB" * 20
        config = codec.decode(encode(route_doc))
        assert config.chains["holesky"].owner == "0x" + "ab" * 20

    def test_json_is_accepted(self, route_doc):
        config = codec.decode(json.dumps(route_doc).encode())
        assert config.chain_ids == ["holesky", "tangletestnet"]

    def test_existing_core(self, route_bytes, core_bytes):
        config = codec.decode(route_bytes, existing_core_config_bytes=core_bytes)
        assert config.has_existing_core("holesky")
        assert not config.has_existing_core("tangletestnet")
        core = config.existing_core["holesky"]
        assert core.mailbox == MAILBOX_HOLESKY
        assert core.default_ism.relayer == RELAYER

    def test_chain_mailbox_matching_existing_core(self, route_doc, encode, core_bytes):
        route_doc["chains"]["holesky"]["mailbox"] = MAILBOX_HOLESKY
        config = codec.decode(encode(route_doc), existing_core_config_bytes=core_bytes)
        assert config.chains["holesky"].mailbox == MAILBOX_HOLESKY

    def test_trusted_relayer_ism_allowed_without_advanced(self, route_doc, encode):
        route_doc["chains"]["holesky"]["interchainSecurityModule"] = {
            "type": "trustedRelayerIsm",
            "relayer": RELAYER,
        }
        config = codec.decode(encode(route_doc))
        assert config.chains["holesky"].interchain_security_module.type == "trustedRelayerIsm"

    def test_advanced_fields(self, route_doc, encode):
        route_doc["chains"]["holesky"]["interchainSecurityModule"] = {"type": "multisigIsm"}
        route_doc["chains"]["holesky"]["gas"] = {"gasLimit": 3000000, "maxFeePerGas": 100}
        route_doc["coreOverrides"] = {
            "tangletestnet": {
                "requiredHook": {"type": "protocolFee", "protocolFee": "1", "maxProtocolFee": 1000},
            },
        }
        config = codec.decode(encode(route_doc), advanced_mode=True)

        assert config.chains["holesky"].gas.gas_limit == 3000000
        hook = config.core_overrides["tangletestnet"].required_hook
        assert hook.protocol_fee == "1"
        assert hook.max_protocol_fee == "1000"


class TestMalformed:
    """Structural problems are ConfigError(Malformed)."""

    @pytest.mark.parametrize(
        "raw",
        [
            b"\xff\xfe\x00",
            b"chains: [unclosed",
            b"- just\n- a list\n",
            b"",
        ],
    )
    def test_unparseable_documents(self, raw):
        with pytest.raises(ConfigError) as excinfo:
            codec.decode(raw)
        assert _kind(excinfo) == ConfigErrorKind.MALFORMED

    def test_not_bytes(self, route_doc):
        with pytest.raises(ConfigError) as excinfo:
            codec.decode(route_doc)
        assert _kind(excinfo) == ConfigErrorKind.MALFORMED

    def test_missing_version(self, route_doc, encode):
        del route_doc["version"]
        with pytest.raises(ConfigError) as excinfo:
            codec.decode(encode(route_doc))
        assert _kind(excinfo) == ConfigErrorKind.MALFORMED

    def test_unknown_top_level_field(self, route_doc, encode):
        route_doc["chainz"] = {}
        with pytest.raises(ConfigError, match="unknown field"):
            codec.decode(encode(route_doc))

    def test_unknown_token_type(self, route_doc, encode):
        route_doc["chains"]["holesky"]["type"] = "wrapped"
        with pytest.raises(ConfigError, match="unknown token type"):
            codec.decode(encode(route_doc))

    def test_bad_address(self, route_doc, encode):
        route_doc["chains"]["holesky"]["owner"] = "0x1234"
        with pytest.raises(ConfigError) as excinfo:
            codec.decode(encode(route_doc))
        assert _kind(excinfo) == ConfigErrorKind.MALFORMED

    def test_bad_chain_id(self, route_doc, encode):
        route_doc["chains"]["Holesky_Testnet"] = route_doc["chains"].pop("holesky")
        with pytest.raises(ConfigError, match="invalid chain identifier"):
            codec.decode(encode(route_doc))

    def test_collateral_requires_token(self, route_doc, encode):
        del route_doc["chains"]["holesky"]["token"]
        with pytest.raises(ConfigError, match="requires 'token'"):
            codec.decode(encode(route_doc))

    def test_synthetic_rejects_token(self, route_doc, encode):
        route_doc["chains"]["tangletestnet"]["token"] = TOKEN_HOLESKY
        with pytest.raises(ConfigError, match="does not take 'token'"):
            codec.decode(encode(route_doc))

    def test_route_to_itself(self, route_doc, encode):
        route_doc["routes"] = [["holesky", "holesky"]]
        with pytest.raises(ConfigError) as excinfo:
            codec.decode(encode(route_doc))
        assert _kind(excinfo) == ConfigErrorKind.MALFORMED

    def test_fee_above_max(self, route_doc, encode):
        route_doc["coreOverrides"] = {
            "holesky": {
                "requiredHook": {"type": "protocolFee", "protocolFee": 10, "maxProtocolFee": 1},
            },
        }
        with pytest.raises(ConfigError, match="protocolFee exceeds maxProtocolFee"):
            codec.decode(encode(route_doc), advanced_mode=True)

    def test_empty_override(self, route_doc, encode):
        route_doc["coreOverrides"] = {"holesky": {}}
        with pytest.raises(ConfigError, match="does not set anything"):
            codec.decode(encode(route_doc), advanced_mode=True)


class TestSchemaVersion:
    def test_route_version(self, route_doc, encode):
        route_doc["version"] = "warp-route/2"
        with pytest.raises(ConfigError) as excinfo:
            codec.decode(encode(route_doc))
        assert _kind(excinfo) == ConfigErrorKind.SCHEMA_VERSION_UNSUPPORTED

    def test_core_version(self, route_bytes, core_doc, encode):
        core_doc["version"] = "core/0"
        with pytest.raises(ConfigError) as excinfo:
            codec.decode(route_bytes, existing_core_config_bytes=encode(core_doc))
        assert _kind(excinfo) == ConfigErrorKind.SCHEMA_VERSION_UNSUPPORTED


class TestInvalidReference:
    """Cross-references to chains or cores that do not exist."""

    def test_route_names_undeclared_chain(self, route_doc, encode):
        route_doc["routes"] = [["holesky", "sepolia"]]
        with pytest.raises(ConfigError) as excinfo:
            codec.decode(encode(route_doc))
        assert _kind(excinfo) == ConfigErrorKind.INVALID_REFERENCE

    def test_existing_core_for_undeclared_chain(self, route_bytes, core_doc, encode):
        core_doc["chains"]["sepolia"] = dict(core_doc["chains"]["holesky"])
        with pytest.raises(ConfigError) as excinfo:
            codec.decode(route_bytes, existing_core_config_bytes=encode(core_doc))
        assert _kind(excinfo) == ConfigErrorKind.INVALID_REFERENCE

    def test_override_for_undeclared_chain(self, route_doc, encode):
        route_doc["coreOverrides"] = {"sepolia": {"owner": OWNER_HOLESKY}}
        with pytest.raises(ConfigError) as excinfo:
            codec.decode(encode(route_doc), advanced_mode=True)
        assert _kind(excinfo) == ConfigErrorKind.INVALID_REFERENCE

    def test_mailbox_without_existing_core(self, route_doc, encode):
        route_doc["chains"]["holesky"]["mailbox"] = MAILBOX_HOLESKY
        with pytest.raises(ConfigError) as excinfo:
            codec.decode(encode(route_doc))
        assert _kind(excinfo) == ConfigErrorKind.INVALID_REFERENCE

    def test_mailbox_mismatching_existing_core(self, route_doc, encode, core_bytes):
        route_doc["chains"]["holesky"]["mailbox"] = "0x" + "99" * 20
        with pytest.raises(ConfigError) as excinfo:
            codec.decode(encode(route_doc), existing_core_config_bytes=core_bytes)
        assert _kind(excinfo) == ConfigErrorKind.INVALID_REFERENCE


class TestPolicy:
    """Outside advanced mode only the restrictive field set is accepted."""

    def test_gas_requires_advanced(self, route_doc, encode):
        route_doc["chains"]["holesky"]["gas"] = {"gasLimit": 1}
        with pytest.raises(ConfigError) as excinfo:
            codec.decode(encode(route_doc))
        assert _kind(excinfo) == ConfigErrorKind.POLICY_VIOLATION

    def test_custom_ism_requires_advanced(self, route_doc, encode):
        route_doc["chains"]["holesky"]["interchainSecurityModule"] = {"type": "multisigIsm"}
        with pytest.raises(ConfigError) as excinfo:
            codec.decode(encode(route_doc))
        assert _kind(excinfo) == ConfigErrorKind.POLICY_VIOLATION

    def test_core_overrides_require_advanced(self, route_doc, encode):
        route_doc["coreOverrides"] = {"holesky": {"owner": OWNER_TANGLE}}
        with pytest.raises(ConfigError) as excinfo:
            codec.decode(encode(route_doc))
        assert _kind(excinfo) == ConfigErrorKind.POLICY_VIOLATION


class TestDecodeCoreConfig:
    def test_decodes_on_its_own(self, core_bytes):
        cores = codec.decode_core_config(core_bytes)
        assert list(cores) == ["holesky"]
        assert cores["holesky"].owner == OWNER_HOLESKY

    def test_requires_mailbox(self, core_doc, encode):
        del core_doc["chains"]["holesky"]["mailbox"]
        with pytest.raises(ConfigError, match="'mailbox'"):
            codec.decode_core_config(encode(core_doc))
