"""
Config Codec - decode job configuration bytes into a WarpRouteConfig.

Both documents are UTF-8 YAML (JSON is accepted as a YAML subset) and carry a
top-level ``version`` tag so the codec never has to guess the schema.

Route document (version "warp-route/1"):

    version: warp-route/1
    chains:
      holesky:
        type: collateral
        owner: "0x..."
        token: "0x..."
        interchainSecurityModule: {type: trustedRelayerIsm, relayer: "0x..."}
      tangletestnet:
        type: synthetic
        owner: "0x..."
    routes:                      # optional, defaults to every chain pair
      - [holesky, tangletestnet]
    coreOverrides:               # advanced mode only
      holesky:
        owner: "0x..."

Existing core document (version "core/1"):

    version: core/1
    chains:
      holesky:
        owner: "0x..."
        mailbox: "0x..."
        defaultIsm: {type: trustedRelayerIsm, relayer: "0x...", address: "0x..."}
        defaultHook: {type: merkleTreeHook, address: "0x..."}
        requiredHook: {type: protocolFee, protocolFee: "0", maxProtocolFee: "1000", ...}

Every failure raises ConfigError before any chain is touched; no partial
config is ever returned.
"""

import itertools
import logging
import re
from typing import Any, Optional

import yaml

from warporch.errors import ConfigError, ConfigErrorKind
from warporch.schemas.warp_route import (
    CORE_SCHEMA_VERSION,
    ROUTE_SCHEMA_VERSION,
    TRUSTED_RELAYER_ISM,
    ChainConfig,
    CoreConfig,
    CoreOverride,
    GasConfig,
    HookConfig,
    IsmConfig,
    RequiredHookConfig,
    TokenType,
    WarpRouteConfig,
)

logger = logging.getLogger(__name__)

CHAIN_ID_PATTERN = re.compile(r"^[a-z][a-z0-9-]{0,63}$")
ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
DECIMAL_PATTERN = re.compile(r"^[0-9]+$")

_CHAIN_FIELDS = {
    "type", "owner", "isNft", "mailbox", "interchainGasPaymaster",
    "interchainSecurityModule", "token", "gas",
}
_CORE_FIELDS = {"owner", "mailbox", "defaultIsm", "defaultHook", "requiredHook"}
_OVERRIDE_FIELDS = {"owner", "defaultIsm", "defaultHook", "requiredHook"}


def _malformed(message: str) -> ConfigError:
    return ConfigError(ConfigErrorKind.MALFORMED, message)


def _load_document(raw: bytes, what: str) -> dict[str, Any]:
    """Parse raw bytes into a top-level mapping."""
    if not isinstance(raw, (bytes, bytearray)):
        raise _malformed(f"{what} must be bytes, got {type(raw).__name__}")
    try:
        text = bytes(raw).decode("utf-8")
    except UnicodeDecodeError:
        raise _malformed(f"{what} is not valid UTF-8")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise _malformed(f"{what} is not valid YAML/JSON: {e}")
    if not isinstance(data, dict):
        raise _malformed(f"{what} must be a mapping at the top level")
    return data


def _check_version(data: dict[str, Any], expected: str, what: str) -> str:
    if "version" not in data:
        raise _malformed(f"{what} is missing its 'version' tag")
    version = data["version"]
    if not isinstance(version, str):
        raise _malformed(f"{what} 'version' must be a string")
    if version != expected:
        raise ConfigError(
            ConfigErrorKind.SCHEMA_VERSION_UNSUPPORTED,
            f"{what} version '{version}' is not supported (expected '{expected}')",
        )
    return version


def _check_keys(data: dict[str, Any], allowed: set[str], where: str) -> None:
    unknown = sorted(str(k) for k in set(data) - allowed)
    if unknown:
        raise _malformed(f"{where}: unknown field(s) {unknown}")


def _mapping(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise _malformed(f"{where} must be a mapping")
    return value


def _chain_id(value: Any, where: str) -> str:
    if not isinstance(value, str) or not CHAIN_ID_PATTERN.match(value):
        raise _malformed(f"{where}: invalid chain identifier {value!r}")
    return value


def _address(data: dict[str, Any], key: str, where: str, required: bool = False) -> Optional[str]:
    if key not in data or data[key] is None:
        if required:
            raise _malformed(f"{where}: missing required field '{key}'")
        return None
    value = data[key]
    if not isinstance(value, str) or not ADDRESS_PATTERN.match(value):
        raise _malformed(f"{where}: '{key}' is not a 20-byte hex address: {value!r}")
    return value.lower()


def _string(data: dict[str, Any], key: str, where: str, required: bool = False) -> Optional[str]:
    if key not in data or data[key] is None:
        if required:
            raise _malformed(f"{where}: missing required field '{key}'")
        return None
    value = data[key]
    if not isinstance(value, str) or not value:
        raise _malformed(f"{where}: '{key}' must be a non-empty string")
    return value


def _amount(data: dict[str, Any], key: str, where: str) -> Optional[str]:
    if key not in data or data[key] is None:
        return None
    value = data[key]
    # bool is an int subclass; reject it explicitly
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return str(value)
    if isinstance(value, str) and DECIMAL_PATTERN.match(value):
        return value
    raise _malformed(f"{where}: '{key}' must be a non-negative integer amount")


def _uint(data: dict[str, Any], key: str, where: str) -> Optional[int]:
    if key not in data or data[key] is None:
        return None
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise _malformed(f"{where}: '{key}' must be a non-negative integer")
    return value


def _parse_ism(value: Any, where: str) -> IsmConfig:
    data = _mapping(value, where)
    _check_keys(data, {"type", "relayer", "address"}, where)
    return IsmConfig(
        type=_string(data, "type", where, required=True),
        relayer=_address(data, "relayer", where),
        address=_address(data, "address", where),
    )


def _parse_hook(value: Any, where: str) -> HookConfig:
    data = _mapping(value, where)
    _check_keys(data, {"type", "address"}, where)
    return HookConfig(
        type=_string(data, "type", where, required=True),
        address=_address(data, "address", where),
    )


def _parse_required_hook(value: Any, where: str) -> RequiredHookConfig:
    data = _mapping(value, where)
    _check_keys(
        data,
        {"type", "address", "owner", "beneficiary", "protocolFee", "maxProtocolFee"},
        where,
    )
    hook = RequiredHookConfig(
        type=_string(data, "type", where, required=True),
        address=_address(data, "address", where),
        owner=_address(data, "owner", where),
        beneficiary=_address(data, "beneficiary", where),
        protocol_fee=_amount(data, "protocolFee", where),
        max_protocol_fee=_amount(data, "maxProtocolFee", where),
    )
    if hook.protocol_fee is not None and hook.max_protocol_fee is not None:
        if int(hook.protocol_fee) > int(hook.max_protocol_fee):
            raise _malformed(f"{where}: protocolFee exceeds maxProtocolFee")
    return hook


def _parse_gas(value: Any, where: str) -> GasConfig:
    data = _mapping(value, where)
    _check_keys(data, {"gasLimit", "maxFeePerGas", "maxPriorityFeePerGas"}, where)
    gas = GasConfig(
        gas_limit=_uint(data, "gasLimit", where),
        max_fee_per_gas=_uint(data, "maxFeePerGas", where),
        max_priority_fee_per_gas=_uint(data, "maxPriorityFeePerGas", where),
    )
    if gas.max_fee_per_gas is not None and gas.max_priority_fee_per_gas is not None:
        if gas.max_priority_fee_per_gas > gas.max_fee_per_gas:
            raise _malformed(f"{where}: maxPriorityFeePerGas exceeds maxFeePerGas")
    return gas


def _parse_chain(chain_id: str, value: Any) -> ChainConfig:
    where = f"chains.{chain_id}"
    data = _mapping(value, where)
    _check_keys(data, _CHAIN_FIELDS, where)

    type_name = _string(data, "type", where, required=True)
    try:
        token_type = TokenType(type_name)
    except ValueError:
        raise _malformed(f"{where}: unknown token type '{type_name}'")

    is_nft = data.get("isNft", False)
    if not isinstance(is_nft, bool):
        raise _malformed(f"{where}: 'isNft' must be a boolean")

    token = _address(data, "token", where)
    if token_type.requires_token and token is None:
        raise _malformed(f"{where}: token type '{token_type.value}' requires 'token'")
    if not token_type.requires_token and token is not None:
        raise _malformed(f"{where}: token type '{token_type.value}' does not take 'token'")

    return ChainConfig(
        token_type=token_type,
        owner=_address(data, "owner", where, required=True),
        is_nft=is_nft,
        mailbox=_address(data, "mailbox", where),
        interchain_gas_paymaster=_address(data, "interchainGasPaymaster", where),
        interchain_security_module=(
            _parse_ism(data["interchainSecurityModule"], f"{where}.interchainSecurityModule")
            if data.get("interchainSecurityModule") is not None else None
        ),
        token=token,
        gas=_parse_gas(data["gas"], f"{where}.gas") if data.get("gas") is not None else None,
    )


def _parse_core_settings(data: dict[str, Any], where: str) -> dict[str, Any]:
    """Parse the optional ISM/hook sections shared by core configs and overrides."""
    return {
        "default_ism": (
            _parse_ism(data["defaultIsm"], f"{where}.defaultIsm")
            if data.get("defaultIsm") is not None else None
        ),
        "default_hook": (
            _parse_hook(data["defaultHook"], f"{where}.defaultHook")
            if data.get("defaultHook") is not None else None
        ),
        "required_hook": (
            _parse_required_hook(data["requiredHook"], f"{where}.requiredHook")
            if data.get("requiredHook") is not None else None
        ),
    }


def _parse_override(chain_id: str, value: Any) -> CoreOverride:
    where = f"coreOverrides.{chain_id}"
    data = _mapping(value, where)
    _check_keys(data, _OVERRIDE_FIELDS, where)
    override = CoreOverride(owner=_address(data, "owner", where), **_parse_core_settings(data, where))
    if override.is_empty:
        raise _malformed(f"{where}: override does not set anything")
    return override


def _parse_routes(value: Any, chains: dict[str, ChainConfig]) -> tuple[tuple[str, str], ...]:
    if value is None:
        return tuple(itertools.combinations(sorted(chains), 2))
    if not isinstance(value, list):
        raise _malformed("'routes' must be a list of chain pairs")

    pairs: set[tuple[str, str]] = set()
    for i, item in enumerate(value):
        where = f"routes[{i}]"
        if not isinstance(item, list) or len(item) != 2:
            raise _malformed(f"{where}: expected a pair of chain identifiers")
        a, b = (_chain_id(c, where) for c in item)
        if a == b:
            raise _malformed(f"{where}: a route cannot connect '{a}' to itself")
        for chain in (a, b):
            if chain not in chains:
                raise ConfigError(
                    ConfigErrorKind.INVALID_REFERENCE,
                    f"{where}: chain '{chain}' is not declared under 'chains'",
                )
        pairs.add((a, b) if a < b else (b, a))
    return tuple(sorted(pairs))


def decode_core_config(raw: bytes) -> dict[str, CoreConfig]:
    """
    Decode an existing-core document on its own.

    Returns:
        CoreConfig per chain id

    Raises:
        ConfigError: If the document is malformed or has an unsupported version
    """
    data = _load_document(raw, "existing core config")
    _check_version(data, CORE_SCHEMA_VERSION, "existing core config")
    _check_keys(data, {"version", "chains"}, "existing core config")

    chains = _mapping(data.get("chains"), "existing core config 'chains'")
    result: dict[str, CoreConfig] = {}
    for chain_id in sorted(chains, key=str):
        _chain_id(chain_id, "existing core config")
        where = f"existing core chains.{chain_id}"
        entry = _mapping(chains[chain_id], where)
        _check_keys(entry, _CORE_FIELDS, where)
        result[chain_id] = CoreConfig(
            owner=_address(entry, "owner", where, required=True),
            mailbox=_address(entry, "mailbox", where, required=True),
            **_parse_core_settings(entry, where),
        )
    return result


def _enforce_policy(config: WarpRouteConfig) -> None:
    """Restrictive defaults applied when advanced mode is off."""
    for chain_id in config.chain_ids:
        chain = config.chains[chain_id]
        if chain.gas is not None:
            raise ConfigError(
                ConfigErrorKind.POLICY_VIOLATION,
                f"chains.{chain_id}: gas overrides require advanced mode",
            )
        ism = chain.interchain_security_module
        if ism is not None and ism.type != TRUSTED_RELAYER_ISM:
            raise ConfigError(
                ConfigErrorKind.POLICY_VIOLATION,
                f"chains.{chain_id}: ISM type '{ism.type}' requires advanced mode",
            )
    if config.core_overrides:
        raise ConfigError(
            ConfigErrorKind.POLICY_VIOLATION,
            "coreOverrides require advanced mode",
        )


def decode(
    config_bytes: bytes,
    advanced_mode: bool = False,
    existing_core_config_bytes: Optional[bytes] = None,
) -> WarpRouteConfig:
    """
    Decode and validate a job's configuration.

    Args:
        config_bytes: Route document bytes
        advanced_mode: Permit the full field set; otherwise apply the restrictive policy
        existing_core_config_bytes: Optional existing-core document bytes

    Returns:
        A fully validated WarpRouteConfig

    Raises:
        ConfigError: MALFORMED, SCHEMA_VERSION_UNSUPPORTED, INVALID_REFERENCE
                     or POLICY_VIOLATION
    """
    data = _load_document(config_bytes, "route config")
    version = _check_version(data, ROUTE_SCHEMA_VERSION, "route config")
    _check_keys(data, {"version", "chains", "routes", "coreOverrides"}, "route config")

    raw_chains = _mapping(data.get("chains"), "route config 'chains'")
    chains: dict[str, ChainConfig] = {}
    for chain_id in sorted(raw_chains, key=str):
        _chain_id(chain_id, "route config 'chains'")
        chains[chain_id] = _parse_chain(chain_id, raw_chains[chain_id])

    routes = _parse_routes(data.get("routes"), chains)

    overrides: dict[str, CoreOverride] = {}
    if data.get("coreOverrides") is not None:
        raw_overrides = _mapping(data["coreOverrides"], "route config 'coreOverrides'")
        for chain_id in sorted(raw_overrides, key=str):
            _chain_id(chain_id, "route config 'coreOverrides'")
            if chain_id not in chains:
                raise ConfigError(
                    ConfigErrorKind.INVALID_REFERENCE,
                    f"coreOverrides.{chain_id}: chain is not declared under 'chains'",
                )
            overrides[chain_id] = _parse_override(chain_id, raw_overrides[chain_id])

    existing: dict[str, CoreConfig] = {}
    if existing_core_config_bytes is not None:
        existing = decode_core_config(existing_core_config_bytes)
        undeclared = sorted(set(existing) - set(chains))
        if undeclared:
            raise ConfigError(
                ConfigErrorKind.INVALID_REFERENCE,
                f"existing core config declares chains not in the route: {undeclared}",
            )

    for chain_id, chain in chains.items():
        if chain.mailbox is None:
            continue
        core = existing.get(chain_id)
        if core is None:
            raise ConfigError(
                ConfigErrorKind.INVALID_REFERENCE,
                f"chains.{chain_id}: mailbox given but no existing core config for the chain",
            )
        if core.mailbox != chain.mailbox:
            raise ConfigError(
                ConfigErrorKind.INVALID_REFERENCE,
                f"chains.{chain_id}: mailbox does not match the existing core config",
            )

    config = WarpRouteConfig(
        version=version,
        chains=chains,
        routes=routes,
        core_overrides=overrides,
        existing_core=existing,
    )

    if not advanced_mode:
        _enforce_policy(config)

    logger.debug(
        f"Decoded route config: {len(chains)} chain(s), {len(routes)} route(s), "
        f"{len(existing)} reused core(s), {len(overrides)} override(s)"
    )
    return config
