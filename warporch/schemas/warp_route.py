"""
Warp-route configuration schemas.

WarpRouteConfig is the typed, validated form of a job's configuration bytes.
It is produced only by warporch.codec.decode and never mutated afterwards.

Wire field names are camelCase (as written by operators and by the hyperlane
tooling); Python attributes are snake_case. ``to_dict`` emits the wire form
and is what configuration fingerprints are computed over.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

ROUTE_SCHEMA_VERSION = "warp-route/1"
CORE_SCHEMA_VERSION = "core/1"

# ISM used by `core init` without --advanced: the relayer address is trusted
TRUSTED_RELAYER_ISM = "trustedRelayerIsm"


class TokenType(str, Enum):
    """Warp-route token flavours."""
    SYNTHETIC = "synthetic"
    FAST_SYNTHETIC = "fastSynthetic"
    SYNTHETIC_URI = "syntheticUri"
    COLLATERAL = "collateral"
    COLLATERAL_VAULT = "collateralVault"
    XERC20 = "xERC20"
    XERC20_LOCKBOX = "xERC20Lockbox"
    COLLATERAL_FIAT = "collateralFiat"
    FAST_COLLATERAL = "fastCollateral"
    COLLATERAL_URI = "collateralUri"
    NATIVE = "native"
    NATIVE_SCALED = "nativeScaled"

    @property
    def family(self) -> str:
        """One of "synthetic", "collateral" or "native"."""
        if self in (TokenType.SYNTHETIC, TokenType.FAST_SYNTHETIC, TokenType.SYNTHETIC_URI):
            return "synthetic"
        if self in (TokenType.NATIVE, TokenType.NATIVE_SCALED):
            return "native"
        return "collateral"

    @property
    def requires_token(self) -> bool:
        """Collateral-family routes wrap an existing token contract."""
        return self.family == "collateral"


def _compact(d: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}


@dataclass(frozen=True)
class IsmConfig:
    """Interchain security module settings."""
    type: str
    relayer: Optional[str] = None
    address: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({"type": self.type, "relayer": self.relayer, "address": self.address})


@dataclass(frozen=True)
class HookConfig:
    """Default (post-dispatch) hook settings."""
    type: str
    address: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({"type": self.type, "address": self.address})


@dataclass(frozen=True)
class RequiredHookConfig:
    """
    Required hook settings, typically a protocol fee hook.

    Fees are kept as decimal strings (wei amounts overflow JSON numbers).
    """
    type: str
    address: Optional[str] = None
    owner: Optional[str] = None
    beneficiary: Optional[str] = None
    protocol_fee: Optional[str] = None
    max_protocol_fee: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "type": self.type,
            "address": self.address,
            "owner": self.owner,
            "beneficiary": self.beneficiary,
            "protocolFee": self.protocol_fee,
            "maxProtocolFee": self.max_protocol_fee,
        })


@dataclass(frozen=True)
class GasConfig:
    """Custom gas/fee overrides. Only accepted in advanced mode."""
    gas_limit: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "gasLimit": self.gas_limit,
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
        })


@dataclass(frozen=True)
class ChainConfig:
    """
    Warp-route settings for one chain.

    Attributes:
        token_type: Route flavour on this chain
        owner: Owner of the warp-route contract
        is_nft: Whether the route carries ERC721 tokens
        mailbox: Mailbox of an existing core deployment (must match the
                 existing core config for the chain)
        interchain_gas_paymaster: Optional IGP address
        interchain_security_module: Optional ISM for the route
        token: Wrapped token address (collateral-family only)
        gas: Gas/fee overrides (advanced mode only)
    """
    token_type: TokenType
    owner: str
    is_nft: bool = False
    mailbox: Optional[str] = None
    interchain_gas_paymaster: Optional[str] = None
    interchain_security_module: Optional[IsmConfig] = None
    token: Optional[str] = None
    gas: Optional[GasConfig] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "type": self.token_type.value,
            "owner": self.owner,
            "isNft": self.is_nft,
            "mailbox": self.mailbox,
            "interchainGasPaymaster": self.interchain_gas_paymaster,
            "interchainSecurityModule": (
                self.interchain_security_module.to_dict()
                if self.interchain_security_module else None
            ),
            "token": self.token,
            "gas": self.gas.to_dict() if self.gas else None,
        })


@dataclass(frozen=True)
class CoreOverride:
    """Core settings to reconcile on a chain after deployment."""
    owner: Optional[str] = None
    default_ism: Optional[IsmConfig] = None
    default_hook: Optional[HookConfig] = None
    required_hook: Optional[RequiredHookConfig] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "owner": self.owner,
            "defaultIsm": self.default_ism.to_dict() if self.default_ism else None,
            "defaultHook": self.default_hook.to_dict() if self.default_hook else None,
            "requiredHook": self.required_hook.to_dict() if self.required_hook else None,
        })

    @property
    def is_empty(self) -> bool:
        return not self.to_dict()


@dataclass(frozen=True)
class CoreConfig:
    """
    An existing core deployment on one chain.

    ``mailbox`` is the address the warp route is deployed against when the
    core is reused instead of deployed.
    """
    owner: str
    mailbox: str
    default_ism: Optional[IsmConfig] = None
    default_hook: Optional[HookConfig] = None
    required_hook: Optional[RequiredHookConfig] = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "owner": self.owner,
            "mailbox": self.mailbox,
            "defaultIsm": self.default_ism.to_dict() if self.default_ism else None,
            "defaultHook": self.default_hook.to_dict() if self.default_hook else None,
            "requiredHook": self.required_hook.to_dict() if self.required_hook else None,
        })


@dataclass(frozen=True)
class WarpRouteConfig:
    """
    A decoded and validated warp-route job configuration.

    Attributes:
        version: Schema version tag of the route document
        chains: Per-chain route settings keyed by chain id (sorted)
        routes: Chain pairs connected by the route, each pair sorted
        core_overrides: Core settings to apply per chain (advanced mode)
        existing_core: Reused core deployments keyed by chain id
    """
    version: str
    chains: dict[str, ChainConfig]
    routes: tuple[tuple[str, str], ...] = ()
    core_overrides: dict[str, CoreOverride] = field(default_factory=dict)
    existing_core: dict[str, CoreConfig] = field(default_factory=dict)

    @property
    def chain_ids(self) -> list[str]:
        return sorted(self.chains)

    def has_existing_core(self, chain: str) -> bool:
        return chain in self.existing_core

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire form (existing core included under ``existingCore``)."""
        result: dict[str, Any] = {
            "version": self.version,
            "chains": {cid: self.chains[cid].to_dict() for cid in sorted(self.chains)},
            "routes": [list(pair) for pair in self.routes],
        }
        if self.core_overrides:
            result["coreOverrides"] = {
                cid: self.core_overrides[cid].to_dict() for cid in sorted(self.core_overrides)
            }
        if self.existing_core:
            result["existingCore"] = {
                cid: self.existing_core[cid].to_dict() for cid in sorted(self.existing_core)
            }
        return result
