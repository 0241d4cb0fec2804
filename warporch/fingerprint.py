"""
Configuration and deployment fingerprints.

Fingerprints are deterministic hashes over the semantically relevant subset
of a configuration. They give warp-route jobs their identity:

    config fingerprint      whole decoded config; keys the in-flight registry
    route fingerprint       chains + routes only; the route id every router is
                            deployed with and reports back to the validator
    deployment fingerprint  one deploy step's kind, chain and parameters; the
                            key for the gateway's existing-deployment lookup

Rule: fingerprints are opaque - never parsed. Format "sha256:<hex>".

Usage:
    from warporch.fingerprint import deployment_fingerprint

    fp = deployment_fingerprint(StepKind.DEPLOY_CORE, "holesky", params)
    address = gateway.find_deployment(fp)
"""

from typing import Any

from warporch.schemas import StepKind, WarpRouteConfig
from warporch.utils import hash_canonical


def config_fingerprint(config: WarpRouteConfig) -> str:
    """
    Fingerprint of an entire decoded configuration.

    Two jobs with the same fingerprint describe the same work, so they may
    not run concurrently on one node.

    Example:
        >>> config_fingerprint(config)
        'sha256:5f1c...'
    """
    return hash_canonical(config.to_dict())


def route_fingerprint(config: WarpRouteConfig) -> str:
    """
    Fingerprint of the route itself: its version, chain settings and pairs.

    Existing-core and override settings are excluded; they change how the
    route is reached, not which route it is.
    """
    wire = config.to_dict()
    return hash_canonical({
        "version": wire["version"],
        "chains": wire["chains"],
        "routes": wire["routes"],
    })


def deployment_fingerprint(kind: StepKind, chain: str, params: dict[str, Any]) -> str:
    """
    Fingerprint of one deployment on one chain.

    Args:
        kind: DEPLOY_CORE or DEPLOY_WARP_ROUTE
        chain: Target chain id
        params: Exactly the parameters handed to ChainGateway.deploy_contract

    Returns:
        Opaque fingerprint string

    Raises:
        ValueError: If kind does not deploy contracts
    """
    if not kind.deploys:
        raise ValueError(f"Step kind '{kind.value}' does not deploy contracts")
    return hash_canonical({"kind": kind.value, "chain": chain, "params": params})
