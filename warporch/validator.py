"""
Validator - post-deployment liveness checks for a warp route.

For every configured chain pair both sides must pass:
1. the router address was recorded by its deploy step
2. the address holds contract code (deployed and reachable)
3. the router reports the route fingerprint it was deployed for, so both
   sides belong to the same route
4. the route-type probe for the chain's token type

Route-type probes are an extension point. Built in:
- collateral family: router wraps the configured token
- synthetic and native families: router dispatches through the chain's mailbox

A single-chain route has no pairs; its chain is checked as the pair (c, c).

Gateway TransientError propagates so the executor can retry the validate
step. PermanentError on a read marks the side as failed.
"""

import logging
from typing import Callable, Iterable, Optional

from warporch.errors import PermanentError
from warporch.fingerprint import route_fingerprint
from warporch.gateways import ChainGateway, GatewayRegistry
from warporch.schemas import (
    ChainConfig,
    ExecutionState,
    PairResult,
    StepKind,
    TokenType,
    ValidationReport,
    WarpRouteConfig,
)

logger = logging.getLogger(__name__)

# (gateway, router address, chain config, mailbox) -> failure detail or None
RouteProbe = Callable[[ChainGateway, str, ChainConfig, Optional[str]], Optional[str]]


def _same_address(a: object, b: object) -> bool:
    return isinstance(a, str) and isinstance(b, str) and a.lower() == b.lower()


def probe_wrapped_token(
    gateway: ChainGateway, router: str, chain: ChainConfig, mailbox: Optional[str]
) -> Optional[str]:
    """Collateral routers must wrap the configured token."""
    wrapped = gateway.read_state(router, {"query": "wrappedToken"})
    if not _same_address(wrapped, chain.token):
        return f"router wraps {wrapped!r}, expected {chain.token}"
    return None


def probe_mailbox(
    gateway: ChainGateway, router: str, chain: ChainConfig, mailbox: Optional[str]
) -> Optional[str]:
    """Synthetic and native routers must dispatch through the chain's mailbox."""
    actual = gateway.read_state(router, {"query": "mailbox"})
    if not _same_address(actual, mailbox):
        return f"router mailbox is {actual!r}, expected {mailbox}"
    return None


_PROBES: dict[TokenType, RouteProbe] = {}


def register_probe(token_types: Iterable[TokenType], probe: RouteProbe) -> None:
    """Install ``probe`` as the liveness probe for the given token types."""
    for token_type in token_types:
        _PROBES[token_type] = probe


def get_probe(token_type: TokenType) -> RouteProbe:
    return _PROBES[token_type]


register_probe((t for t in TokenType if t.family == "collateral"), probe_wrapped_token)
register_probe((t for t in TokenType if t.family != "collateral"), probe_mailbox)


def resolve_mailbox(state: ExecutionState, config: WarpRouteConfig, chain: str) -> Optional[str]:
    """Mailbox of a chain: the reused core's, or the one deployed in this job."""
    if config.has_existing_core(chain):
        return config.existing_core[chain].mailbox
    return state.deployed_address(chain, StepKind.DEPLOY_CORE)


def _check_side(
    state: ExecutionState,
    config: WarpRouteConfig,
    gateways: GatewayRegistry,
    chain: str,
    route_id: str,
) -> list[str]:
    """Return failure details for one chain's router (empty means healthy)."""
    router = state.deployed_address(chain, StepKind.DEPLOY_WARP_ROUTE)
    if router is None:
        return [f"{chain}: no warp route deployed"]

    gateway = gateways.get(chain)
    chain_config = config.chains[chain]
    try:
        if not gateway.read_state(router, {"query": "code"}):
            return [f"{chain}: no contract code at {router}"]

        reported = gateway.read_state(router, {"query": "routeId"})
        if reported != route_id:
            return [f"{chain}: router reports route {reported!r}, expected {route_id}"]

        probe = get_probe(chain_config.token_type)
        detail = probe(gateway, router, chain_config, resolve_mailbox(state, config, chain))
    except PermanentError as e:
        return [f"{chain}: state read failed: {e}"]

    if detail is not None:
        return [f"{chain}: {detail}"]
    return []


def validate(
    state: ExecutionState,
    config: WarpRouteConfig,
    gateways: GatewayRegistry,
) -> ValidationReport:
    """
    Check that every configured chain pair of the route is live.

    Args:
        state: Execution state with the deploy step outcomes
        config: The job's configuration
        gateways: Gateways for every chain in the route

    Returns:
        ValidationReport with one PairResult per pair
    """
    route_id = route_fingerprint(config)
    pairs = config.routes or tuple((c, c) for c in config.chain_ids)

    sides: dict[str, list[str]] = {}
    for chain in sorted({c for pair in pairs for c in pair}):
        sides[chain] = _check_side(state, config, gateways, chain, route_id)

    results = []
    for a, b in pairs:
        details = sides[a] + (sides[b] if b != a else [])
        results.append(PairResult(chains=(a, b), ok=not details, details=tuple(details)))

    report = ValidationReport(pairs=tuple(results))
    if report.fully_validated:
        logger.info(f"Route validated: {len(results)} pair(s) live", extra={"job_id": state.job_id})
    else:
        logger.warning(
            f"Route validation failed for {len(report.failed_pairs())} of {len(results)} pair(s)",
            extra={"job_id": state.job_id, "metadata": [p.to_dict() for p in report.failed_pairs()]},
        )
    return report
