"""
Deployment Planner - derive an ordered DeploymentPlan from a WarpRouteConfig.

Per chain (ascending chain id):
- deploy_core          unless the chain reuses an existing core deployment
- deploy_warp_route    depends on the chain's deploy_core (if any)
- apply_core_override  if the config carries overrides for the chain;
                       depends on the chain's deploy_core (if any)
One terminal validate step depends on every deploy_warp_route and
apply_core_override: route liveness cannot be checked until every side is up.

Ordering is Kahn's algorithm with ties broken by (chain id, phase), so
identical configs always yield identical plans and plan ids. That makes
replanning after a restart safe.
"""

import heapq
import logging
from typing import Iterable, Mapping, Optional

from warporch.errors import PlanError, PlanErrorKind
from warporch.fingerprint import config_fingerprint
from warporch.schemas import DeploymentPlan, Step, StepKind, WarpRouteConfig
from warporch.utils import hash_canonical

logger = logging.getLogger(__name__)

StepKey = tuple[StepKind, Optional[str]]


def _sort_key(key: StepKey) -> tuple[int, str, int]:
    kind, chain = key
    # Cross-chain steps sort after every chain-scoped step
    if chain is None:
        return (1, "", kind.rank)
    return (0, chain, kind.rank)


def order_steps(dependencies: Mapping[StepKey, Iterable[StepKey]]) -> list[StepKey]:
    """
    Topologically order step keys.

    Args:
        dependencies: step key -> keys it depends on

    Returns:
        Keys in dependency order, ties broken by chain id then phase

    Raises:
        ValueError: If a dependency names an unknown step
        PlanError: CYCLIC_DEPENDENCY if the graph has a cycle
    """
    deps = {key: set(values) for key, values in dependencies.items()}
    dependents: dict[StepKey, list[StepKey]] = {key: [] for key in deps}
    for key, values in deps.items():
        for dep in values:
            if dep not in deps:
                raise ValueError(f"Step {key} depends on unknown step {dep}")
            dependents[dep].append(key)

    remaining = {key: len(values) for key, values in deps.items()}
    ready = [(_sort_key(key), key) for key, count in remaining.items() if count == 0]
    heapq.heapify(ready)

    ordered: list[StepKey] = []
    while ready:
        _, key = heapq.heappop(ready)
        ordered.append(key)
        for dependent in dependents[key]:
            remaining[dependent] -= 1
            if remaining[dependent] == 0:
                heapq.heappush(ready, (_sort_key(dependent), dependent))

    if len(ordered) != len(deps):
        stuck = sorted(
            (f"{kind.value}:{chain or '*'}" for (kind, chain), count in remaining.items() if count > 0)
        )
        raise PlanError(PlanErrorKind.CYCLIC_DEPENDENCY, f"steps never become ready: {stuck}")

    return ordered


def plan(config: WarpRouteConfig) -> DeploymentPlan:
    """
    Build the deployment plan for a decoded configuration.

    Args:
        config: Validated WarpRouteConfig

    Returns:
        Immutable, topologically ordered DeploymentPlan

    Raises:
        PlanError: NO_CHAINS_DECLARED or CYCLIC_DEPENDENCY
    """
    if not config.chains:
        raise PlanError(PlanErrorKind.NO_CHAINS_DECLARED, "the route declares no chains")

    dependencies: dict[StepKey, tuple[StepKey, ...]] = {}
    terminal_deps: list[StepKey] = []

    for chain in config.chain_ids:
        core_deps: tuple[StepKey, ...] = ()
        if not config.has_existing_core(chain):
            core_key = (StepKind.DEPLOY_CORE, chain)
            dependencies[core_key] = ()
            core_deps = (core_key,)

        warp_key = (StepKind.DEPLOY_WARP_ROUTE, chain)
        dependencies[warp_key] = core_deps
        terminal_deps.append(warp_key)

        if chain in config.core_overrides:
            override_key = (StepKind.APPLY_CORE_OVERRIDE, chain)
            dependencies[override_key] = core_deps
            terminal_deps.append(override_key)

    dependencies[(StepKind.VALIDATE, None)] = tuple(terminal_deps)

    ordered = order_steps(dependencies)
    index_of = {key: i for i, key in enumerate(ordered)}
    steps = tuple(
        Step(
            index=i,
            kind=key[0],
            chain=key[1],
            depends_on=frozenset(index_of[dep] for dep in dependencies[key]),
        )
        for i, key in enumerate(ordered)
    )

    fingerprint = config_fingerprint(config)
    plan_id = hash_canonical({
        "fingerprint": fingerprint,
        "steps": [s.to_dict() for s in steps],
    })

    logger.info(
        f"Planned {len(steps)} step(s) across {len(config.chains)} chain(s)",
        extra={"metadata": {"plan_id": plan_id, "fingerprint": fingerprint}},
    )
    return DeploymentPlan(plan_id=plan_id, fingerprint=fingerprint, steps=steps)
