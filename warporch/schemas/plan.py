"""
DeploymentPlan schema - the ordered step graph for one job.

Steps live in an arena (a tuple) and reference their dependencies by index,
so the graph never holds object cycles. Steps are stored in topological
order; ``Step.index`` is the position in that tuple.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class StepKind(str, Enum):
    """The four phases of a warp-route job."""
    DEPLOY_CORE = "deploy_core"
    DEPLOY_WARP_ROUTE = "deploy_warp_route"
    APPLY_CORE_OVERRIDE = "apply_core_override"
    VALIDATE = "validate"

    @property
    def rank(self) -> int:
        """Phase order, used to break ties within one chain."""
        return _RANKS[self]

    @property
    def deploys(self) -> bool:
        """Whether the step creates contracts (and so needs an idempotency lookup)."""
        return self in (StepKind.DEPLOY_CORE, StepKind.DEPLOY_WARP_ROUTE)


_RANKS = {
    StepKind.DEPLOY_CORE: 0,
    StepKind.DEPLOY_WARP_ROUTE: 1,
    StepKind.APPLY_CORE_OVERRIDE: 2,
    StepKind.VALIDATE: 3,
}


@dataclass(frozen=True)
class Step:
    """
    A single plan step.

    Attributes:
        index: Position in the plan's step arena
        kind: Which phase the step runs
        chain: Target chain id (None for the cross-chain validate step)
        depends_on: Indices of steps that must succeed first
    """
    index: int
    kind: StepKind
    chain: Optional[str]
    depends_on: frozenset[int] = field(default_factory=frozenset)

    @property
    def step_id(self) -> str:
        return f"{self.kind.value}:{self.chain or '*'}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "step_id": self.step_id,
            "kind": self.kind.value,
            "chain": self.chain,
            "depends_on": sorted(self.depends_on),
        }


@dataclass(frozen=True)
class DeploymentPlan:
    """
    An immutable, topologically ordered deployment plan.

    Attributes:
        plan_id: Deterministic hash over the configuration fingerprint and steps
        fingerprint: Configuration fingerprint the plan was derived from
        steps: Step arena in execution order
    """
    plan_id: str
    fingerprint: str
    steps: tuple[Step, ...]

    def __post_init__(self):
        for position, step in enumerate(self.steps):
            if step.index != position:
                raise ValueError(f"Step {step.step_id} has index {step.index}, expected {position}")
            for dep in step.depends_on:
                if dep >= position:
                    raise ValueError(
                        f"Step {step.step_id} depends on step {dep}, which does not precede it"
                    )

    def get_step(self, step_id: str) -> Optional[Step]:
        """Get a step by ID."""
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None

    def steps_for_chain(self, chain: str) -> tuple[Step, ...]:
        return tuple(s for s in self.steps if s.chain == chain)

    @property
    def chains(self) -> list[str]:
        return sorted({s.chain for s in self.steps if s.chain is not None})

    @property
    def validate_step(self) -> Optional[Step]:
        for step in self.steps:
            if step.kind == StepKind.VALIDATE:
                return step
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "fingerprint": self.fingerprint,
            "steps": [s.to_dict() for s in self.steps],
        }
