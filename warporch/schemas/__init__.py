"""
warporch.schemas - Data structures for the orchestration core.

JobRequest -> WarpRouteConfig -> DeploymentPlan -> ExecutionState -> JobResult

Lifecycle:
1. JobRequest: Immutable job invocation (config bytes, advanced flag, existing core bytes)
2. WarpRouteConfig: Decoded and validated configuration (warporch.codec)
3. DeploymentPlan: Topologically ordered step arena (warporch.planner)
4. ExecutionState: Mutable per-job record, owned by the Phase Executor
5. JobResult: Final immutable outcome handed to the Result Reporter
"""

from .warp_route import (
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
from .plan import (
    DeploymentPlan,
    Step,
    StepKind,
)
from .execution import (
    ExecutionState,
    JobStatus,
    PairResult,
    StepOutcome,
    StepStatus,
    ValidationReport,
)
from .job import (
    JobRequest,
    JobResult,
)

__all__ = [
    # Warp route configuration
    "CORE_SCHEMA_VERSION",
    "ROUTE_SCHEMA_VERSION",
    "TRUSTED_RELAYER_ISM",
    "ChainConfig",
    "CoreConfig",
    "CoreOverride",
    "GasConfig",
    "HookConfig",
    "IsmConfig",
    "RequiredHookConfig",
    "TokenType",
    "WarpRouteConfig",
    # Plan
    "DeploymentPlan",
    "Step",
    "StepKind",
    # Execution
    "ExecutionState",
    "JobStatus",
    "PairResult",
    "StepOutcome",
    "StepStatus",
    "ValidationReport",
    # Job
    "JobRequest",
    "JobResult",
]
