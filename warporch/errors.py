"""
Error classes for warporch execution.

These error types enable retry classification at execution boundaries:
- TransientError: Safe to retry (RPC timeouts, nonce contention, dropped connections)
- PermanentError: Do not retry (reverted transactions, insufficient funds, bad params)

Chain gateways raise these errors to signal retry behavior.
The executor catches at the boundary, maps them to StepError kinds,
and drives retry/backoff and outcome recording from there.

Error handling contract:
- Components raise; only the job entry point turns errors into JobResult.error
- Every error carries a machine-readable ``kind`` where callers branch on it
"""

from enum import Enum
from typing import Any, Optional


class WarporchError(Exception):
    """Base exception for warporch."""
    pass


class TransientError(WarporchError):
    """
    Transient gateway error - safe to retry.

    Examples:
    - RPC endpoint timeout
    - Nonce already used / replacement underpriced
    - Connection reset

    The executor retries steps that raise TransientError according to the
    configured retry policy.
    """
    pass


class PermanentError(WarporchError):
    """
    Permanent gateway error - do not retry.

    Examples:
    - Transaction reverted
    - Insufficient funds for deployment
    - Constructor arguments rejected

    The executor immediately fails the step without retry when
    PermanentError is raised. Independent chains keep going.
    """
    pass


class ConfigErrorKind(str, Enum):
    """Why a job configuration was rejected."""
    MALFORMED = "Malformed"
    SCHEMA_VERSION_UNSUPPORTED = "SchemaVersionUnsupported"
    INVALID_REFERENCE = "InvalidReference"
    POLICY_VIOLATION = "PolicyViolation"


class ConfigError(WarporchError):
    """Raised by the codec when configuration bytes cannot become a WarpRouteConfig."""

    def __init__(self, kind: ConfigErrorKind, message: str):
        self.kind = kind
        super().__init__(f"{kind.value}: {message}")


class PlanErrorKind(str, Enum):
    NO_CHAINS_DECLARED = "NoChainsDeclared"
    CYCLIC_DEPENDENCY = "CyclicDependency"


class PlanError(WarporchError):
    """Raised when a DeploymentPlan cannot be derived."""

    def __init__(self, kind: PlanErrorKind, message: str):
        self.kind = kind
        super().__init__(f"{kind.value}: {message}")


class StepErrorKind(str, Enum):
    """
    Step failure classification.

    TIMEOUT and TRANSIENT are retried. PERMANENT and VALIDATION_FAILED fail
    the step only. INVARIANT_VIOLATION and INVALID_GATEWAY_RESPONSE abort the job.
    """
    TIMEOUT = "Timeout"
    TRANSIENT = "Transient"
    PERMANENT = "Permanent"
    VALIDATION_FAILED = "ValidationFailed"
    INVARIANT_VIOLATION = "InvariantViolation"
    INVALID_GATEWAY_RESPONSE = "InvalidGatewayResponse"

    @property
    def retryable(self) -> bool:
        return self in (StepErrorKind.TIMEOUT, StepErrorKind.TRANSIENT)

    @property
    def fatal(self) -> bool:
        return self in (StepErrorKind.INVARIANT_VIOLATION, StepErrorKind.INVALID_GATEWAY_RESPONSE)


class StepError(WarporchError):
    """Raised when a single step attempt fails."""

    def __init__(self, kind: StepErrorKind, message: str, step_id: Optional[str] = None):
        self.kind = kind
        self.step_id = step_id
        super().__init__(f"{kind.value}: {message}")

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": str(self)}


class TransportError(WarporchError):
    """Raised by a ResultReporter when delivery fails. Recovered by redelivery."""
    pass


class SettingsError(WarporchError):
    """Operator settings validation error."""
    pass
