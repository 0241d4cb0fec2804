"""
Execution schemas - step outcomes, validation reports and per-job state.

StepOutcome records the terminal result of one plan step.
ExecutionState is the mutable record the Phase Executor keeps for one job.
ValidationReport is what the validate step produces.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from .plan import StepKind


class StepStatus(str, Enum):
    """Terminal status of a step."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class JobStatus(str, Enum):
    """Status of a job's execution."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PARTIALLY_FAILED = "partially_failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.PARTIALLY_FAILED)


@dataclass(frozen=True)
class PairResult:
    """Validation result for one connected chain pair."""
    chains: tuple[str, str]
    ok: bool
    details: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"chains": list(self.chains), "ok": self.ok, "details": list(self.details)}


@dataclass(frozen=True)
class ValidationReport:
    """Per-pair liveness results. Fully validated only if every pair passes."""
    pairs: tuple[PairResult, ...] = ()

    @property
    def fully_validated(self) -> bool:
        return bool(self.pairs) and all(p.ok for p in self.pairs)

    def failed_pairs(self) -> tuple[PairResult, ...]:
        return tuple(p for p in self.pairs if not p.ok)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fully_validated": self.fully_validated,
            "pairs": [p.to_dict() for p in self.pairs],
        }


@dataclass(frozen=True)
class StepOutcome:
    """
    The outcome of executing a single plan step.

    Attributes:
        step_id: Identifier of the step ("<kind>:<chain>")
        kind: Step kind
        chain: Target chain (None for validate)
        status: succeeded, failed or skipped
        result: {"address": ...} for deployments, {"receipt": ...} for
                overrides, {"report": ...} for validation
        attempts: Number of attempts made (0 for skipped steps)
        last_error: {"kind", "message"} of the last failure, if any
        reused: True if an existing deployment was found and reused
        started_at: When the first attempt started
        completed_at: When the step reached its terminal status
    """
    step_id: str
    kind: StepKind
    chain: Optional[str]
    status: StepStatus
    result: Optional[dict[str, Any]] = None
    attempts: int = 0
    last_error: Optional[dict[str, Any]] = None
    reused: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        if self.status == StepStatus.SUCCEEDED:
            if self.result is None:
                raise ValueError("Succeeded steps must carry a result")
            if self.attempts < 1:
                raise ValueError("Succeeded steps must record at least one attempt")
        elif self.status == StepStatus.FAILED:
            if self.last_error is None:
                raise ValueError("Failed steps must carry last_error")
        # SKIPPED steps may carry a reason in last_error

    @property
    def address(self) -> Optional[str]:
        if self.result:
            return self.result.get("address")
        return None

    @property
    def duration_ms(self) -> Optional[int]:
        """Calculate execution duration in milliseconds if both timestamps present."""
        if self.started_at and self.completed_at:
            delta = self.completed_at - self.started_at
            return int(delta.total_seconds() * 1000)
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "step_id": self.step_id,
            "kind": self.kind.value,
            "chain": self.chain,
            "status": self.status.value,
            "attempts": self.attempts,
        }
        if self.result is not None:
            result["result"] = self.result
        if self.last_error is not None:
            result["last_error"] = self.last_error
        if self.reused:
            result["reused"] = True
        if self.started_at is not None:
            result["started_at"] = self.started_at.isoformat()
        if self.completed_at is not None:
            result["completed_at"] = self.completed_at.isoformat()
        return result


@dataclass
class ExecutionState:
    """
    Mutable per-job record owned by the Phase Executor.

    Only the executor's coordinating thread calls the mutators below.

    Attributes:
        job_id: Dispatcher-assigned job identifier
        plan_id: Plan being executed
        current_step_index: Index of the next step to be recorded
        completed_steps: Terminal outcomes in plan order
        status: Job status
        cancelled: Set when the dispatcher cancelled the job
        aborted_by: Step id whose fatal error aborted the job
        validation_report: Report produced by the validate step, if it ran
    """
    job_id: str
    plan_id: str
    current_step_index: int = 0
    completed_steps: list[StepOutcome] = field(default_factory=list)
    status: JobStatus = JobStatus.PENDING
    cancelled: bool = False
    aborted_by: Optional[str] = None
    validation_report: Optional[ValidationReport] = None

    def start(self) -> None:
        if self.status != JobStatus.PENDING:
            raise ValueError(f"Cannot start execution in status {self.status.value}")
        self.status = JobStatus.RUNNING

    def record(self, outcome: StepOutcome) -> None:
        if self.status != JobStatus.RUNNING:
            raise ValueError(f"Cannot record outcomes in status {self.status.value}")
        self.completed_steps.append(outcome)
        self.current_step_index += 1

    def finish(self, status: JobStatus) -> None:
        if not status.terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        if self.status != JobStatus.RUNNING:
            raise ValueError(f"Cannot finish execution in status {self.status.value}")
        self.status = status

    def get_outcome(self, step_id: str) -> Optional[StepOutcome]:
        """Get the outcome for a specific step."""
        for outcome in self.completed_steps:
            if outcome.step_id == step_id:
                return outcome
        return None

    def get_failed_steps(self) -> tuple[StepOutcome, ...]:
        return tuple(o for o in self.completed_steps if o.status == StepStatus.FAILED)

    def get_succeeded_steps(self) -> tuple[StepOutcome, ...]:
        return tuple(o for o in self.completed_steps if o.status == StepStatus.SUCCEEDED)

    def deployed_address(self, chain: str, kind: StepKind) -> Optional[str]:
        for outcome in self.completed_steps:
            if outcome.chain == chain and outcome.kind == kind and outcome.status == StepStatus.SUCCEEDED:
                return outcome.address
        return None
