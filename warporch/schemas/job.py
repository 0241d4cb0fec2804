"""
Job schemas - the unit of work received from and reported to the network.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from .execution import JobStatus, StepOutcome, ValidationReport


@dataclass(frozen=True)
class JobRequest:
    """
    A job invocation as delivered by the dispatch layer.

    Attributes:
        config_bytes: Serialized warp-route configuration
        advanced_mode: Permit the full field set (custom ISMs, gas, core overrides)
        existing_core_config_bytes: Serialized core deployments to reuse, if any
    """
    config_bytes: bytes
    advanced_mode: bool = False
    existing_core_config_bytes: Optional[bytes] = None


@dataclass(frozen=True)
class JobResult:
    """
    The single, final outcome of a job.

    Attributes:
        job_id: Dispatcher-assigned job identifier
        status: succeeded, failed or partially_failed
        deployed_addresses: chain -> {"mailbox": ..., "warp_route": ...}
        validation_report: Present only if the validate step ran
        step_outcomes: Terminal outcome of every step, in plan order
        error: {"kind", "message", "step_id"?, "chain"?} when not succeeded
        fingerprint: Configuration fingerprint (absent if decoding failed)
        plan_id: Plan identifier (absent if planning failed)
    """
    job_id: str
    status: JobStatus
    deployed_addresses: dict[str, dict[str, str]] = field(default_factory=dict)
    validation_report: Optional[ValidationReport] = None
    step_outcomes: tuple[StepOutcome, ...] = ()
    error: Optional[dict[str, Any]] = None
    fingerprint: Optional[str] = None
    plan_id: Optional[str] = None

    def __post_init__(self):
        if not self.status.terminal:
            raise ValueError(f"JobResult status must be terminal, got {self.status.value}")

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the reported payload."""
        result: dict[str, Any] = {
            "job_id": self.job_id,
            "status": self.status.value,
            "deployed_addresses": self.deployed_addresses,
            "step_outcomes": [o.to_dict() for o in self.step_outcomes],
        }
        if self.validation_report is not None:
            result["validation_report"] = self.validation_report.to_dict()
        if self.error is not None:
            result["error"] = self.error
        if self.fingerprint is not None:
            result["fingerprint"] = self.fingerprint
        if self.plan_id is not None:
            result["plan_id"] = self.plan_id
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)
