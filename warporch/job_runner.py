"""JobRunner - entry point for warp-route deployment jobs.

This module ties the pipeline together for one job:
1. Decodes the configuration (warporch.codec)
2. Derives the deployment plan (warporch.planner)
3. Claims the configuration fingerprint in the in-flight registry
4. Executes the plan (warporch.executor)
5. Builds the single JobResult and hands it to the Result Reporter

Configuration and planning errors never reach a gateway: they become a
failed JobResult immediately.

Usage:
    from warporch.job_runner import JobRunner

    runner = JobRunner(gateways, reporter=InMemoryReporter())
    result = runner.run("job-1", JobRequest(config_bytes=raw))

    # Or the function form
    result = operate_warp_route("job-1", raw, gateways=gateways)
"""

import logging
import threading
from typing import Any, Optional

from warporch import codec
from warporch.config import WarporchConfig
from warporch.errors import ConfigError, PlanError, StepError, TransportError
from warporch.executor import HaltSignal, PhaseExecutor, build_result
from warporch.fingerprint import config_fingerprint
from warporch.gateways import GatewayRegistry
from warporch.job_registry import AlreadyInFlightError, InFlightRegistry
from warporch.planner import plan as build_plan
from warporch.reporter import ResultReporter, deliver_result
from warporch.schemas import JobRequest, JobResult, JobStatus

logger = logging.getLogger(__name__)


def _failed_result(
    job_id: str,
    error: dict[str, Any],
    fingerprint: Optional[str] = None,
    plan_id: Optional[str] = None,
) -> JobResult:
    return JobResult(
        job_id=job_id,
        status=JobStatus.FAILED,
        error=error,
        fingerprint=fingerprint,
        plan_id=plan_id,
    )


class JobRunner:
    """
    Runs jobs against a fixed set of chain gateways.

    One runner serves any number of concurrent jobs; each job gets its own
    ExecutionState, and the in-flight registry keeps two jobs from deploying
    the same configuration at once.
    """

    def __init__(
        self,
        gateways: GatewayRegistry,
        reporter: Optional[ResultReporter] = None,
        settings: Optional[WarporchConfig] = None,
        registry: Optional[InFlightRegistry] = None,
    ):
        self.gateways = gateways
        self.reporter = reporter
        self.settings = settings or WarporchConfig()
        self.registry = registry or InFlightRegistry()
        self._executor = PhaseExecutor(gateways, self.settings)
        self._signals_lock = threading.Lock()
        self._signals: dict[str, HaltSignal] = {}

    def run(self, job_id: str, request: JobRequest, signal: Optional[HaltSignal] = None) -> JobResult:
        """
        Run a job to completion and report its result.

        Args:
            job_id: Dispatcher-assigned job identifier
            request: Job parameters
            signal: HaltSignal to cancel the job from another thread

        Returns:
            The JobResult that was (or was attempted to be) reported
        """
        logger.info(
            f"Starting job: {job_id} (advanced={request.advanced_mode})",
            extra={"job_id": job_id, "event": "job.started"},
        )
        signal = signal or HaltSignal()
        with self._signals_lock:
            self._signals[job_id] = signal
        try:
            result = self._execute(job_id, request, signal)
        finally:
            with self._signals_lock:
                if self._signals.get(job_id) is signal:
                    del self._signals[job_id]

        log = logger.info if result.succeeded else logger.warning
        log(
            f"Job {job_id} {result.status.value}",
            extra={"job_id": job_id, "event": "job.completed", "metadata": result.error},
        )

        if self.reporter is not None:
            try:
                deliver_result(self.reporter, result, self.settings)
            except TransportError as e:
                logger.error(
                    f"Result for job {job_id} could not be delivered: {e}",
                    extra={"job_id": job_id, "event": "job.result_undelivered"},
                )
        return result

    def cancel(self, job_id: str) -> bool:
        """
        Cancel a running job.

        A job can be cancelled from the moment ``run`` is entered, including
        while its configuration is still being decoded and planned.

        Returns:
            True if the job was found and had not already been halted
        """
        with self._signals_lock:
            signal = self._signals.get(job_id)
        if signal is None:
            logger.info(f"Cancel ignored: job {job_id} is not running", extra={"job_id": job_id})
            return False
        cancelled = signal.cancel()
        if cancelled:
            logger.info(f"Cancelling job {job_id}", extra={"job_id": job_id, "event": "job.cancelled"})
        return cancelled

    def _execute(self, job_id: str, request: JobRequest, signal: HaltSignal) -> JobResult:
        try:
            config = codec.decode(
                request.config_bytes,
                advanced_mode=request.advanced_mode,
                existing_core_config_bytes=request.existing_core_config_bytes,
            )
        except ConfigError as e:
            logger.warning(f"Rejected configuration: {e}", extra={"job_id": job_id})
            return _failed_result(job_id, {"kind": e.kind.value, "message": str(e)})

        fingerprint = config_fingerprint(config)
        try:
            plan = build_plan(config)
        except PlanError as e:
            logger.warning(f"Planning failed: {e}", extra={"job_id": job_id})
            return _failed_result(job_id, {"kind": e.kind.value, "message": str(e)}, fingerprint)

        try:
            with self.registry.hold(fingerprint, job_id):
                state = self._executor.execute(job_id, config, plan, signal)
        except AlreadyInFlightError as e:
            logger.warning(str(e), extra={"job_id": job_id})
            return _failed_result(
                job_id, {"kind": e.kind, "message": str(e)}, fingerprint, plan.plan_id
            )
        except StepError as e:
            logger.error(f"Job {job_id} could not start: {e}", extra={"job_id": job_id})
            return _failed_result(
                job_id, {"kind": e.kind.value, "message": str(e)}, fingerprint, plan.plan_id
            )

        return build_result(state, config, plan)


def operate_warp_route(
    job_id: str,
    config_bytes: bytes,
    advanced_mode: bool = False,
    existing_core_config_bytes: Optional[bytes] = None,
    *,
    gateways: GatewayRegistry,
    reporter: Optional[ResultReporter] = None,
    settings: Optional[WarporchConfig] = None,
    signal: Optional[HaltSignal] = None,
) -> JobResult:
    """Run one warp-route job with a throwaway JobRunner."""
    runner = JobRunner(gateways, reporter=reporter, settings=settings)
    request = JobRequest(
        config_bytes=config_bytes,
        advanced_mode=advanced_mode,
        existing_core_config_bytes=existing_core_config_bytes,
    )
    return runner.run(job_id, request, signal)
