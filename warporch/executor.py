"""
Phase Executor - runs a DeploymentPlan against the chain gateways.

The executor implements:
- Per-chain lanes: every chain's steps run in plan order on their own worker,
  so chains progress independently while one chain never sees two of our
  transactions at once
- Dependency gating through per-step futures: a step starts only once every
  dependency has succeeded; otherwise it is skipped
- Idempotent deployment: deploy steps look up their deployment fingerprint
  before deploying and reuse what they find
- Bounded retry with exponential backoff and a per-attempt timeout; a
  timed-out attempt is settled before the chain sees anything else
- Cancellation and fatal-error abort via HaltSignal: scheduling stops,
  in-flight attempts still resolve to recorded outcomes
- A terminal validate step, run after all lanes have joined

Execution flow:
1. Create the ExecutionState (pending -> running)
2. Start one lane per chain; each lane resolves its steps' futures
3. Record outcomes into the state in plan order (coordinator thread only)
4. Run the validate step if all of its dependencies succeeded
5. Finish the state with succeeded, partially_failed or failed

Error classification at the gateway boundary:
- TransientError / timeout   -> retried until max_attempts; a timed-out attempt
                               still unresolved after confirmation_timeout_s is not
- PermanentError / revert    -> step failed, dependents skipped, other chains continue
- anything else              -> invalid gateway response, job aborted
"""

import concurrent.futures
import logging
import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Optional

from warporch.config import WarporchConfig
from warporch.errors import (
    PermanentError,
    StepError,
    StepErrorKind,
    TransientError,
)
from warporch.fingerprint import deployment_fingerprint, route_fingerprint
from warporch.gateways import (
    CORE_CONTRACT,
    RECEIPT_SUCCESS,
    WARP_ROUTE_CONTRACT,
    ChainGateway,
    GatewayRegistry,
)
from warporch.schemas import (
    TRUSTED_RELAYER_ISM,
    DeploymentPlan,
    ExecutionState,
    JobResult,
    JobStatus,
    Step,
    StepKind,
    StepOutcome,
    StepStatus,
    ValidationReport,
    WarpRouteConfig,
)
from warporch.utils import utcnow
from warporch.validator import resolve_mailbox, validate

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")

CANCELLED = "Cancelled"
DEPENDENCY_FAILED = "DependencyFailed"
ABORTED = "Aborted"


class HaltSignal:
    """
    Stops a job from scheduling further steps.

    Set at most once: by the dispatcher through ``cancel()`` or by the
    executor through ``abort()`` when a step hits a fatal error. The first
    caller wins.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._cancelled = False
        self._aborted_by: Optional[str] = None

    def cancel(self) -> bool:
        """Request cancellation. Returns False if the job was already halted."""
        with self._lock:
            if self._event.is_set():
                return False
            self._cancelled = True
            self._event.set()
            return True

    def abort(self, step_id: str) -> bool:
        with self._lock:
            if self._event.is_set():
                return False
            self._aborted_by = step_id
            self._event.set()
            return True

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; return True early if halted."""
        return self._event.wait(timeout)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def aborted_by(self) -> Optional[str]:
        return self._aborted_by

    def reason(self) -> dict[str, str]:
        if self._cancelled:
            return {"kind": CANCELLED, "message": "job cancelled by dispatcher"}
        return {"kind": ABORTED, "message": f"job aborted after fatal error in {self._aborted_by}"}


def _start_attempt(fn: Callable[[], Any], name: str) -> Future:
    """
    Run ``fn`` on a daemon thread and return the Future of its result.

    On-chain work cannot be recalled, so a caller that stops waiting must
    still settle the Future before sending anything else to the chain.
    """
    future: Future = Future()

    def target() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn())
        except BaseException as e:
            future.set_exception(e)

    threading.Thread(target=target, name=name, daemon=True).start()
    return future


class UnresolvedAttemptError(StepError):
    """A timed-out attempt that was still running when the settle window closed."""

    def __init__(self, message: str):
        super().__init__(StepErrorKind.TIMEOUT, message)


def _checked_address(value: Any, what: str) -> str:
    if not isinstance(value, str) or not ADDRESS_PATTERN.match(value):
        raise StepError(
            StepErrorKind.INVALID_GATEWAY_RESPONSE,
            f"{what} returned {value!r}, not an address",
        )
    return value.lower()


def core_params(config: WarpRouteConfig, chain: str) -> dict[str, Any]:
    """Deployment parameters for a fresh core on ``chain``."""
    chain_config = config.chains[chain]
    ism = chain_config.interchain_security_module
    if ism is not None:
        default_ism = ism.to_dict()
    else:
        # `core init` without --advanced: the owner is the trusted relayer
        default_ism = {"type": TRUSTED_RELAYER_ISM, "relayer": chain_config.owner}
    params: dict[str, Any] = {"owner": chain_config.owner, "defaultIsm": default_ism}
    if chain_config.gas is not None:
        params["gas"] = chain_config.gas.to_dict()
    return params


def warp_route_params(config: WarpRouteConfig, chain: str, mailbox: str) -> dict[str, Any]:
    """Deployment parameters for the warp-route router on ``chain``."""
    remotes = sorted(
        {b if a == chain else a for a, b in config.routes if chain in (a, b)}
    )
    return {
        "routeId": route_fingerprint(config),
        "mailbox": mailbox,
        "config": config.chains[chain].to_dict(),
        "remotes": remotes,
    }


class _JobContext:
    """Everything a lane needs for one job. Read-only apart from the futures."""

    def __init__(
        self,
        job_id: str,
        config: WarpRouteConfig,
        plan: DeploymentPlan,
        signal: HaltSignal,
    ):
        self.job_id = job_id
        self.config = config
        self.plan = plan
        self.signal = signal
        self.futures: dict[int, Future] = {
            step.index: Future() for step in plan.steps if step.kind != StepKind.VALIDATE
        }


class PhaseExecutor:
    """
    Execution engine for DeploymentPlans.

    Usage:
        executor = PhaseExecutor(gateways=GatewayRegistry.create_simulated(chains))
        state = executor.execute("job-1", config, plan)
        result = build_result(state, config, plan)

    One executor may serve many jobs; all per-job data lives in the
    ExecutionState and the job's context.
    """

    def __init__(self, gateways: GatewayRegistry, settings: Optional[WarporchConfig] = None):
        """
        Initialize the executor.

        Args:
            gateways: Gateway for every chain a plan may touch
            settings: Retry and timeout settings (defaults if omitted)
        """
        self._gateways = gateways
        self._settings = settings or WarporchConfig()

    def execute(
        self,
        job_id: str,
        config: WarpRouteConfig,
        plan: DeploymentPlan,
        signal: Optional[HaltSignal] = None,
    ) -> ExecutionState:
        """
        Execute a plan to a terminal ExecutionState.

        Args:
            job_id: Dispatcher-assigned job identifier
            config: The decoded configuration the plan was built from
            plan: The plan to execute
            signal: HaltSignal the dispatcher can use to cancel the job

        Returns:
            ExecutionState in a terminal status

        Raises:
            StepError: INVARIANT_VIOLATION if a chain has no gateway (nothing is executed)
        """
        missing = self._gateways.missing(plan.chains)
        if missing:
            raise StepError(
                StepErrorKind.INVARIANT_VIOLATION,
                f"no gateway registered for chain(s) {missing}",
            )

        signal = signal or HaltSignal()
        ctx = _JobContext(job_id, config, plan, signal)
        state = ExecutionState(job_id=job_id, plan_id=plan.plan_id)
        state.start()

        lanes: dict[str, list[Step]] = {}
        for step in plan.steps:
            if step.chain is not None:
                lanes.setdefault(step.chain, []).append(step)

        logger.info(
            f"Executing plan with {len(plan.steps)} step(s) on {len(lanes)} chain(s)",
            extra={"job_id": job_id, "metadata": {"plan_id": plan.plan_id}},
        )

        with ThreadPoolExecutor(
            max_workers=max(1, len(lanes)),
            thread_name_prefix=f"warporch-{job_id}",
        ) as pool:
            lane_futures = [
                pool.submit(self._run_lane, ctx, lanes[chain]) for chain in sorted(lanes)
            ]
            for step in plan.steps:
                if step.kind == StepKind.VALIDATE:
                    outcome = self._run_validate(ctx, step, state)
                else:
                    outcome = ctx.futures[step.index].result()
                state.record(outcome)
            for lane_future in lane_futures:
                lane_future.result()

        state.cancelled = signal.cancelled
        state.aborted_by = signal.aborted_by
        state.finish(self._final_status(state, signal))

        logger.info(
            f"Job finished: {state.status.value}",
            extra={
                "job_id": job_id,
                "metadata": {
                    "succeeded": len(state.get_succeeded_steps()),
                    "failed": len(state.get_failed_steps()),
                    "steps": len(state.completed_steps),
                },
            },
        )
        return state

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _run_lane(self, ctx: _JobContext, lane: list[Step]) -> None:
        """Resolve the future of every step on one chain, in plan order."""
        for step in lane:
            future = ctx.futures[step.index]
            try:
                outcome = self._run_step_when_ready(ctx, step)
            except Exception as e:
                logger.error(
                    f"Unexpected error running {step.step_id}: {e}",
                    exc_info=True,
                    extra={"job_id": ctx.job_id, "step_id": step.step_id, "chain": step.chain},
                )
                ctx.signal.abort(step.step_id)
                now = utcnow()
                outcome = StepOutcome(
                    step_id=step.step_id,
                    kind=step.kind,
                    chain=step.chain,
                    status=StepStatus.FAILED,
                    last_error={
                        "kind": StepErrorKind.INVARIANT_VIOLATION.value,
                        "message": f"{type(e).__name__}: {e}",
                    },
                    started_at=now,
                    completed_at=now,
                )
            future.set_result(outcome)

    def _dependency_outcomes(self, ctx: _JobContext, step: Step) -> dict[StepKind, StepOutcome]:
        return {
            ctx.plan.steps[i].kind: ctx.futures[i].result() for i in sorted(step.depends_on)
        }

    def _blocked_reason(
        self, ctx: _JobContext, step: Step, deps: list[StepOutcome]
    ) -> Optional[dict[str, str]]:
        """Why ``step`` may not start, or None if it may."""
        for dep in deps:
            if dep.status != StepStatus.SUCCEEDED:
                return {
                    "kind": DEPENDENCY_FAILED,
                    "message": f"dependency {dep.step_id} {dep.status.value}",
                }
        if ctx.signal.is_set():
            return ctx.signal.reason()
        return None

    def _skipped(self, ctx: _JobContext, step: Step, reason: dict[str, str]) -> StepOutcome:
        logger.info(
            f"Skipping {step.step_id}: {reason['message']}",
            extra={"job_id": ctx.job_id, "step_id": step.step_id, "chain": step.chain},
        )
        return StepOutcome(
            step_id=step.step_id,
            kind=step.kind,
            chain=step.chain,
            status=StepStatus.SKIPPED,
            last_error=reason,
        )

    def _run_step_when_ready(self, ctx: _JobContext, step: Step) -> StepOutcome:
        deps = self._dependency_outcomes(ctx, step)
        reason = self._blocked_reason(ctx, step, list(deps.values()))
        if reason is not None:
            return self._skipped(ctx, step, reason)

        gateway = self._gateways.get(step.chain)
        if step.kind == StepKind.DEPLOY_CORE:
            attempt = lambda: self._deploy_core(ctx, step, gateway)  # noqa: E731
        elif step.kind == StepKind.DEPLOY_WARP_ROUTE:
            attempt = lambda: self._deploy_warp_route(ctx, step, gateway, deps)  # noqa: E731
        elif step.kind == StepKind.APPLY_CORE_OVERRIDE:
            attempt = lambda: self._apply_core_override(ctx, step, gateway, deps)  # noqa: E731
        else:
            raise StepError(
                StepErrorKind.INVARIANT_VIOLATION,
                f"step kind {step.kind.value} cannot run on a chain lane",
                step.step_id,
            )
        return self._run_with_retry(ctx, step, attempt)

    # ------------------------------------------------------------------
    # Retry
    # ------------------------------------------------------------------

    def _run_with_retry(
        self,
        ctx: _JobContext,
        step: Step,
        attempt_fn: Callable[[], tuple[dict[str, Any], bool]],
    ) -> StepOutcome:
        """
        Run ``attempt_fn`` until it succeeds, fails for good or the budget is spent.

        ``attempt_fn`` returns (result, reused) and raises StepError on failure.
        """
        settings = self._settings
        started_at = utcnow()
        log_extra = {"job_id": ctx.job_id, "step_id": step.step_id, "chain": step.chain}
        attempts = 0

        while True:
            attempts += 1
            pending = _start_attempt(
                lambda: self._classified(attempt_fn),
                name=f"warporch-{ctx.job_id}-{step.step_id}-{attempts}",
            )
            try:
                result, reused = self._settle(ctx, step, pending, attempts)
            except UnresolvedAttemptError as e:
                logger.error(
                    f"{step.step_id} not retried: {e}",
                    extra={**log_extra, "attempt": attempts},
                )
                return self._failed(step, attempts, e.to_dict(), started_at)
            except StepError as e:
                error = e.to_dict()
                if e.kind.fatal:
                    ctx.signal.abort(step.step_id)
                    logger.error(
                        f"Fatal error in {step.step_id}: {e}; aborting job",
                        extra={**log_extra, "attempt": attempts},
                    )
                    return self._failed(step, attempts, error, started_at)
                if not e.kind.retryable:
                    logger.warning(
                        f"{step.step_id} failed permanently: {e}",
                        extra={**log_extra, "attempt": attempts},
                    )
                    return self._failed(step, attempts, error, started_at)
                if attempts >= settings.max_attempts:
                    logger.warning(
                        f"{step.step_id} failed after {attempts} attempt(s): {e}",
                        extra={**log_extra, "attempt": attempts},
                    )
                    return self._failed(step, attempts, error, started_at)

                delay = settings.backoff_delay(attempts)
                logger.warning(
                    f"Attempt {attempts}/{settings.max_attempts} of {step.step_id} failed: {e}. "
                    f"Retrying in {delay}s...",
                    extra={**log_extra, "attempt": attempts},
                )
                if ctx.signal.wait(delay):
                    halted = ctx.signal.reason()
                    error = {**halted, "message": f"{halted['message']}; last error: {e}"}
                    return self._failed(step, attempts, error, started_at)
                continue

            logger.info(
                f"{step.step_id} succeeded" + (" (reused existing deployment)" if reused else ""),
                extra={**log_extra, "attempt": attempts},
            )
            return StepOutcome(
                step_id=step.step_id,
                kind=step.kind,
                chain=step.chain,
                status=StepStatus.SUCCEEDED,
                result=result,
                attempts=attempts,
                reused=reused,
                started_at=started_at,
                completed_at=utcnow(),
            )

    def _settle(self, ctx: _JobContext, step: Step, pending: Future, attempt: int) -> Any:
        """
        Wait for an attempt, settling it fully if it overruns ``step_timeout_s``.

        A timed-out attempt may still deploy or send, so nothing else runs on
        the chain until it resolves or ``confirmation_timeout_s`` passes. A
        late success is returned as the attempt's result; a late failure is
        raised as usual.

        Raises:
            StepError: The attempt failed
            UnresolvedAttemptError: The attempt was still running at the end
        """
        settings = self._settings
        try:
            return pending.result(timeout=settings.step_timeout_s)
        except concurrent.futures.TimeoutError:
            pass

        logger.warning(
            f"Attempt {attempt} of {step.step_id} exceeded {settings.step_timeout_s}s; "
            f"waiting up to {settings.confirmation_timeout_s}s for it to resolve",
            extra={"job_id": ctx.job_id, "step_id": step.step_id, "chain": step.chain, "attempt": attempt},
        )
        try:
            return pending.result(timeout=settings.confirmation_timeout_s)
        except concurrent.futures.TimeoutError:
            raise UnresolvedAttemptError(
                f"attempt exceeded {settings.step_timeout_s}s and was still unresolved "
                f"after a further {settings.confirmation_timeout_s}s"
            )

    @staticmethod
    def _classified(attempt_fn: Callable[[], Any]) -> Any:
        """Map gateway exceptions onto StepError kinds."""
        try:
            return attempt_fn()
        except StepError:
            raise
        except TransientError as e:
            raise StepError(StepErrorKind.TRANSIENT, str(e))
        except PermanentError as e:
            raise StepError(StepErrorKind.PERMANENT, str(e))
        except TimeoutError as e:
            raise StepError(StepErrorKind.TIMEOUT, str(e) or "gateway call timed out")
        except Exception as e:
            raise StepError(StepErrorKind.INVALID_GATEWAY_RESPONSE, f"{type(e).__name__}: {e}")

    @staticmethod
    def _failed(
        step: Step, attempts: int, error: dict[str, Any], started_at: datetime
    ) -> StepOutcome:
        return StepOutcome(
            step_id=step.step_id,
            kind=step.kind,
            chain=step.chain,
            status=StepStatus.FAILED,
            attempts=attempts,
            last_error=error,
            started_at=started_at,
            completed_at=utcnow(),
        )

    # ------------------------------------------------------------------
    # Step bodies (run inside a timed attempt)
    # ------------------------------------------------------------------

    def _deploy(
        self,
        ctx: _JobContext,
        step: Step,
        gateway: ChainGateway,
        contract: str,
        params: dict[str, Any],
    ) -> tuple[dict[str, Any], bool]:
        fingerprint = deployment_fingerprint(step.kind, step.chain, params)
        existing = gateway.find_deployment(fingerprint)
        if existing is not None:
            address = _checked_address(existing, "find_deployment")
            return {"address": address, "fingerprint": fingerprint}, True

        logger.info(
            f"Deploying {contract} on {step.chain}",
            extra={"job_id": ctx.job_id, "step_id": step.step_id, "chain": step.chain},
        )
        address = _checked_address(
            gateway.deploy_contract(contract, params, fingerprint), "deploy_contract"
        )
        return {"address": address, "fingerprint": fingerprint}, False

    def _deploy_core(
        self, ctx: _JobContext, step: Step, gateway: ChainGateway
    ) -> tuple[dict[str, Any], bool]:
        return self._deploy(ctx, step, gateway, CORE_CONTRACT, core_params(ctx.config, step.chain))

    def _mailbox(self, ctx: _JobContext, step: Step, deps: dict[StepKind, StepOutcome]) -> str:
        if ctx.config.has_existing_core(step.chain):
            return ctx.config.existing_core[step.chain].mailbox
        core = deps.get(StepKind.DEPLOY_CORE)
        if core is None or core.address is None:
            raise StepError(
                StepErrorKind.INVARIANT_VIOLATION,
                f"{step.step_id} has neither an existing nor a deployed core",
                step.step_id,
            )
        return core.address

    def _deploy_warp_route(
        self,
        ctx: _JobContext,
        step: Step,
        gateway: ChainGateway,
        deps: dict[StepKind, StepOutcome],
    ) -> tuple[dict[str, Any], bool]:
        mailbox = self._mailbox(ctx, step, deps)
        params = warp_route_params(ctx.config, step.chain, mailbox)
        return self._deploy(ctx, step, gateway, WARP_ROUTE_CONTRACT, params)

    def _apply_core_override(
        self,
        ctx: _JobContext,
        step: Step,
        gateway: ChainGateway,
        deps: dict[StepKind, StepOutcome],
    ) -> tuple[dict[str, Any], bool]:
        mailbox = self._mailbox(ctx, step, deps)
        override = ctx.config.core_overrides[step.chain].to_dict()

        current = gateway.read_state(mailbox, {"query": "coreConfig"})
        if not isinstance(current, dict):
            raise StepError(
                StepErrorKind.INVALID_GATEWAY_RESPONSE,
                f"coreConfig read returned {type(current).__name__}, expected a mapping",
            )
        if all(current.get(key) == value for key, value in override.items()):
            return {"receipt": None, "in_sync": True}, False

        tx_hash = gateway.send_transaction(
            {"to": mailbox, "method": "applyCoreConfig", "args": override}
        )
        receipt = gateway.await_confirmation(tx_hash, self._settings.confirmation_timeout_s)
        if not isinstance(receipt, dict) or "status" not in receipt:
            raise StepError(
                StepErrorKind.INVALID_GATEWAY_RESPONSE,
                f"await_confirmation returned {receipt!r}",
            )
        if receipt["status"] != RECEIPT_SUCCESS:
            raise StepError(StepErrorKind.PERMANENT, f"transaction {tx_hash} reverted")
        return {"receipt": receipt}, False

    # ------------------------------------------------------------------
    # Validate (coordinator thread, after all lanes joined)
    # ------------------------------------------------------------------

    def _run_validate(self, ctx: _JobContext, step: Step, state: ExecutionState) -> StepOutcome:
        deps = [ctx.futures[i].result() for i in sorted(step.depends_on)]
        reason = self._blocked_reason(ctx, step, deps)
        if reason is not None:
            return self._skipped(ctx, step, reason)

        reports: list[ValidationReport] = []

        def attempt() -> tuple[dict[str, Any], bool]:
            report = validate(state, ctx.config, self._gateways)
            reports.append(report)
            return {"report": report.to_dict()}, False

        outcome = self._run_with_retry(ctx, step, attempt)
        if outcome.status != StepStatus.SUCCEEDED:
            return outcome

        report = reports[-1]
        state.validation_report = report
        if report.fully_validated:
            return outcome
        return StepOutcome(
            step_id=step.step_id,
            kind=step.kind,
            chain=step.chain,
            status=StepStatus.FAILED,
            result=outcome.result,
            attempts=outcome.attempts,
            last_error={
                "kind": StepErrorKind.VALIDATION_FAILED.value,
                "message": f"{len(report.failed_pairs())} chain pair(s) failed validation",
            },
            started_at=outcome.started_at,
            completed_at=outcome.completed_at,
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @staticmethod
    def _final_status(state: ExecutionState, signal: HaltSignal) -> JobStatus:
        if signal.is_set():
            return JobStatus.FAILED
        statuses = [o.status for o in state.completed_steps]
        if all(s == StepStatus.SUCCEEDED for s in statuses):
            return JobStatus.SUCCEEDED
        if any(s == StepStatus.SUCCEEDED for s in statuses):
            return JobStatus.PARTIALLY_FAILED
        return JobStatus.FAILED


def build_result(state: ExecutionState, config: WarpRouteConfig, plan: DeploymentPlan) -> JobResult:
    """
    Terminate an ExecutionState into the job's single JobResult.

    Raises:
        ValueError: If the state is not terminal
    """
    if not state.status.terminal:
        raise ValueError(f"Cannot build a result from status {state.status.value}")

    deployed: dict[str, dict[str, str]] = {}
    for chain in plan.chains:
        entry: dict[str, str] = {}
        mailbox = resolve_mailbox(state, config, chain)
        router = state.deployed_address(chain, StepKind.DEPLOY_WARP_ROUTE)
        if mailbox is not None:
            entry["mailbox"] = mailbox
        if router is not None:
            entry["warp_route"] = router
        if entry:
            deployed[chain] = entry

    error: Optional[dict[str, Any]] = None
    if state.status != JobStatus.SUCCEEDED:
        failed = state.get_failed_steps()
        aborting = state.get_outcome(state.aborted_by) if state.aborted_by else None
        if state.cancelled:
            error = {"kind": CANCELLED, "message": "job cancelled by dispatcher"}
        elif aborting is not None:
            error = {**aborting.last_error, "step_id": aborting.step_id, "chain": aborting.chain}
        elif failed:
            first = failed[0]
            error = {**first.last_error, "step_id": first.step_id, "chain": first.chain}
        else:
            error = {"kind": "NothingSucceeded", "message": "no step succeeded"}
        error["failed_steps"] = [o.step_id for o in failed]

    return JobResult(
        job_id=state.job_id,
        status=state.status,
        deployed_addresses=deployed,
        validation_report=state.validation_report,
        step_outcomes=tuple(state.completed_steps),
        error=error,
        fingerprint=plan.fingerprint,
        plan_id=plan.plan_id,
    )
