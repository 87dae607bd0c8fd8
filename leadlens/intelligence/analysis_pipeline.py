"""
Co-ordinates the multi-stage lead analysis (context → triage → preprocessor → analysis).

The run is an explicit state machine. Each transition names the step that
performs it, the state it leads to, and what a failure of that step means:
fatal transitions end the run in ``FAILED``, recoverable ones fall through
to their skip state. Stage outputs, cost records and timings are threaded
through an immutable :class:`RunState` rather than collected in shared
lists, and every run ends in a well-formed :class:`OrchestrationResult`.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Union

import structlog

from leadlens.clients.llm_client import OpenAIStructuredClient, StructuredLLM
from leadlens.core.config import Settings
from leadlens.core.exceptions import LeadLensError, StageError
from leadlens.core.logging import new_request_id
from leadlens.core.models import (
    STAGE_BUSINESS_CONTEXT,
    STAGE_PREPROCESSOR,
    STAGE_TRIAGE,
    BusinessRecord,
    PipelineState,
    ProfileRecord,
    Tier,
    Verdict,
)
from leadlens.intelligence.costs import CostRecord, CostSummary, aggregate_costs
from leadlens.intelligence.escalation import should_run_preprocessor
from leadlens.intelligence.llm_analysis_agent import AnalysisContext, LLMAnalysisAgent
from leadlens.intelligence.llm_business_context_agent import (
    BusinessContextResolver,
    BusinessContextStore,
    LLMBusinessContextAgent,
)
from leadlens.intelligence.llm_preprocessor_agent import LLMPreprocessorAgent
from leadlens.intelligence.llm_triage_agent import LLMTriageAgent
from leadlens.intelligence.snapshot import ProfileSnapshot, build_snapshot
from leadlens.intelligence.stage_models import AnalysisOutcome, PreprocessorOutcome, TriageOutcome
from leadlens.utils.reliability import StageTimer

logger = structlog.get_logger(__name__)


class FailureMode(str, Enum):
    FATAL = "fatal"
    RECOVERABLE = "recoverable"


@dataclass(frozen=True)
class Transition:
    """One edge of the orchestration state machine."""

    stage: str
    step: str
    on_success: PipelineState
    failure: FailureMode
    on_skip: Optional[PipelineState] = None
    timing_key: Optional[str] = None


_ANALYSIS = Transition("analysis", "_run_analysis", PipelineState.ANALYZED, FailureMode.FATAL, timing_key="analysis_ms")

TRANSITIONS: Dict[PipelineState, Transition] = {
    PipelineState.STARTED: Transition(
        STAGE_BUSINESS_CONTEXT,
        "_resolve_context",
        PipelineState.CONTEXT_RESOLVED,
        FailureMode.FATAL,
        timing_key="context_ms",
    ),
    PipelineState.CONTEXT_RESOLVED: Transition(
        STAGE_TRIAGE, "_run_triage", PipelineState.TRIAGED, FailureMode.FATAL, timing_key="triage_ms"
    ),
    PipelineState.TRIAGED: Transition(
        STAGE_PREPROCESSOR,
        "_run_preprocessor",
        PipelineState.PREPROCESSED,
        FailureMode.RECOVERABLE,
        on_skip=PipelineState.PREPROCESSOR_SKIPPED,
        timing_key="preprocessor_ms",
    ),
    PipelineState.PREPROCESSED: _ANALYSIS,
    PipelineState.PREPROCESSOR_SKIPPED: _ANALYSIS,
    PipelineState.ANALYZED: Transition(
        "aggregation", "_aggregate", PipelineState.AGGREGATED, FailureMode.FATAL
    ),
}


@dataclass(frozen=True)
class StageTimings:
    """Wall-clock milliseconds per stage plus the whole run."""

    context_ms: int = 0
    triage_ms: int = 0
    preprocessor_ms: int = 0
    analysis_ms: int = 0
    total_ms: int = 0

    def with_stage(self, key: str, elapsed_ms: int) -> "StageTimings":
        return replace(self, **{key: elapsed_ms})

    def to_dict(self) -> Dict[str, int]:
        return {
            "context_ms": self.context_ms,
            "triage_ms": self.triage_ms,
            "preprocessor_ms": self.preprocessor_ms,
            "analysis_ms": self.analysis_ms,
            "total_ms": self.total_ms,
        }


@dataclass(frozen=True)
class RunState:
    """Accumulator threaded through the state machine."""

    state: PipelineState
    business: BusinessRecord
    snapshot: Optional[ProfileSnapshot] = None
    triage: Optional[TriageOutcome] = None
    preprocessor: Optional[PreprocessorOutcome] = None
    analysis: Optional[AnalysisOutcome] = None
    costs: Tuple[CostRecord, ...] = ()
    total_cost: Optional[CostSummary] = None
    timings: StageTimings = field(default_factory=StageTimings)
    context_synthesized: bool = False
    failed_stage: Optional[str] = None
    error: Optional[str] = None

    def with_cost(self, record: CostRecord, **changes: Any) -> "RunState":
        return replace(self, costs=self.costs + (record,), **changes)


@dataclass(frozen=True)
class StepOutcome:
    run: RunState
    skipped: bool = False


@dataclass(frozen=True)
class OrchestrationResult:
    """Single accountable result of one analysis request."""

    request_id: str
    tier: str
    username: str
    verdict: Verdict
    result: Optional[AnalysisOutcome]
    total_cost: CostSummary
    performance: StageTimings
    final_state: PipelineState
    triage: Optional[TriageOutcome] = None
    preprocessor: Optional[PreprocessorOutcome] = None
    business_context_synthesized: bool = False
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    early_exit_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.verdict == Verdict.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to primitive dict for persistence and JSON output."""
        payload: Dict[str, Any] = {
            "request_id": self.request_id,
            "tier": self.tier,
            "username": self.username,
            "verdict": self.verdict.value,
            "result": self.result.to_dict() if self.result else None,
            "totalCost": self.total_cost.to_dict(),
            "performance": self.performance.to_dict(),
            "final_state": self.final_state.value,
            "triage": self.triage.to_dict() if self.triage else None,
            "preprocessor": self.preprocessor.to_dict() if self.preprocessor else None,
            "business_context_synthesized": self.business_context_synthesized,
        }
        if self.error:
            payload["error"] = self.error
            payload["failed_stage"] = self.failed_stage
        if self.early_exit_reason:
            payload["early_exit_reason"] = self.early_exit_reason
        return payload


@dataclass(frozen=True)
class _Request:
    request_id: str
    profile: ProfileRecord
    tier: Tier


class AnalysisOrchestrator:
    """Run the staged analysis for one profile and produce one verdict."""

    def __init__(
        self,
        settings: Settings,
        llm: Optional[StructuredLLM] = None,
        *,
        triage_agent: Optional[LLMTriageAgent] = None,
        preprocessor_agent: Optional[LLMPreprocessorAgent] = None,
        analysis_agent: Optional[LLMAnalysisAgent] = None,
        context_resolver: Optional[BusinessContextResolver] = None,
        context_store: Optional[BusinessContextStore] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        """Initialise the orchestrator with optional pre-configured stage agents."""
        self.settings = settings
        if llm is None and None in (triage_agent, preprocessor_agent, analysis_agent, context_resolver):
            llm = OpenAIStructuredClient(settings)
        self.triage_agent = triage_agent or LLMTriageAgent(llm, settings)
        self.preprocessor_agent = preprocessor_agent or LLMPreprocessorAgent(llm, settings)
        self.analysis_agent = analysis_agent or LLMAnalysisAgent(llm, settings)
        self.context_resolver = context_resolver or BusinessContextResolver(
            LLMBusinessContextAgent(llm, settings), store=context_store
        )
        self._clock = clock

    def run(
        self,
        profile: ProfileRecord,
        business: BusinessRecord,
        tier: Union[Tier, str],
        *,
        request_id: Optional[str] = None,
    ) -> OrchestrationResult:
        """
        Execute the staged workflow. Never raises.

        Args:
            profile: Normalized profile record of the lead.
            business: Business record; context fields are resolved if missing.
            tier: ``light``, ``deep`` or ``xray``.
            request_id: Correlation id for logs (generated when omitted).
        """
        request_id = request_id or new_request_id()
        started = self._clock()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                request = _Request(request_id=request_id, profile=profile, tier=Tier(tier))
            except ValueError:
                logger.error("analysis_orchestration_rejected", username=profile.username, tier=str(tier))
                run = RunState(
                    state=PipelineState.FAILED,
                    business=business,
                    failed_stage="request",
                    error=f"Unknown analysis tier: {tier!r}",
                )
                return self._build_result(request_id, str(tier), profile, run, started)

            logger.info(
                "analysis_orchestration_started",
                username=profile.username,
                tier=request.tier.value,
                business=business.display_name,
                has_one_liner=bool(business.business_one_liner),
            )

            run = RunState(state=PipelineState.STARTED, business=business)
            while not run.state.is_terminal:
                run = self._advance(request, run)

            result = self._build_result(request_id, request.tier.value, profile, run, started)
            self._log_outcome(result)
            return result

    # --------------------------------------------------------------------- #
    # State machine
    # --------------------------------------------------------------------- #

    def _advance(self, request: _Request, run: RunState) -> RunState:
        transition = TRANSITIONS[run.state]
        step = getattr(self, transition.step)
        timer = StageTimer(self._clock)
        try:
            with timer:
                outcome = step(request, run)
        except Exception as exc:  # noqa: BLE001
            run = self._record_timing(run, transition, timer.elapsed_ms)
            return self._on_failure(request, run, transition, exc)

        if outcome.skipped:
            return replace(outcome.run, state=transition.on_skip)
        run = self._record_timing(outcome.run, transition, timer.elapsed_ms)
        return replace(run, state=transition.on_success)

    def _on_failure(
        self, request: _Request, run: RunState, transition: Transition, exc: Exception
    ) -> RunState:
        message = exc.message if isinstance(exc, LeadLensError) else f"{transition.stage} failed: {exc}"

        if transition.failure is FailureMode.RECOVERABLE:
            logger.warning(
                f"{transition.stage}_failed",
                username=request.profile.username,
                error=message,
                continuing=True,
            )
            return replace(run, state=transition.on_skip)

        logger.error(
            f"{transition.stage}_failed",
            username=request.profile.username,
            error=message,
            error_type=type(exc).__name__,
        )
        failed_stage = exc.stage if isinstance(exc, StageError) else transition.stage
        return replace(run, state=PipelineState.FAILED, failed_stage=failed_stage, error=message)

    @staticmethod
    def _record_timing(run: RunState, transition: Transition, elapsed_ms: int) -> RunState:
        if transition.timing_key is None:
            return run
        return replace(run, timings=run.timings.with_stage(transition.timing_key, elapsed_ms))

    # --------------------------------------------------------------------- #
    # Steps
    # --------------------------------------------------------------------- #

    def _resolve_context(self, request: _Request, run: RunState) -> StepOutcome:
        resolved = self.context_resolver.resolve(run.business)
        return StepOutcome(
            replace(run, business=resolved.business, context_synthesized=resolved.synthesized)
        )

    def _run_triage(self, request: _Request, run: RunState) -> StepOutcome:
        snapshot = build_snapshot(request.profile)
        result = self.triage_agent.triage(snapshot, run.business.business_one_liner or "")
        return StepOutcome(run.with_cost(result.cost, snapshot=snapshot, triage=result.payload))

    def _run_preprocessor(self, request: _Request, run: RunState) -> StepOutcome:
        if not should_run_preprocessor(request.tier, run.triage):
            logger.info(
                "preprocessor_skipped",
                username=request.profile.username,
                tier=request.tier.value,
                data_richness=run.triage.data_richness,
            )
            return StepOutcome(run, skipped=True)

        result = self.preprocessor_agent.extract(request.profile)
        return StepOutcome(run.with_cost(result.cost, preprocessor=result.payload))

    def _run_analysis(self, request: _Request, run: RunState) -> StepOutcome:
        context = AnalysisContext(triage=run.triage, preprocessor=run.preprocessor)
        result = self.analysis_agent.analyze(request.profile, run.business, request.tier, context)
        return StepOutcome(run.with_cost(result.cost, analysis=result.payload))

    def _aggregate(self, request: _Request, run: RunState) -> StepOutcome:
        return StepOutcome(replace(run, total_cost=aggregate_costs(run.costs)))

    # --------------------------------------------------------------------- #
    # Helpers
    # --------------------------------------------------------------------- #

    def _build_result(
        self,
        request_id: str,
        tier: str,
        profile: ProfileRecord,
        run: RunState,
        started: float,
    ) -> OrchestrationResult:
        total_ms = int(round((self._clock() - started) * 1000))
        succeeded = run.state == PipelineState.AGGREGATED
        return OrchestrationResult(
            request_id=request_id,
            tier=tier,
            username=profile.username,
            verdict=Verdict.SUCCESS if succeeded else Verdict.ERROR,
            result=run.analysis if succeeded else None,
            total_cost=run.total_cost if succeeded else aggregate_costs(run.costs),
            performance=replace(run.timings, total_ms=total_ms),
            final_state=run.state,
            triage=run.triage,
            preprocessor=run.preprocessor,
            business_context_synthesized=run.context_synthesized,
            failed_stage=run.failed_stage,
            error=run.error,
        )

    @staticmethod
    def _log_outcome(result: OrchestrationResult) -> None:
        if result.succeeded:
            logger.info(
                "analysis_orchestration_completed",
                username=result.username,
                tier=result.tier,
                score=result.result.score,
                stages="+".join(result.total_cost.stages),
                total_cost=str(result.total_cost.actual_cost),
                total_ms=result.performance.total_ms,
            )
        else:
            logger.error(
                "analysis_orchestration_failed",
                username=result.username,
                tier=result.tier,
                failed_stage=result.failed_stage,
                error=result.error,
                stages_completed="+".join(result.total_cost.stages),
                total_ms=result.performance.total_ms,
            )
