"""
Bounded-concurrency batch runner for lead analyses.

Profiles are analyzed in small groups on a thread pool with a short pause
between groups, so a bulk request never fans out unboundedly against the
AI provider. Each orchestration run stays independent.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, List, Optional, Sequence, Tuple, Union

import structlog

from leadlens.core.config import BulkConfig
from leadlens.core.exceptions import StageError
from leadlens.core.logging import new_request_id
from leadlens.core.models import BusinessRecord, PipelineState, ProfileRecord, Tier, Verdict
from leadlens.intelligence.analysis_pipeline import (
    AnalysisOrchestrator,
    OrchestrationResult,
    StageTimings,
)
from leadlens.intelligence.costs import aggregate_costs
from leadlens.services.billing import build_credit_charge

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class BulkAnalysisReport:
    """Outcome of one bulk request, results in input order."""

    request_id: str
    tier: str
    results: Tuple[OrchestrationResult, ...] = field(default_factory=tuple)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.verdict == Verdict.SUCCESS)

    @property
    def early_exits(self) -> int:
        return sum(1 for r in self.results if r.verdict == Verdict.EARLY_EXIT)

    @property
    def errors(self) -> int:
        return sum(1 for r in self.results if r.verdict == Verdict.ERROR)

    @property
    def total_cost(self) -> Decimal:
        return sum((r.total_cost.actual_cost for r in self.results), Decimal("0"))

    @property
    def credits_charged(self) -> int:
        charges = (build_credit_charge(r) for r in self.results)
        return sum(charge.credits for charge in charges if charge is not None)

    def to_dict(self):
        return {
            "request_id": self.request_id,
            "tier": self.tier,
            "total": self.total,
            "successful": self.successful,
            "early_exits": self.early_exits,
            "errors": self.errors,
            "total_cost": str(self.total_cost),
            "credits_charged": self.credits_charged,
            "results": [r.to_dict() for r in self.results],
        }


class BulkAnalysisRunner:
    """Run many orchestrations against one business in bounded groups."""

    def __init__(
        self,
        orchestrator: AnalysisOrchestrator,
        batch_size: int = 3,
        pause_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.orchestrator = orchestrator
        self.batch_size = batch_size
        self.pause_seconds = pause_seconds
        self._sleep = sleep

    @classmethod
    def from_config(cls, orchestrator: AnalysisOrchestrator, config: BulkConfig) -> "BulkAnalysisRunner":
        return cls(orchestrator, batch_size=config.batch_size, pause_seconds=config.pause_seconds)

    def run(
        self,
        profiles: Sequence[ProfileRecord],
        business: BusinessRecord,
        tier: Union[Tier, str],
        *,
        request_id: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> BulkAnalysisReport:
        """
        Analyze ``profiles`` for ``business`` at ``tier``.

        Args:
            profiles: Normalized profile records, analyzed in this order.
            business: Business record shared by every run.
            tier: Analysis tier applied to every profile.
            request_id: Batch correlation id; run ids are ``<id>-<index>``.
            progress: Called with ``(completed, total)`` after each group.
        """
        request_id = request_id or new_request_id()
        tier_label = tier.value if isinstance(tier, Tier) else str(tier)
        total = len(profiles)

        logger.info(
            "bulk_analysis_started",
            request_id=request_id,
            profiles=total,
            tier=tier_label,
            batch_size=self.batch_size,
        )

        business = self._prepare_business(business, request_id)
        results: List[Optional[OrchestrationResult]] = [None] * total
        groups = [
            list(range(start, min(start + self.batch_size, total)))
            for start in range(0, total, self.batch_size)
        ]

        with ThreadPoolExecutor(max_workers=self.batch_size) as executor:
            for group_number, indexes in enumerate(groups, start=1):
                futures = {
                    index: executor.submit(
                        self.orchestrator.run,
                        profiles[index],
                        business,
                        tier,
                        request_id=f"{request_id}-{index}",
                    )
                    for index in indexes
                }
                for index, future in futures.items():
                    try:
                        results[index] = future.result()
                    except Exception as exc:  # noqa: BLE001
                        logger.error(
                            "bulk_analysis_run_crashed",
                            request_id=f"{request_id}-{index}",
                            username=profiles[index].username,
                            error=str(exc),
                        )
                        results[index] = _crashed_result(
                            f"{request_id}-{index}", tier_label, profiles[index], exc
                        )

                completed = indexes[-1] + 1
                logger.debug("bulk_analysis_group_completed", group=group_number, completed=completed, total=total)
                if progress is not None:
                    progress(completed, total)
                if group_number < len(groups) and self.pause_seconds > 0:
                    self._sleep(self.pause_seconds)

        report = BulkAnalysisReport(request_id=request_id, tier=tier_label, results=tuple(results))
        logger.info(
            "bulk_analysis_completed",
            request_id=request_id,
            successful=report.successful,
            errors=report.errors,
            total_cost=str(report.total_cost),
            credits=report.credits_charged,
        )
        return report

    def _prepare_business(self, business: BusinessRecord, request_id: str) -> BusinessRecord:
        """Resolve context once for the batch; on failure leave it to each run."""
        if business.has_context:
            return business
        try:
            resolved = self.orchestrator.context_resolver.resolve(business)
        except StageError as exc:
            logger.warning(
                "bulk_business_context_deferred",
                request_id=request_id,
                business_id=business.id,
                error=exc.message,
            )
            return business
        return resolved.business


def _crashed_result(
    request_id: str, tier: str, profile: ProfileRecord, exc: Exception
) -> OrchestrationResult:
    return OrchestrationResult(
        request_id=request_id,
        tier=tier,
        username=profile.username,
        verdict=Verdict.ERROR,
        result=None,
        total_cost=aggregate_costs(()),
        performance=StageTimings(),
        final_state=PipelineState.FAILED,
        failed_stage="orchestration",
        error=f"orchestration crashed: {exc}",
    )
