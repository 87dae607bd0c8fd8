"""
Lead analysis stages and their orchestration.

Provides the snapshot builder, the AI-backed stage agents, the escalation
policy, cost aggregation and the orchestrator that composes them.
"""

from .analysis_pipeline import AnalysisOrchestrator, OrchestrationResult
from .bulk_analysis import BulkAnalysisReport, BulkAnalysisRunner
from .costs import CostRecord, CostSummary, StageResult, aggregate_costs
from .escalation import should_run_preprocessor
from .snapshot import ProfileSnapshot, build_snapshot

__all__ = [
    "AnalysisOrchestrator",
    "OrchestrationResult",
    "BulkAnalysisRunner",
    "BulkAnalysisReport",
    "CostRecord",
    "CostSummary",
    "StageResult",
    "aggregate_costs",
    "should_run_preprocessor",
    "ProfileSnapshot",
    "build_snapshot",
]
