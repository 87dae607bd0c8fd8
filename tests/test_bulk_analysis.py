"""Tests for the bounded-concurrency bulk runner."""

from decimal import Decimal

import pytest

from leadlens.core.config import BulkConfig
from leadlens.core.exceptions import LLMError
from leadlens.core.models import ProfileRecord, Verdict
from leadlens.intelligence.analysis_pipeline import AnalysisOrchestrator
from leadlens.intelligence.bulk_analysis import BulkAnalysisRunner

from tests import sample_data


def _profiles(count):
    return [
        ProfileRecord.model_validate({**sample_data.PROFILE_DATA, "username": f"lead_{i}"})
        for i in range(count)
    ]


class _Sleeper:
    def __init__(self):
        self.pauses = []

    def __call__(self, seconds):
        self.pauses.append(seconds)


def test_runs_in_groups_and_keeps_order(settings, business, scripted_llm):
    llm = scripted_llm()
    sleeper = _Sleeper()
    progress = []
    runner = BulkAnalysisRunner(
        AnalysisOrchestrator(settings, llm), batch_size=2, pause_seconds=0.25, sleep=sleeper
    )

    report = runner.run(
        _profiles(5), business, "light", request_id="bulk-1", progress=lambda done, total: progress.append((done, total))
    )

    assert [r.username for r in report.results] == [f"lead_{i}" for i in range(5)]
    assert [r.request_id for r in report.results] == [f"bulk-1-{i}" for i in range(5)]
    assert progress == [(2, 5), (4, 5), (5, 5)]
    assert sleeper.pauses == [0.25, 0.25]
    assert llm.calls["triage"] == 5
    assert report.successful == 5
    assert report.errors == 0


def test_report_totals(settings, business, scripted_llm):
    runner = BulkAnalysisRunner(AnalysisOrchestrator(settings, scripted_llm()), batch_size=3, sleep=_Sleeper())
    report = runner.run(_profiles(3), business, "deep")

    assert report.total == 3
    assert report.credits_charged == 6
    assert report.total_cost == sum((r.total_cost.actual_cost for r in report.results), Decimal("0"))
    assert report.to_dict()["credits_charged"] == 6


def test_context_resolved_once_for_the_batch(settings, cold_business, scripted_llm):
    llm = scripted_llm()
    runner = BulkAnalysisRunner(AnalysisOrchestrator(settings, llm), batch_size=2, sleep=_Sleeper())
    report = runner.run(_profiles(4), cold_business, "light")

    assert llm.calls["business_context"] == 1
    assert report.successful == 4


def test_context_failure_defers_to_each_run(settings, cold_business, scripted_llm):
    llm = scripted_llm(business_context=LLMError("down"))
    runner = BulkAnalysisRunner(AnalysisOrchestrator(settings, llm), batch_size=2, sleep=_Sleeper())
    report = runner.run(_profiles(2), cold_business, "light")

    assert llm.calls["business_context"] == 3
    assert report.errors == 2
    assert report.credits_charged == 0
    assert all(r.failed_stage == "business_context" for r in report.results)


def test_failures_are_isolated_per_run(settings, business, scripted_llm):
    def triage(request):
        if "lead_1" in request.user_prompt:
            raise LLMError("flaky")
        return sample_data.TRIAGE_RICH

    llm = scripted_llm(triage=triage)
    runner = BulkAnalysisRunner(AnalysisOrchestrator(settings, llm), batch_size=3, sleep=_Sleeper())
    report = runner.run(_profiles(3), business, "light")

    assert [r.verdict for r in report.results] == [Verdict.SUCCESS, Verdict.ERROR, Verdict.SUCCESS]
    assert report.credits_charged == 2


def test_crashed_run_becomes_error_result(settings, business, scripted_llm):
    class CrashingOrchestrator(AnalysisOrchestrator):
        def run(self, profile, business, tier, *, request_id=None):
            if profile.username == "lead_0":
                raise RuntimeError("worker died")
            return super().run(profile, business, tier, request_id=request_id)

    runner = BulkAnalysisRunner(CrashingOrchestrator(settings, scripted_llm()), batch_size=2, sleep=_Sleeper())
    report = runner.run(_profiles(2), business, "light", request_id="bulk-2")

    crashed = report.results[0]
    assert crashed.verdict == Verdict.ERROR
    assert crashed.request_id == "bulk-2-0"
    assert "worker died" in crashed.error
    assert report.results[1].verdict == Verdict.SUCCESS


def test_no_pause_after_last_group(settings, business, scripted_llm):
    sleeper = _Sleeper()
    runner = BulkAnalysisRunner(AnalysisOrchestrator(settings, scripted_llm()), batch_size=5, sleep=sleeper)
    runner.run(_profiles(3), business, "light")

    assert sleeper.pauses == []


def test_from_config(settings, scripted_llm):
    runner = BulkAnalysisRunner.from_config(
        AnalysisOrchestrator(settings, scripted_llm()), BulkConfig(batch_size=4, pause_seconds=1.0)
    )
    assert runner.batch_size == 4
    assert runner.pause_seconds == 1.0


def test_rejects_empty_groups(settings, scripted_llm):
    with pytest.raises(ValueError):
        BulkAnalysisRunner(AnalysisOrchestrator(settings, scripted_llm()), batch_size=0)
