"""
LLM-powered lead triage.

The cheapest stage: scores business fit and data richness from the
profile snapshot alone. Runs exactly once per request and its outcome
drives both the escalation decision and the main analysis context.
"""

from __future__ import annotations

import json

import structlog

from leadlens.clients.llm_client import StructuredLLM
from leadlens.core.config import Settings
from leadlens.core.models import STAGE_TRIAGE
from leadlens.intelligence.costs import StageResult
from leadlens.intelligence.snapshot import ProfileSnapshot
from leadlens.intelligence.stage_runner import run_structured_stage
from leadlens.intelligence.stage_models import TriageOutcome

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a lead qualification expert. Analyze social profiles quickly and "
    "return ONLY JSON matching the schema. Be decisive."
)


class LLMTriageAgent:
    """Agent that produces a coarse fit/richness estimate for a lead."""

    def __init__(self, llm: StructuredLLM, settings: Settings) -> None:
        self.llm = llm
        self.settings = settings

    def triage(self, snapshot: ProfileSnapshot, business_one_liner: str) -> StageResult[TriageOutcome]:
        """
        Score the snapshot against the business one-liner.

        Raises:
            StageError: the call failed or the response violated the schema
                (range, cardinality, unknown keys).
        """
        logger.info("triage_started", username=snapshot.username, followers=snapshot.followers)

        result = run_structured_stage(
            self.llm,
            self.settings,
            stage=STAGE_TRIAGE,
            model_cls=TriageOutcome,
            system_prompt=SYSTEM_PROMPT,
            user_prompt=self._build_prompt(snapshot, business_one_liner),
        )

        outcome = result.payload
        if outcome.early_exit:
            # early exit is reserved; the flag never short-circuits the run
            logger.info("triage_early_exit_ignored", username=snapshot.username)
            outcome = outcome.model_copy(update={"early_exit": False})

        logger.info(
            "triage_completed",
            username=snapshot.username,
            lead_score=outcome.lead_score,
            data_richness=outcome.data_richness,
            confidence=outcome.confidence,
        )
        return StageResult(payload=outcome, cost=result.cost)

    def _build_prompt(self, snapshot: ProfileSnapshot, business_one_liner: str) -> str:
        return f"""# LEAD TRIAGE

## YOUR BUSINESS
{business_one_liner}

## PROFILE SNAPSHOT
{json.dumps(snapshot.model_dump(mode="json"), indent=2)}

## TASK
Score this profile on two dimensions:

lead_score (0-100): business fit potential
- 80-100: clear target match, obvious collaboration potential
- 60-79: good fit signals, worth deeper analysis
- 40-59: possible fit but unclear value
- 20-39: weak signals, probably wrong audience
- 0-19: obviously wrong fit

data_richness (0-100): quality of the available information
- 80-100: rich content, engagement data, clear patterns
- 40-79: some content samples and signals
- 0-39: minimal data, private or sparse account

confidence (0-1): how certain you are about these scores
focus_points: 2-4 specific observations that drove the scores
early_exit: always false

Return ONLY the JSON object."""
