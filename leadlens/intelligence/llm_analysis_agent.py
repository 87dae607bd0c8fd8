"""
LLM-powered main analysis, the billable deliverable.

Always runs after triage. Receives the triage outcome and (when the
request escalated and it succeeded) the preprocessor facts as context,
and returns a tier-shaped outcome.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from leadlens.clients.llm_client import StructuredLLM
from leadlens.core.config import Settings
from leadlens.core.models import BusinessRecord, ProfileRecord, Tier
from leadlens.intelligence.costs import StageResult
from leadlens.intelligence.stage_runner import run_structured_stage
from leadlens.intelligence.stage_models import (
    ANALYSIS_MODELS,
    AnalysisOutcome,
    PreprocessorOutcome,
    TriageOutcome,
)

logger = structlog.get_logger(__name__)

MAX_POSTS = 12
CAPTION_CHARS = 200

SYSTEM_PROMPT = (
    "You are a senior partnership strategist evaluating social profiles as business "
    "leads. Return ONLY JSON matching the schema; ground every claim in the data given."
)

_TIER_TASKS = {
    Tier.LIGHT: (
        "Give a fast qualification: overall score, niche fit, engagement score, "
        "confidence and a 1-2 sentence quick_summary."
    ),
    Tier.DEEP: (
        "Give a full partnership assessment: scores, audience_quality (High/Medium/Low), "
        "3-8 selling_points, 3-10 reasons, a deep_summary and a personalized "
        "outreach_message written for this specific profile."
    ),
    Tier.XRAY: (
        "Give a copywriter-grade psychological and commercial profile: scores, "
        "copywriter_profile (demographics, psychographics, pain points, dreams), "
        "commercial_intelligence (budget tier, decision role, buying stage, objections) "
        "and persuasion_strategy (angle, hook style, proof elements, communication style)."
    ),
}


@dataclass(frozen=True)
class AnalysisContext:
    """Outputs of earlier stages handed to the main analysis."""

    triage: TriageOutcome
    preprocessor: Optional[PreprocessorOutcome] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "triage": self.triage.to_dict(),
            "preprocessor": self.preprocessor.to_dict() if self.preprocessor else None,
        }


class LLMAnalysisAgent:
    """Agent that produces the final, tier-shaped lead analysis."""

    def __init__(self, llm: StructuredLLM, settings: Settings) -> None:
        self.llm = llm
        self.settings = settings

    def analyze(
        self,
        profile: ProfileRecord,
        business: BusinessRecord,
        tier: Tier,
        context: AnalysisContext,
    ) -> StageResult[AnalysisOutcome]:
        """
        Run the main analysis for ``tier``.

        Fields that belong to deeper tiers are dropped by the tier's output
        model even if the model returns them.
        """
        tier = Tier(tier)
        logger.info(
            "analysis_started",
            username=profile.username,
            tier=tier.value,
            has_preprocessor=context.preprocessor is not None,
        )

        result = run_structured_stage(
            self.llm,
            self.settings,
            stage=tier.value,
            model_cls=ANALYSIS_MODELS[tier],
            system_prompt=SYSTEM_PROMPT,
            user_prompt=self._build_prompt(profile, business, tier, context),
        )

        logger.info(
            "analysis_completed",
            username=profile.username,
            tier=tier.value,
            score=result.payload.score,
            confidence=result.payload.confidence_level,
        )
        return result

    def _build_prompt(
        self,
        profile: ProfileRecord,
        business: BusinessRecord,
        tier: Tier,
        context: AnalysisContext,
    ) -> str:
        business_data: Dict[str, Any] = {
            "name": business.name,
            "industry": business.industry,
            "target_audience": business.target_audience,
            "value_proposition": business.value_proposition,
            "one_liner": business.business_one_liner,
        }
        if business.business_context_pack:
            business_data["context_pack"] = business.business_context_pack

        profile_data: Dict[str, Any] = {
            "username": profile.username,
            "display_name": profile.display_name,
            "bio": profile.bio,
            "followers": profile.followers_count,
            "following": profile.following_count,
            "posts": profile.posts_count,
            "verified": profile.is_verified,
            "private": profile.is_private,
            "business_account": profile.is_business_account,
            "external_url": profile.external_url,
            "engagement": profile.engagement.model_dump() if profile.engagement else None,
            "recent_posts": [
                {
                    "caption": post.caption[:CAPTION_CHARS],
                    "likes": post.likes_count,
                    "comments": post.comments_count,
                    "type": post.type,
                }
                for post in profile.latest_posts[:MAX_POSTS]
            ],
        }

        return f"""# {tier.value.upper()} LEAD ANALYSIS

## BUSINESS
{json.dumps(business_data, indent=2)}

## PROFILE
{json.dumps(profile_data, indent=2)}

## EARLIER FINDINGS
{json.dumps(context.to_dict(), indent=2)}

## TASK
{_TIER_TASKS[tier]}

Scores are integers 0-100; confidence_level is 0-1; quick_summary is at most 200
characters. Treat the triage focus points as hints, not conclusions.
Return ONLY the JSON object."""
