"""
LLM-powered content fact extraction.

Runs only when the escalation policy asks for it and reads the full
profile (posts, engagement) rather than the snapshot. Its output is
advisory context for the main analysis.
"""

from __future__ import annotations

import structlog

from leadlens.clients.llm_client import StructuredLLM
from leadlens.core.config import Settings
from leadlens.core.models import STAGE_PREPROCESSOR, ProfileRecord
from leadlens.intelligence.costs import StageResult
from leadlens.intelligence.stage_runner import run_structured_stage
from leadlens.intelligence.stage_models import PreprocessorOutcome

logger = structlog.get_logger(__name__)

MAX_POSTS = 8
CAPTION_CHARS = 150
MAX_HASHTAGS = 5

SYSTEM_PROMPT = (
    "You are a data extraction specialist. Extract structured facts from social "
    "profiles. Only include what you can observe directly - no speculation."
)


class LLMPreprocessorAgent:
    """Agent that turns raw posts into normalized content signals."""

    def __init__(self, llm: StructuredLLM, settings: Settings) -> None:
        self.llm = llm
        self.settings = settings

    def extract(self, profile: ProfileRecord) -> StageResult[PreprocessorOutcome]:
        """Extract observable content facts from the profile."""
        logger.info(
            "preprocessor_started",
            username=profile.username,
            posts_available=len(profile.latest_posts),
        )

        result = run_structured_stage(
            self.llm,
            self.settings,
            stage=STAGE_PREPROCESSOR,
            model_cls=PreprocessorOutcome,
            system_prompt=SYSTEM_PROMPT,
            user_prompt=self._build_prompt(profile),
        )

        logger.info(
            "preprocessor_completed",
            username=profile.username,
            themes=len(result.payload.content_themes),
            audience_signals=len(result.payload.audience_signals),
        )
        return result

    def _build_prompt(self, profile: ProfileRecord) -> str:
        engagement = profile.engagement
        engagement_line = (
            f"{engagement.engagement_rate}% rate ({engagement.avg_likes} avg likes, "
            f"{engagement.avg_comments} avg comments)"
            if engagement
            else "Not available"
        )

        samples = []
        for i, post in enumerate(profile.latest_posts[:MAX_POSTS], start=1):
            caption = post.caption[:CAPTION_CHARS]
            if len(post.caption) > CAPTION_CHARS:
                caption += "..."
            hashtags = " ".join(post.hashtags[:MAX_HASHTAGS]) or "None"
            samples.append(
                f"Post {i}: {post.likes_count} likes, {post.comments_count} comments\n"
                f'  Caption: "{caption}"\n'
                f"  Hashtags: {hashtags}\n"
                f"  Type: {post.type or 'Unknown'}"
            )

        return f"""# DATA EXTRACTION: profile facts

## PROFILE OVERVIEW
- Username: @{profile.username}
- Followers: {profile.followers_count}
- Bio: "{profile.bio or 'No bio'}"
- External link: {profile.external_url or 'None'}
- Account type: {'Business' if profile.is_business_account else 'Personal'} | {'Verified' if profile.is_verified else 'Unverified'}
- Posts available: {len(profile.latest_posts)}
- Engagement: {engagement_line}

## POST SAMPLES
{chr(10).join(samples) or 'No posts available'}

## TASK
Based ONLY on the observable data above, extract:
- posting_cadence: frequency pattern (daily/weekly/sporadic/inactive)
- content_themes: top 3-5 recurring topics
- audience_signals: 2-4 signals about the followers
- brand_mentions: brands, products or companies mentioned
- engagement_patterns: what performs best and how people engage
- collaboration_history: evidence of sponsorships or partnerships
- contact_readiness: email in bio, business account, link in bio
- content_quality: professional, amateur or mixed

Use "insufficient_data" for anything you cannot determine.
Return ONLY the JSON object."""
