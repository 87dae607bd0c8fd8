"""
Data models and type definitions for LeadLens.

Input records handed to the pipeline by its collaborators (normalized
profile, business record) plus the enumerations shared by every stage.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

STAGE_TRIAGE = "triage"
STAGE_PREPROCESSOR = "preprocessor"
STAGE_BUSINESS_CONTEXT = "business_context"


class Tier(str, Enum):
    """Analysis depth; also the stage name of the main analysis."""

    LIGHT = "light"
    DEEP = "deep"
    XRAY = "xray"

    @classmethod
    def values(cls) -> List[str]:
        return [t.value for t in cls]


class Verdict(str, Enum):
    """Outcome of one orchestration run."""

    SUCCESS = "success"
    EARLY_EXIT = "early_exit"  # reserved, never produced
    ERROR = "error"


class PipelineState(str, Enum):
    """States of the orchestration state machine."""

    STARTED = "started"
    CONTEXT_RESOLVED = "context_resolved"
    TRIAGED = "triaged"
    PREPROCESSED = "preprocessed"
    PREPROCESSOR_SKIPPED = "preprocessor_skipped"
    ANALYZED = "analyzed"
    AGGREGATED = "aggregated"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.AGGREGATED, PipelineState.FAILED)


# Profile records


class _Record(BaseModel):
    # Upstream normalizer emits camelCase; snake_case is accepted as well.
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class PostRecord(_Record):
    """A single post from the scraped profile."""

    id: str = ""
    short_code: Optional[str] = Field(None, alias="shortCode")
    caption: str = ""
    likes_count: int = Field(0, ge=0, alias="likesCount")
    comments_count: int = Field(0, ge=0, alias="commentsCount")
    timestamp: Optional[datetime] = None
    url: Optional[str] = None
    type: Optional[str] = None
    hashtags: List[str] = Field(default_factory=list)
    mentions: List[str] = Field(default_factory=list)
    view_count: Optional[int] = Field(None, alias="viewCount")
    is_video: Optional[bool] = Field(None, alias="isVideo")

    @field_validator("caption", mode="before")
    @classmethod
    def none_caption(cls, v):
        return v or ""

    @field_validator("timestamp", mode="before")
    @classmethod
    def blank_timestamp(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class EngagementData(_Record):
    """Aggregate engagement computed by the scraping collaborator."""

    avg_likes: float = Field(0, ge=0, alias="avgLikes")
    avg_comments: float = Field(0, ge=0, alias="avgComments")
    engagement_rate: float = Field(0, ge=0, alias="engagementRate")
    total_engagement: Optional[float] = Field(None, ge=0, alias="totalEngagement")
    posts_analyzed: int = Field(0, ge=0, alias="postsAnalyzed")
    quality_score: Optional[float] = Field(None, alias="qualityScore")


class ProfileRecord(_Record):
    """Normalized, already-validated social profile."""

    username: str = Field(..., min_length=1)
    display_name: str = Field("", alias="displayName")
    bio: str = ""
    followers_count: int = Field(0, ge=0, alias="followersCount")
    following_count: int = Field(0, ge=0, alias="followingCount")
    posts_count: int = Field(0, ge=0, alias="postsCount")
    is_verified: bool = Field(False, alias="isVerified")
    is_private: bool = Field(False, alias="isPrivate")
    is_business_account: bool = Field(False, alias="isBusinessAccount")
    profile_pic_url: Optional[str] = Field(None, alias="profilePicUrl")
    external_url: Optional[str] = Field(None, alias="externalUrl")
    latest_posts: List[PostRecord] = Field(default_factory=list, alias="latestPosts")
    engagement: Optional[EngagementData] = None
    scraper_used: Optional[str] = Field(None, alias="scraperUsed")
    data_quality: Optional[str] = Field(None, alias="dataQuality")

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v):
        return v.strip().lstrip("@")

    @field_validator("bio", "display_name", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or ""


# Business records


class BusinessRecord(BaseModel):
    """
    Business side of the comparison, as loaded from storage.

    ``business_one_liner`` and ``business_context_pack`` are optional; the
    business context resolver synthesizes them when either is missing.
    The pack is kept as the stored value so existing context passes
    through untouched.
    """

    id: Optional[str] = None
    name: str = ""
    industry: str = ""
    target_audience: str = ""
    value_proposition: str = ""
    pain_points: List[str] = Field(default_factory=list)
    unique_advantages: List[str] = Field(default_factory=list)
    website: Optional[str] = None
    business_one_liner: Optional[str] = None
    business_context_pack: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="ignore", frozen=True)

    @property
    def has_context(self) -> bool:
        return bool(self.business_one_liner) and bool(self.business_context_pack)

    @property
    def display_name(self) -> str:
        return self.name or self.id or "unknown business"
