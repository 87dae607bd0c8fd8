"""
Compact, stable-shaped profile summary used as triage input.

The snapshot is derived once per request from the full profile record and
never mutated afterwards; the cheapest stage only ever sees this view.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import tldextract
from pydantic import BaseModel, ConfigDict, Field

from leadlens.core.models import ProfileRecord

BIO_EXCERPT_CHARS = 120
CAPTION_EXCERPT_CHARS = 80
MAX_EXTERNAL_DOMAINS = 3
MAX_CAPTIONS = 3
RECENT_WINDOW_DAYS = 30
UNDATED_POSTS_CAP = 10

# Host-like tokens; "@handle.name" mentions and e-mail addresses are not links.
_LINK_TOKEN_RE = re.compile(r"(?<![@\w.])(?:https?://)?[\w-]+(?:\.[\w-]+)+(?:/[^\s,;|]*)?")

# Bundled public suffix snapshot, no network fetch.
_extract = tldextract.TLDExtract(suffix_list_urls=())


class EngagementSignals(BaseModel):
    """Aggregate engagement summary carried into the snapshot."""

    avg_likes: float
    avg_comments: float
    engagement_rate: float
    posts_analyzed: int

    model_config = ConfigDict(frozen=True)


class ProfileSnapshot(BaseModel):
    """Reduced view of a profile for the triage stage."""

    username: str
    followers: int
    verified: bool
    private: bool
    bio_short: str = ""
    external_domains: List[str] = Field(default_factory=list)
    posts_30d: int = 0
    top_captions: List[str] = Field(default_factory=list)
    engagement_signals: Optional[EngagementSignals] = None

    model_config = ConfigDict(frozen=True)


def build_snapshot(profile: ProfileRecord, as_of: Optional[datetime] = None) -> ProfileSnapshot:
    """
    Reduce a full profile record to a :class:`ProfileSnapshot`.

    Args:
        profile: Normalized profile record.
        as_of: Reference time for the recent-post estimate (defaults to now, UTC).
    """
    as_of = _as_utc(as_of or datetime.now(timezone.utc))

    engagement = None
    if profile.engagement and profile.engagement.posts_analyzed > 0:
        engagement = EngagementSignals(
            avg_likes=round(profile.engagement.avg_likes, 2),
            avg_comments=round(profile.engagement.avg_comments, 2),
            engagement_rate=round(profile.engagement.engagement_rate, 2),
            posts_analyzed=profile.engagement.posts_analyzed,
        )

    return ProfileSnapshot(
        username=profile.username,
        followers=profile.followers_count,
        verified=profile.is_verified,
        private=profile.is_private,
        bio_short=_excerpt(profile.bio, BIO_EXCERPT_CHARS),
        external_domains=extract_domains(profile.external_url, profile.bio),
        posts_30d=_count_recent_posts(profile, as_of),
        top_captions=[
            _excerpt(p.caption, CAPTION_EXCERPT_CHARS)
            for p in profile.latest_posts
            if p.caption.strip()
        ][:MAX_CAPTIONS],
        engagement_signals=engagement,
    )


def extract_domains(external_url: Optional[str], bio: str = "") -> List[str]:
    """Collect distinct registered link domains from the external URL and the bio."""
    candidates = []
    if external_url:
        candidates.append(external_url)
    candidates.extend(_LINK_TOKEN_RE.findall(bio or ""))

    domains: List[str] = []
    for raw in candidates:
        domain = _domain_of(raw)
        if domain and domain not in domains:
            domains.append(domain)
        if len(domains) == MAX_EXTERNAL_DOMAINS:
            break
    return domains


def _domain_of(raw: str) -> Optional[str]:
    raw = raw.strip().rstrip(".)")
    if not raw:
        return None
    ext = _extract(raw)
    if ext.registered_domain:
        return ext.registered_domain.lower()
    return None


def _count_recent_posts(profile: ProfileRecord, as_of: datetime) -> int:
    """Count dated posts in the recent window, or estimate from the post total."""
    if not any(p.timestamp is not None for p in profile.latest_posts):
        total = profile.posts_count
        if profile.followers_count > 0:
            return min(total, max(1, total // 12))
        return min(total, UNDATED_POSTS_CAP)

    cutoff = as_of - timedelta(days=RECENT_WINDOW_DAYS)
    return sum(
        1
        for p in profile.latest_posts
        if p.timestamp is not None and cutoff <= _as_utc(p.timestamp) <= as_of
    )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _excerpt(text: str, limit: int) -> str:
    text = " ".join((text or "").split())
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."
