"""
Strict output records for every AI-backed stage.

Each stage's expected output is a pydantic model validated at the
boundary; nonconforming payloads are rejected rather than coerced. The
same models export the JSON Schemas handed to the AI-call client, in the
closed form strict structured-output providers require.
"""

from __future__ import annotations

import copy
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Type, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictBool, StrictInt, StrictStr
from pydantic import ValidationError as PydanticValidationError
from pydantic import field_validator

from leadlens.core.exceptions import SchemaViolationError
from leadlens.core.models import STAGE_BUSINESS_CONTEXT, STAGE_PREPROCESSOR, STAGE_TRIAGE, Tier

MAX_CONTENT_THEMES = 5
MAX_AUDIENCE_SIGNALS = 4
ONE_LINER_MAX_CHARS = 140

M = TypeVar("M", bound=BaseModel)


def _require_number(v):
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise ValueError("must be a JSON number")
    return v


Score = Annotated[StrictInt, Field(ge=0, le=100)]
Fraction = Annotated[float, BeforeValidator(_require_number), Field(ge=0, le=1)]
Text = StrictStr
TextList = List[StrictStr]


class StageOutcome(BaseModel):
    """Base for stage payloads: immutable once validated, unknown keys rejected."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


# --------------------------------------------------------------------------- #
# Triage
# --------------------------------------------------------------------------- #


class TriageOutcome(StageOutcome):
    """Coarse fit/richness estimate from the cheapest stage."""

    lead_score: Score
    data_richness: Score
    confidence: Fraction
    early_exit: StrictBool
    focus_points: TextList = Field(..., min_length=2, max_length=4)


# --------------------------------------------------------------------------- #
# Preprocessor
# --------------------------------------------------------------------------- #


class PreprocessorOutcome(StageOutcome):
    """Observable content facts extracted from the full profile."""

    posting_cadence: Text
    content_themes: TextList = Field(..., max_length=MAX_CONTENT_THEMES)
    audience_signals: TextList = Field(..., max_length=MAX_AUDIENCE_SIGNALS)
    brand_mentions: TextList
    engagement_patterns: Text
    collaboration_history: Text
    contact_readiness: Text
    content_quality: Text

    # Advisory stage: over-long lists are cut, not rejected.
    @field_validator("content_themes", mode="before")
    @classmethod
    def cap_themes(cls, v):
        return v[:MAX_CONTENT_THEMES] if isinstance(v, list) else v

    @field_validator("audience_signals", mode="before")
    @classmethod
    def cap_signals(cls, v):
        return v[:MAX_AUDIENCE_SIGNALS] if isinstance(v, list) else v


# --------------------------------------------------------------------------- #
# Main analysis
# --------------------------------------------------------------------------- #


class AnalysisOutcome(StageOutcome):
    """
    Fields every tier returns.

    Fields that belong to other tiers are dropped on validation so a
    cheaper tier can never leak deeper deliverables.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    tier: ClassVar[Tier]

    score: Score
    niche_fit: Score
    engagement_score: Score
    confidence_level: Fraction
    quick_summary: Text = Field(..., max_length=200)


class LightAnalysis(AnalysisOutcome):
    tier: ClassVar[Tier] = Tier.LIGHT


class DeepAnalysis(AnalysisOutcome):
    tier: ClassVar[Tier] = Tier.DEEP

    audience_quality: Literal["High", "Medium", "Low"]
    selling_points: TextList = Field(..., min_length=3, max_length=8)
    reasons: TextList = Field(..., min_length=3, max_length=10)
    deep_summary: Text
    outreach_message: Text


class CopywriterProfile(StageOutcome):
    demographics: Text
    psychographics: Text
    pain_points: TextList = Field(..., min_length=2, max_length=6)
    dreams_desires: TextList = Field(..., min_length=2, max_length=6)


class CommercialIntelligence(StageOutcome):
    budget_tier: Literal["low-budget", "mid-market", "premium", "luxury"]
    decision_role: Literal["primary", "influencer", "gatekeeper", "researcher"]
    buying_stage: Literal[
        "unaware", "problem-aware", "solution-aware", "product-aware", "ready-to-buy"
    ]
    objections: TextList = Field(..., min_length=2, max_length=5)


class PersuasionStrategy(StageOutcome):
    primary_angle: Literal[
        "transformation",
        "status",
        "convenience",
        "fear-of-missing-out",
        "social-proof",
        "authority",
    ]
    hook_style: Literal[
        "problem-agitation",
        "curiosity-gap",
        "social-proof",
        "authority-positioning",
        "story-based",
    ]
    proof_elements: TextList = Field(..., min_length=3, max_length=7)
    communication_style: Literal[
        "casual-friendly", "professional", "authoritative", "empathetic", "energetic"
    ]


class XRayAnalysis(AnalysisOutcome):
    tier: ClassVar[Tier] = Tier.XRAY

    copywriter_profile: CopywriterProfile
    commercial_intelligence: CommercialIntelligence
    persuasion_strategy: PersuasionStrategy


ANALYSIS_MODELS: Dict[Tier, Type[AnalysisOutcome]] = {
    Tier.LIGHT: LightAnalysis,
    Tier.DEEP: DeepAnalysis,
    Tier.XRAY: XRayAnalysis,
}


# --------------------------------------------------------------------------- #
# Business context
# --------------------------------------------------------------------------- #


class BusinessContextPack(StageOutcome):
    """Structured positioning used by the main analysis."""

    niche: Text
    value_prop: Text
    must_avoid: TextList = Field(..., min_length=3, max_length=3)
    priority_signals: TextList = Field(..., min_length=4, max_length=4)
    tone_words: TextList = Field(..., min_length=3, max_length=3)


class BusinessContextSynthesis(StageOutcome):
    """One-call synthesis of both business context fields."""

    business_one_liner: Text = Field(..., min_length=1, max_length=ONE_LINER_MAX_CHARS)
    business_context_pack: BusinessContextPack


STAGE_MODELS: Dict[str, Type[StageOutcome]] = {
    STAGE_TRIAGE: TriageOutcome,
    STAGE_PREPROCESSOR: PreprocessorOutcome,
    STAGE_BUSINESS_CONTEXT: BusinessContextSynthesis,
    **{tier.value: model for tier, model in ANALYSIS_MODELS.items()},
}


def validate_stage_payload(stage: str, model: Type[M], payload: Any) -> M:
    """
    Validate a decoded payload against a stage model.

    Raises:
        SchemaViolationError: the payload does not conform.
    """
    if not isinstance(payload, dict):
        raise SchemaViolationError(stage, f"expected a JSON object, got {type(payload).__name__}")
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        problems = [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in exc.errors()
        ]
        raise SchemaViolationError(
            stage,
            f"response violates {model.__name__} schema ({len(problems)} error(s))",
            details={"errors": problems},
        ) from exc


def strict_json_schema(model: Type[BaseModel]) -> Dict[str, Any]:
    """
    JSON Schema for ``model`` with every object closed and every property required.
    """
    schema = copy.deepcopy(model.model_json_schema())
    _close_objects(schema)
    return schema


def stage_json_schema(stage: str) -> Dict[str, Any]:
    """Strict JSON Schema of the named stage's expected output."""
    try:
        model = STAGE_MODELS[stage]
    except KeyError:
        raise KeyError(f"Unknown stage: {stage}") from None
    return strict_json_schema(model)


def _close_objects(node: Any) -> None:
    if isinstance(node, dict):
        props = node.get("properties")
        if isinstance(props, dict):
            node["additionalProperties"] = False
            node["required"] = list(props.keys())
        for value in node.values():
            _close_objects(value)
    elif isinstance(node, list):
        for item in node:
            _close_objects(item)
