"""
Business context resolution.

Makes sure the business side of the comparison carries a one-line
positioning statement and a structured context pack. Existing context
passes through untouched; missing context is synthesized with one AI call
whose cost belongs to business setup, not to the lead being analyzed.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import structlog

from leadlens.clients.llm_client import StructuredLLM
from leadlens.core.config import Settings
from leadlens.core.exceptions import BusinessContextError, StageError
from leadlens.core.models import STAGE_BUSINESS_CONTEXT, BusinessRecord
from leadlens.intelligence.costs import CostRecord, StageResult
from leadlens.intelligence.stage_models import BusinessContextSynthesis
from leadlens.intelligence.stage_runner import run_structured_stage

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = "You are a business analyst. Return only valid JSON matching the exact schema."


class BusinessContextStore(Protocol):
    """Persistence collaborator for synthesized context."""

    def save_business_context(
        self, business_id: str, business_one_liner: str, business_context_pack: Dict[str, Any]
    ) -> None:
        ...


@dataclass(frozen=True)
class ResolvedBusinessContext:
    """A business record guaranteed to carry a one-liner for the request."""

    business: BusinessRecord
    synthesized: bool = False
    setup_cost: Optional[CostRecord] = None


class LLMBusinessContextAgent:
    """Agent that writes the one-liner and context pack for a business."""

    def __init__(self, llm: StructuredLLM, settings: Settings) -> None:
        self.llm = llm
        self.settings = settings

    def generate(self, business: BusinessRecord) -> StageResult[BusinessContextSynthesis]:
        """Synthesize both context fields in one call."""
        logger.info("business_context_generation_started", business_id=business.id)
        result = run_structured_stage(
            self.llm,
            self.settings,
            stage=STAGE_BUSINESS_CONTEXT,
            model_cls=BusinessContextSynthesis,
            system_prompt=SYSTEM_PROMPT,
            user_prompt=self._build_prompt(business),
        )
        logger.info(
            "business_context_generated",
            business_id=business.id,
            one_liner_length=len(result.payload.business_one_liner),
            model_used=result.cost.model_used,
            cost=str(result.cost.actual_cost),
        )
        return result

    def _build_prompt(self, business: BusinessRecord) -> str:
        input_data = {
            "name": business.name,
            "industry": business.industry,
            "target_audience": business.target_audience,
            "value_proposition": business.value_proposition,
            "pain_points": business.pain_points,
            "unique_advantages": business.unique_advantages,
            "website": business.website,
        }
        return f"""Summarize this business for lead qualification.

INPUT DATA:
{json.dumps(input_data, indent=2)}

Return:
- business_one_liner: who they serve, the outcome, and how (max 140 characters)
- business_context_pack:
  - niche: the market niche in a few words
  - value_prop: the core value proposition in one sentence
  - must_avoid: exactly 3 profile archetypes that are a poor fit
  - priority_signals: exactly 4 signals that indicate a strong fit
  - tone_words: exactly 3 words describing the brand's tone"""


class BusinessContextResolver:
    """Pass-through or one-shot synthesis of business context."""

    def __init__(
        self,
        agent: LLMBusinessContextAgent,
        store: Optional[BusinessContextStore] = None,
    ) -> None:
        self.agent = agent
        self.store = store

    def resolve(self, business: BusinessRecord) -> ResolvedBusinessContext:
        """
        Return a business record with context fields in place.

        Raises:
            BusinessContextError: synthesis failed and the business has no
                one-liner to fall back on.
        """
        if business.has_context:
            logger.debug("business_context_reused", business_id=business.id)
            return ResolvedBusinessContext(business=business)

        try:
            result = self.agent.generate(business)
        except StageError as exc:
            if business.business_one_liner:
                logger.warning(
                    "business_context_generation_failed",
                    business_id=business.id,
                    error=exc.message,
                    fallback="existing_one_liner",
                )
                return ResolvedBusinessContext(business=business)
            logger.error("business_context_generation_failed", business_id=business.id, error=exc.message)
            raise BusinessContextError(exc.reason, details=exc.details) from exc

        synthesis = result.payload
        pack = synthesis.business_context_pack.to_dict()
        enriched = business.model_copy(
            update={
                "business_one_liner": synthesis.business_one_liner,
                "business_context_pack": pack,
            }
        )
        self._persist(enriched)
        return ResolvedBusinessContext(business=enriched, synthesized=True, setup_cost=result.cost)

    def _persist(self, business: BusinessRecord) -> None:
        if self.store is None or not business.id:
            return
        try:
            self.store.save_business_context(
                business.id, business.business_one_liner, business.business_context_pack
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("business_context_persist_failed", business_id=business.id, error=str(exc))
