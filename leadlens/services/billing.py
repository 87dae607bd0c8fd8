"""
Credit billing for completed analyses.

Credits are a flat price per tier; the aggregated dollar cost travels with
the charge as its audit trail but never changes the credit amount.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple, Union

import structlog

from leadlens.core.exceptions import ValidationError
from leadlens.core.models import Tier, Verdict

if TYPE_CHECKING:
    from leadlens.intelligence.analysis_pipeline import OrchestrationResult

logger = structlog.get_logger(__name__)

TIER_CREDIT_PRICE: Dict[Tier, int] = {
    Tier.LIGHT: 1,
    Tier.DEEP: 2,
    Tier.XRAY: 3,
}


@dataclass(frozen=True)
class CreditCharge:
    """What the billing collaborator should deduct for one result."""

    credits: int
    tier: Tier
    actual_cost: Decimal
    stages: Tuple[str, ...]
    request_id: str
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "credits": self.credits,
            "tier": self.tier.value,
            "actual_cost": str(self.actual_cost),
            "stages": list(self.stages),
            "request_id": self.request_id,
            "description": self.description,
        }


def credits_for_tier(tier: Union[Tier, str]) -> int:
    """Flat credit price of ``tier``."""
    try:
        return TIER_CREDIT_PRICE[Tier(tier)]
    except ValueError:
        raise ValidationError(f"Unknown analysis tier: {tier!r}") from None


def has_sufficient_credits(balance: int, tier: Union[Tier, str]) -> bool:
    return balance >= credits_for_tier(tier)


def build_credit_charge(result: "OrchestrationResult") -> Optional[CreditCharge]:
    """
    Charge for a finished orchestration.

    Only successful results are billed; an error verdict (fatal failure at
    any stage) yields ``None`` so no partial credits are ever taken.
    """
    if result.verdict != Verdict.SUCCESS:
        logger.debug("credit_charge_skipped", request_id=result.request_id, verdict=result.verdict.value)
        return None

    tier = Tier(result.tier)
    return CreditCharge(
        credits=credits_for_tier(tier),
        tier=tier,
        actual_cost=result.total_cost.actual_cost,
        stages=result.total_cost.stages,
        request_id=result.request_id,
        description=f"{tier.value.capitalize()} analysis of @{result.username}",
    )
