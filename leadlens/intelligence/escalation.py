"""Decide whether a request escalates into the preprocessor stage."""

from __future__ import annotations

from typing import Union

from leadlens.core.models import Tier
from leadlens.intelligence.stage_models import TriageOutcome

DEEP_RICHNESS_THRESHOLD = 70


def should_run_preprocessor(tier: Union[Tier, str], triage: TriageOutcome) -> bool:
    """
    Escalation policy.

    light never escalates, deep escalates only on rich data
    (``data_richness >= 70``), xray always escalates. Unknown tiers fail
    closed toward the cheaper path.
    """
    tier_value = tier.value if isinstance(tier, Tier) else tier
    if tier_value == Tier.LIGHT.value:
        return False
    if tier_value == Tier.DEEP.value:
        return triage.data_richness >= DEEP_RICHNESS_THRESHOLD
    if tier_value == Tier.XRAY.value:
        return True
    return False
