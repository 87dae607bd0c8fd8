"""
Per-stage cost records and their aggregation.

Every stage that completes returns exactly one :class:`CostRecord` next to
its payload; the orchestrator folds the records of the stages that actually
ran into a :class:`CostSummary`. Dollar amounts are ``Decimal`` so that the
audit trail adds up exactly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Generic, Iterable, Optional, Tuple, TypeVar

from leadlens.core.config import ModelPricing

T = TypeVar("T")

ONE_MILLION = Decimal(1_000_000)
COST_QUANTUM = Decimal("0.00000001")


@dataclass(frozen=True, slots=True)
class CostRecord:
    """Dollar/token accounting for one executed stage."""

    stage_name: str
    actual_cost: Decimal
    tokens_in: int
    tokens_out: int
    model_used: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage_name": self.stage_name,
            "actual_cost": str(self.actual_cost),
            "tokens_in": self.tokens_in,
            "tokens_out": self.tokens_out,
            "model_used": self.model_used,
        }


@dataclass(frozen=True, slots=True)
class StageResult(Generic[T]):
    """Typed payload of a stage plus the cost of producing it."""

    payload: T
    cost: CostRecord


@dataclass(frozen=True, slots=True)
class CostSummary:
    """Aggregated cost of the stages that ran, in execution order."""

    actual_cost: Decimal = Decimal("0")
    tokens_in: int = 0
    tokens_out: int = 0
    stages: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def total_stages(self) -> int:
        return len(self.stages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "actual_cost": str(self.actual_cost),
            "tokens_in": self.tokens_in,
            "tokens_out": self.tokens_out,
            "stages": list(self.stages),
            "total_stages": self.total_stages,
        }


def price_usage(pricing: ModelPricing, tokens_in: int, tokens_out: int) -> Decimal:
    """Dollar cost of a call given per-million token prices."""
    cost = (
        Decimal(tokens_in) * pricing.input_per_million
        + Decimal(tokens_out) * pricing.output_per_million
    ) / ONE_MILLION
    return cost.quantize(COST_QUANTUM)


def aggregate_costs(records: Iterable[CostRecord]) -> CostSummary:
    """Sum the cost records of the stages that ran; an empty input sums to zero."""
    records = tuple(records)
    return CostSummary(
        actual_cost=sum((r.actual_cost for r in records), Decimal("0")),
        tokens_in=sum(r.tokens_in for r in records),
        tokens_out=sum(r.tokens_out for r in records),
        stages=tuple(r.stage_name for r in records),
    )
