"""Tests for cost records, pricing and aggregation."""

from decimal import Decimal

from leadlens.core.config import ModelPricing
from leadlens.intelligence.costs import CostRecord, aggregate_costs, price_usage


def _record(stage: str, cost: str, tokens_in: int = 100, tokens_out: int = 10) -> CostRecord:
    return CostRecord(stage_name=stage, actual_cost=Decimal(cost), tokens_in=tokens_in, tokens_out=tokens_out)


def test_price_usage_per_million():
    pricing = ModelPricing(input_per_million=Decimal("1.25"), output_per_million=Decimal("10.00"))
    assert price_usage(pricing, 1_000_000, 0) == Decimal("1.25")
    assert price_usage(pricing, 2000, 500) == Decimal("0.0075")


def test_price_usage_is_quantized():
    pricing = ModelPricing(input_per_million=Decimal("0.05"), output_per_million=Decimal("0.40"))
    cost = price_usage(pricing, 1, 1)
    assert cost == Decimal("0.00000045")
    assert cost.as_tuple().exponent == -8


def test_aggregate_sums_in_order():
    summary = aggregate_costs(
        [
            _record("triage", "0.00013", 1000, 200),
            _record("preprocessor", "0.00020", 1500, 300),
            _record("xray", "0.01250", 4000, 800),
        ]
    )

    assert summary.actual_cost == Decimal("0.01283")
    assert summary.tokens_in == 6500
    assert summary.tokens_out == 1300
    assert summary.stages == ("triage", "preprocessor", "xray")
    assert summary.total_stages == 3


def test_aggregate_empty_is_zero():
    summary = aggregate_costs([])

    assert summary.actual_cost == Decimal("0")
    assert summary.tokens_in == 0
    assert summary.tokens_out == 0
    assert summary.stages == ()


def test_decimal_sum_is_exact():
    records = [_record("triage", "0.1"), _record("light", "0.2")]
    assert aggregate_costs(records).actual_cost == Decimal("0.3")


def test_to_dict_uses_string_amounts():
    summary = aggregate_costs([_record("triage", "0.00013")])
    payload = summary.to_dict()

    assert payload["actual_cost"] == "0.00013"
    assert payload["stages"] == ["triage"]
    assert payload["total_stages"] == 1
    assert _record("light", "0.5").to_dict()["stage_name"] == "light"
