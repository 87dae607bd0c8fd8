"""
Shared call path of the AI-backed stages.

Builds the structured request for a stage, decodes and validates the
response against the stage's output model, and prices the call. Any
failure along the way surfaces as a :class:`StageError` naming the stage;
whether that is fatal is the orchestrator's decision.
"""

from __future__ import annotations

from typing import Type, TypeVar

import structlog

from leadlens.clients.llm_client import LLMCompletion, LLMRequest, StructuredLLM
from leadlens.core.config import Settings
from leadlens.core.exceptions import ConfigurationError, LLMError, SchemaViolationError, StageError
from leadlens.intelligence.costs import CostRecord, StageResult, price_usage
from leadlens.intelligence.json_utils import parse_json_object
from leadlens.intelligence.stage_models import StageOutcome, strict_json_schema, validate_stage_payload

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=StageOutcome)


def run_structured_stage(
    llm: StructuredLLM,
    settings: Settings,
    *,
    stage: str,
    model_cls: Type[M],
    system_prompt: str,
    user_prompt: str,
) -> StageResult[M]:
    """
    Execute one stage call and return its validated payload and cost.

    Raises:
        StageError: the call failed or the response was unusable.
    """
    model = settings.stages.model_for(stage)
    request = LLMRequest(
        stage=stage,
        model=model,
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        schema_name=model_cls.__name__,
        json_schema=strict_json_schema(model_cls),
        max_tokens=settings.stages.max_tokens_for(stage),
        temperature=settings.stages.temperature_for(stage),
    )

    try:
        completion = llm.complete(request)
    except LLMError as exc:
        raise StageError(stage, exc.message, details=exc.details) from exc
    except Exception as exc:  # noqa: BLE001
        raise StageError(stage, str(exc) or type(exc).__name__) from exc

    cost = _cost_record(settings, stage, model, completion)

    try:
        data = parse_json_object(completion.content)
    except ValueError as exc:
        _log_discarded(stage, completion, str(exc))
        raise SchemaViolationError(stage, str(exc)) from exc

    try:
        payload = validate_stage_payload(stage, model_cls, data)
    except SchemaViolationError as exc:
        _log_discarded(stage, completion, exc.message, errors=exc.details.get("errors"))
        raise

    return StageResult(payload=payload, cost=cost)


def _cost_record(settings: Settings, stage: str, requested_model: str, completion: LLMCompletion) -> CostRecord:
    pricing = settings.pricing_for(completion.model) or settings.pricing_for(requested_model)
    if pricing is None:
        raise ConfigurationError(f"No pricing configured for model {requested_model}")
    return CostRecord(
        stage_name=stage,
        actual_cost=price_usage(pricing, completion.tokens_in, completion.tokens_out),
        tokens_in=completion.tokens_in,
        tokens_out=completion.tokens_out,
        model_used=completion.model,
    )


def _log_discarded(stage: str, completion: LLMCompletion, reason: str, errors=None) -> None:
    # Tokens were spent on a response that will not be used; keep a trace.
    logger.warning(
        "stage_response_rejected",
        stage=stage,
        reason=reason,
        errors=errors,
        model=completion.model,
        tokens_in=completion.tokens_in,
        tokens_out=completion.tokens_out,
    )
