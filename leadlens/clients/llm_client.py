"""
AI-call collaborator used by every stage runner.

Stages hand over a prompt/schema pair and get back the raw JSON text plus
token usage; retries and timeouts live here, never in the orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import openai
import structlog
from openai import OpenAI

from leadlens.core.config import Settings
from leadlens.core.exceptions import ConfigurationError, ExternalServiceError, LLMError, RateLimitError
from leadlens.utils.reliability import with_retry

logger = structlog.get_logger(__name__)

_TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


@dataclass(frozen=True)
class LLMRequest:
    """One structured-output call on behalf of a stage."""

    stage: str
    model: str
    system_prompt: str
    user_prompt: str
    schema_name: str
    json_schema: Dict[str, Any]
    max_tokens: int
    temperature: Optional[float] = None


@dataclass(frozen=True)
class LLMCompletion:
    """Raw response text and token usage reported by the provider."""

    content: str
    model: str
    tokens_in: int
    tokens_out: int


class StructuredLLM(Protocol):
    """Anything that can answer an :class:`LLMRequest`."""

    def complete(self, request: LLMRequest) -> LLMCompletion:
        ...


class OpenAIStructuredClient:
    """Wraps OpenAI chat completions with strict JSON-schema output."""

    def __init__(self, settings: Settings, client: Optional[OpenAI] = None) -> None:
        if client is None:
            if not settings.llm.openai_api_key:
                raise ConfigurationError("OPENAI_API_KEY is required for OpenAIStructuredClient")
            client = OpenAI(
                api_key=settings.llm.openai_api_key,
                base_url=settings.llm.openai_base_url,
                timeout=settings.llm.request_timeout,
                max_retries=0,
            )
        self._client = client
        self._call = with_retry(
            max_attempts=settings.llm.max_attempts,
            retry_exceptions=_TRANSIENT_ERRORS,
        )(self._create)

    def complete(self, request: LLMRequest) -> LLMCompletion:
        """Execute the request and return the completion text and usage."""
        try:
            completion = self._call(request)
        except openai.RateLimitError as exc:
            raise RateLimitError(
                f"OpenAI rate limit hit during {request.stage}",
                retry_after=_retry_after(exc),
                details={"model": request.model},
            ) from exc
        except openai.APIStatusError as exc:
            raise ExternalServiceError(
                "openai", str(exc), status_code=exc.status_code, details={"model": request.model}
            ) from exc
        except openai.OpenAIError as exc:
            raise LLMError(
                f"OpenAI call failed during {request.stage}: {exc}", details={"model": request.model}
            ) from exc

        choice = completion.choices[0] if completion.choices else None
        content = (choice.message.content if choice and choice.message else None) or ""
        usage = completion.usage
        return LLMCompletion(
            content=content,
            model=completion.model or request.model,
            tokens_in=getattr(usage, "prompt_tokens", 0) or 0,
            tokens_out=getattr(usage, "completion_tokens", 0) or 0,
        )

    def _create(self, request: LLMRequest):
        kwargs: Dict[str, Any] = {
            "model": request.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "max_completion_tokens": request.max_tokens,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": request.schema_name,
                    "strict": True,
                    "schema": request.json_schema,
                },
            },
        }
        # gpt-5 family only accepts the default temperature
        if request.temperature is not None and not request.model.lower().startswith("gpt-5"):
            kwargs["temperature"] = request.temperature

        logger.debug("llm_request", stage=request.stage, model=request.model)
        return self._client.chat.completions.create(**kwargs)


def _retry_after(exc: "openai.RateLimitError") -> Optional[float]:
    response = getattr(exc, "response", None)
    value = response.headers.get("retry-after") if response is not None else None
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None
