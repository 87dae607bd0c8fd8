"""
Configuration management for LeadLens.

Provides centralized, validated configuration from environment variables
with proper type checking and defaults. Settings are built once and handed
to the orchestrator and its collaborators at construction time.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from leadlens.core.exceptions import ConfigurationError
from leadlens.core.models import (
    STAGE_BUSINESS_CONTEXT,
    STAGE_PREPROCESSOR,
    STAGE_TRIAGE,
    Tier,
)


def _parse_bool(v) -> bool:
    if isinstance(v, str):
        return v.lower() in ("1", "true", "yes", "y")
    return bool(v)


class ModelPricing(BaseModel):
    """USD price per one million tokens for a single model."""

    input_per_million: Decimal = Field(..., ge=0)
    output_per_million: Decimal = Field(..., ge=0)


def _default_pricing() -> Dict[str, ModelPricing]:
    table = {
        "gpt-5": ("1.25", "10.00"),
        "gpt-5-mini": ("0.25", "2.00"),
        "gpt-5-nano": ("0.05", "0.40"),
        "gpt-4o": ("2.50", "10.00"),
        "gpt-4o-mini": ("0.15", "0.60"),
        "claude-sonnet-4": ("3.00", "15.00"),
        "claude-opus-4-1": ("15.00", "75.00"),
    }
    return {
        name: ModelPricing(input_per_million=Decimal(i), output_per_million=Decimal(o))
        for name, (i, o) in table.items()
    }


class LLMConfig(BaseSettings):
    """AI provider configuration."""

    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_base_url: Optional[str] = Field(default=None, alias="OPENAI_BASE_URL")
    request_timeout: float = Field(default=60.0, gt=0, alias="LLM_REQUEST_TIMEOUT")
    max_attempts: int = Field(default=3, ge=1, alias="LLM_MAX_ATTEMPTS")

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", extra="ignore", populate_by_name=True
    )


class StageModelConfig(BaseSettings):
    """Model, output ceiling and temperature per pipeline stage."""

    triage_model: str = Field(default="gpt-5-nano", alias="TRIAGE_MODEL")
    preprocessor_model: str = Field(default="gpt-5-nano", alias="PREPROCESSOR_MODEL")
    light_model: str = Field(default="gpt-5-nano", alias="LIGHT_MODEL")
    deep_model: str = Field(default="gpt-5-mini", alias="DEEP_MODEL")
    xray_model: str = Field(default="gpt-5", alias="XRAY_MODEL")
    context_model: str = Field(default="gpt-5-mini", alias="CONTEXT_MODEL")

    triage_max_tokens: int = Field(default=400, gt=0, alias="TRIAGE_MAX_TOKENS")
    preprocessor_max_tokens: int = Field(default=800, gt=0, alias="PREPROCESSOR_MAX_TOKENS")
    light_max_tokens: int = Field(default=1000, gt=0, alias="LIGHT_MAX_TOKENS")
    deep_max_tokens: int = Field(default=2000, gt=0, alias="DEEP_MAX_TOKENS")
    xray_max_tokens: int = Field(default=3000, gt=0, alias="XRAY_MAX_TOKENS")
    context_max_tokens: int = Field(default=400, gt=0, alias="CONTEXT_MAX_TOKENS")

    triage_temperature: float = Field(default=0.1, ge=0, le=2, alias="TRIAGE_TEMPERATURE")
    preprocessor_temperature: float = Field(default=0.2, ge=0, le=2, alias="PREPROCESSOR_TEMPERATURE")
    analysis_temperature: float = Field(default=0.3, ge=0, le=2, alias="ANALYSIS_TEMPERATURE")
    context_temperature: float = Field(default=0.3, ge=0, le=2, alias="CONTEXT_TEMPERATURE")

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", extra="ignore", populate_by_name=True
    )

    def _key(self, stage: str) -> str:
        if stage == STAGE_BUSINESS_CONTEXT:
            return "context"
        if stage in (STAGE_TRIAGE, STAGE_PREPROCESSOR) or stage in Tier.values():
            return stage
        raise ConfigurationError(f"Unknown pipeline stage: {stage}")

    def model_for(self, stage: str) -> str:
        return getattr(self, f"{self._key(stage)}_model")

    def max_tokens_for(self, stage: str) -> int:
        return getattr(self, f"{self._key(stage)}_max_tokens")

    def temperature_for(self, stage: str) -> float:
        key = self._key(stage)
        if key in Tier.values():
            return self.analysis_temperature
        return getattr(self, f"{key}_temperature")

    def all_models(self) -> List[str]:
        return [
            self.triage_model,
            self.preprocessor_model,
            self.light_model,
            self.deep_model,
            self.xray_model,
            self.context_model,
        ]


class BulkConfig(BaseSettings):
    """Batch analysis configuration."""

    batch_size: int = Field(default=3, ge=1, le=20, alias="BULK_BATCH_SIZE")
    pause_seconds: float = Field(default=0.5, ge=0, alias="BULK_PAUSE_SECONDS")

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", extra="ignore", populate_by_name=True
    )


class Settings(BaseSettings):
    """Main application settings."""

    # Environment
    environment: str = Field(default="production", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    # Component configurations
    llm: LLMConfig = Field(default_factory=LLMConfig)
    stages: StageModelConfig = Field(default_factory=StageModelConfig)
    bulk: BulkConfig = Field(default_factory=BulkConfig)
    model_pricing: Dict[str, ModelPricing] = Field(default_factory=_default_pricing)

    @field_validator("debug", "log_json", mode="before")
    @classmethod
    def parse_flags(cls, v):
        return _parse_bool(v)

    @model_validator(mode="after")
    def check_stage_pricing(self) -> "Settings":
        missing = [m for m in self.stages.all_models() if self.pricing_for(m) is None]
        if missing:
            raise ValueError(f"No pricing configured for stage model(s): {sorted(set(missing))}")
        return self

    def pricing_for(self, model: str) -> Optional[ModelPricing]:
        """
        Look up pricing for a model name.

        Dated snapshot names (``gpt-5-mini-2025-08-07``) resolve to the
        longest configured name they start with.
        """
        if model in self.model_pricing:
            return self.model_pricing[model]
        candidates = [name for name in self.model_pricing if model.startswith(f"{name}-")]
        if not candidates:
            return None
        return self.model_pricing[max(candidates, key=len)]

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


# Global settings instance
settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def validate_required_settings(for_workflow: str = "analysis") -> List[str]:
    """
    Validate that required settings are present for specific workflows.

    Args:
        for_workflow: Workflow name ("analysis" or "minimal")

    Returns:
        List of missing required settings
    """
    missing = []
    try:
        config = get_settings()

        if for_workflow == "analysis":
            if not config.llm.openai_api_key:
                missing.append("OPENAI_API_KEY")

        elif for_workflow == "minimal":
            pass

    except Exception as e:
        missing.append(f"Configuration error: {e}")

    return missing


def print_configuration_summary():
    """Print a summary of the current configuration for debugging."""
    try:
        config = get_settings()
        print("=== LeadLens Configuration Summary ===")
        print(f"Environment: {config.environment}")
        print(f"Debug Mode: {config.debug}")
        print(f"JSON Logs: {config.log_json}")
        print()
        print(f"OpenAI: {'✓' if config.llm.openai_api_key else '✗'}")
        print(f"Request Timeout: {config.llm.request_timeout}s")
        print(f"Max Attempts: {config.llm.max_attempts}")
        print()
        print("Stage Models:")
        for stage in (STAGE_TRIAGE, STAGE_PREPROCESSOR, *Tier.values(), STAGE_BUSINESS_CONTEXT):
            model = config.stages.model_for(stage)
            pricing = config.pricing_for(model)
            print(
                f"  {stage}: {model} "
                f"(${pricing.input_per_million}/1M in, ${pricing.output_per_million}/1M out)"
            )
        print()
        print(f"Bulk Batch Size: {config.bulk.batch_size}")
        print(f"Bulk Pause: {config.bulk.pause_seconds}s")
        print("=" * 38)
    except Exception as e:
        print(f"Error loading configuration: {e}")
