"""Tests for configuration loading and validation."""

from decimal import Decimal

import pydantic
import pytest

from leadlens.core import config as config_module
from leadlens.core.config import LLMConfig, ModelPricing, Settings, StageModelConfig
from leadlens.core.exceptions import ConfigurationError


def test_default_stage_models(settings):
    assert settings.stages.model_for("triage") == "gpt-5-nano"
    assert settings.stages.model_for("preprocessor") == "gpt-5-nano"
    assert settings.stages.model_for("light") == "gpt-5-nano"
    assert settings.stages.model_for("deep") == "gpt-5-mini"
    assert settings.stages.model_for("xray") == "gpt-5"
    assert settings.stages.model_for("business_context") == "gpt-5-mini"


def test_tiers_share_analysis_temperature(settings):
    stages = settings.stages
    assert stages.temperature_for("light") == stages.temperature_for("xray") == stages.analysis_temperature
    assert stages.temperature_for("triage") == 0.1


def test_unknown_stage(settings):
    with pytest.raises(ConfigurationError):
        settings.stages.model_for("summary")


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("TRIAGE_MODEL", "gpt-4o")
    monkeypatch.setenv("BULK_BATCH_SIZE", "5")
    monkeypatch.setenv("LOG_JSON", "yes")

    settings = Settings()
    assert settings.stages.triage_model == "gpt-4o"
    assert settings.bulk.batch_size == 5
    assert settings.log_json is True


def test_stage_model_without_pricing_is_rejected():
    with pytest.raises(pydantic.ValidationError, match="No pricing configured"):
        Settings(stages=StageModelConfig(triage_model="mystery-model"))


def test_custom_pricing_table():
    pricing = {
        name: ModelPricing(input_per_million=Decimal("1"), output_per_million=Decimal("2"))
        for name in ("gpt-5", "gpt-5-mini", "gpt-5-nano")
    }
    settings = Settings(model_pricing=pricing)
    assert settings.pricing_for("gpt-5").output_per_million == Decimal("2")
    assert settings.pricing_for("gpt-4o") is None


def test_dated_model_names_resolve_by_prefix(settings):
    assert settings.pricing_for("gpt-5-mini-2025-08-07") == settings.model_pricing["gpt-5-mini"]
    assert settings.pricing_for("gpt-5-2025-08-07") == settings.model_pricing["gpt-5"]
    assert settings.pricing_for("gpt-5-nano") == settings.model_pricing["gpt-5-nano"]
    assert settings.pricing_for("o3") is None


def test_validate_required_settings(monkeypatch):
    monkeypatch.setattr(config_module, "settings", Settings(llm=LLMConfig(openai_api_key=None)))
    assert config_module.validate_required_settings("analysis") == ["OPENAI_API_KEY"]
    assert config_module.validate_required_settings("minimal") == []

    monkeypatch.setattr(config_module, "settings", Settings(llm=LLMConfig(openai_api_key="sk-test")))
    assert config_module.validate_required_settings("analysis") == []
