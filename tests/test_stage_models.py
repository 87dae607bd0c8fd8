"""Tests for stage output validation and JSON Schema export."""

import pytest

from leadlens.core.exceptions import SchemaViolationError
from leadlens.intelligence.json_utils import parse_json_object
from leadlens.intelligence.stage_models import (
    DeepAnalysis,
    LightAnalysis,
    PreprocessorOutcome,
    TriageOutcome,
    stage_json_schema,
    validate_stage_payload,
)

from tests import sample_data


class TestTriageValidation:
    def test_valid_payload(self):
        outcome = validate_stage_payload("triage", TriageOutcome, sample_data.TRIAGE_RICH)
        assert outcome.data_richness == 85

    @pytest.mark.parametrize(
        "override",
        [
            {"lead_score": 101},
            {"data_richness": -1},
            {"confidence": 1.5},
            {"focus_points": ["one"]},
            {"focus_points": ["a", "b", "c", "d", "e"]},
            {"lead_score": "80"},
            {"lead_score": 80.0},
            {"confidence": "0.5"},
            {"early_exit": "false"},
            {"verdict": "great"},
        ],
    )
    def test_violations_are_rejected(self, override):
        with pytest.raises(SchemaViolationError) as exc_info:
            validate_stage_payload("triage", TriageOutcome, {**sample_data.TRIAGE_RICH, **override})
        assert exc_info.value.stage == "triage"
        assert exc_info.value.details["errors"]

    def test_missing_field_is_rejected(self):
        payload = dict(sample_data.TRIAGE_RICH)
        del payload["focus_points"]
        with pytest.raises(SchemaViolationError):
            validate_stage_payload("triage", TriageOutcome, payload)

    def test_integer_confidence_is_accepted(self):
        outcome = validate_stage_payload("triage", TriageOutcome, {**sample_data.TRIAGE_RICH, "confidence": 1})
        assert outcome.confidence == 1.0

    def test_non_object_payload(self):
        with pytest.raises(SchemaViolationError, match="expected a JSON object"):
            validate_stage_payload("triage", TriageOutcome, [sample_data.TRIAGE_RICH])


class TestPreprocessorValidation:
    def test_lists_are_truncated(self):
        payload = {
            **sample_data.PREPROCESSOR_FACTS,
            "content_themes": ["a", "b", "c", "d", "e", "f", "g"],
            "audience_signals": ["1", "2", "3", "4", "5"],
        }
        outcome = validate_stage_payload("preprocessor", PreprocessorOutcome, payload)
        assert outcome.content_themes == ["a", "b", "c", "d", "e"]
        assert outcome.audience_signals == ["1", "2", "3", "4"]

    def test_unknown_keys_are_rejected(self):
        with pytest.raises(SchemaViolationError):
            validate_stage_payload(
                "preprocessor", PreprocessorOutcome, {**sample_data.PREPROCESSOR_FACTS, "score": 9}
            )


class TestAnalysisValidation:
    def test_light_drops_deeper_fields(self):
        outcome = validate_stage_payload("light", LightAnalysis, sample_data.XRAY_ANALYSIS)
        assert "persuasion_strategy" not in outcome.to_dict()

    def test_deep_requires_its_fields(self):
        with pytest.raises(SchemaViolationError):
            validate_stage_payload("deep", DeepAnalysis, sample_data.LIGHT_ANALYSIS)

    def test_deep_audience_quality_enum(self):
        with pytest.raises(SchemaViolationError):
            validate_stage_payload("deep", DeepAnalysis, {**sample_data.DEEP_ANALYSIS, "audience_quality": "Great"})

    def test_quick_summary_length(self):
        with pytest.raises(SchemaViolationError):
            validate_stage_payload("light", LightAnalysis, {**sample_data.LIGHT_ANALYSIS, "quick_summary": "x" * 201})


class TestJsonSchemas:
    def test_every_object_is_closed(self):
        def walk(node):
            if isinstance(node, dict):
                if "properties" in node:
                    assert node["additionalProperties"] is False
                    assert sorted(node["required"]) == sorted(node["properties"])
                for value in node.values():
                    walk(value)
            elif isinstance(node, list):
                for item in node:
                    walk(item)

        for stage in ("triage", "preprocessor", "light", "deep", "xray", "business_context"):
            walk(stage_json_schema(stage))

    def test_triage_schema_bounds(self):
        schema = stage_json_schema("triage")
        props = schema["properties"]

        assert props["lead_score"]["minimum"] == 0
        assert props["lead_score"]["maximum"] == 100
        assert props["focus_points"]["minItems"] == 2
        assert props["focus_points"]["maxItems"] == 4

    def test_light_schema_has_no_deeper_fields(self):
        assert "outreach_message" not in stage_json_schema("light")["properties"]

    def test_unknown_stage(self):
        with pytest.raises(KeyError):
            stage_json_schema("summary")


class TestParseJsonObject:
    def test_plain_object(self):
        assert parse_json_object('{"a": 1}') == {"a": 1}

    def test_code_fence(self):
        assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    @pytest.mark.parametrize("text", ["", "   ", "[1, 2]", '{"a": 1', "Sure! here it is"])
    def test_rejects_malformed(self, text):
        with pytest.raises(ValueError):
            parse_json_object(text)
