"""Tests for the OpenAI structured-output client with a mocked SDK."""

from types import SimpleNamespace
from unittest.mock import Mock

import openai
import pytest

from leadlens.clients.llm_client import LLMRequest, OpenAIStructuredClient
from leadlens.core.config import LLMConfig, Settings
from leadlens.core.exceptions import ConfigurationError, ExternalServiceError, LLMError, RateLimitError


def _request(model="gpt-5-nano", temperature=0.1):
    return LLMRequest(
        stage="triage",
        model=model,
        system_prompt="system",
        user_prompt="user",
        schema_name="TriageOutcome",
        json_schema={"type": "object", "properties": {}, "additionalProperties": False, "required": []},
        max_tokens=400,
        temperature=temperature,
    )


def _completion(content='{"ok": true}', model="gpt-5-nano-2025-08-07"):
    return SimpleNamespace(
        model=model,
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=321, completion_tokens=54),
    )


def _status_error(cls, status_code, headers=None):
    response = Mock(status_code=status_code, headers=headers or {})
    return cls("provider error", response=response, body=None)


@pytest.fixture
def sdk():
    return Mock()


@pytest.fixture
def client(sdk):
    settings = Settings(llm=LLMConfig(openai_api_key="test-key", max_attempts=2))
    return OpenAIStructuredClient(settings, client=sdk)


def test_requires_api_key():
    with pytest.raises(ConfigurationError):
        OpenAIStructuredClient(Settings(llm=LLMConfig(openai_api_key=None)))


def test_request_shape(client, sdk):
    sdk.chat.completions.create.return_value = _completion()
    completion = client.complete(_request())

    kwargs = sdk.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-5-nano"
    assert kwargs["max_completion_tokens"] == 400
    assert kwargs["messages"][0] == {"role": "system", "content": "system"}
    assert kwargs["response_format"]["type"] == "json_schema"
    assert kwargs["response_format"]["json_schema"]["strict"] is True
    assert kwargs["response_format"]["json_schema"]["name"] == "TriageOutcome"
    assert "temperature" not in kwargs

    assert completion.content == '{"ok": true}'
    assert completion.model == "gpt-5-nano-2025-08-07"
    assert completion.tokens_in == 321
    assert completion.tokens_out == 54


def test_temperature_sent_for_other_models(client, sdk):
    sdk.chat.completions.create.return_value = _completion(model="gpt-4o")
    client.complete(_request(model="gpt-4o", temperature=0.3))

    assert sdk.chat.completions.create.call_args.kwargs["temperature"] == 0.3


def test_empty_choices_yield_empty_content(client, sdk):
    sdk.chat.completions.create.return_value = SimpleNamespace(model=None, choices=[], usage=None)
    completion = client.complete(_request())

    assert completion.content == ""
    assert completion.model == "gpt-5-nano"
    assert completion.tokens_in == 0


def test_transient_errors_are_retried(client, sdk):
    sdk.chat.completions.create.side_effect = [
        openai.APIConnectionError(request=Mock()),
        _completion(),
    ]
    completion = client.complete(_request())

    assert sdk.chat.completions.create.call_count == 2
    assert completion.tokens_out == 54


def test_rate_limit_after_retries(client, sdk):
    sdk.chat.completions.create.side_effect = _status_error(
        openai.RateLimitError, 429, headers={"retry-after": "7"}
    )

    with pytest.raises(RateLimitError) as exc_info:
        client.complete(_request())
    assert exc_info.value.retry_after == 7.0
    assert sdk.chat.completions.create.call_count == 2


def test_client_errors_are_not_retried(client, sdk):
    sdk.chat.completions.create.side_effect = _status_error(openai.BadRequestError, 400)

    with pytest.raises(ExternalServiceError) as exc_info:
        client.complete(_request())
    assert exc_info.value.status_code == 400
    assert sdk.chat.completions.create.call_count == 1


def test_connection_failure_maps_to_llm_error(client, sdk):
    sdk.chat.completions.create.side_effect = openai.APIConnectionError(request=Mock())

    with pytest.raises(LLMError):
        client.complete(_request())
