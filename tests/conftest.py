"""Configure pytest fixtures and environment for LeadLens tests."""

from __future__ import annotations

import json
import threading
from collections import Counter
from typing import Any, Dict, List

import pytest
from dotenv import load_dotenv

from leadlens.clients.llm_client import LLMCompletion, LLMRequest
from leadlens.core.config import LLMConfig, Settings
from leadlens.core.models import BusinessRecord, ProfileRecord

from tests import sample_data


def pytest_sessionstart(session):
    """Load environment variables before settings are built."""
    load_dotenv()


class ScriptedLLM:
    """
    Test double for the AI-call collaborator.

    ``responses`` maps a stage name to the payload to answer with: a dict is
    returned as JSON, a string verbatim, an exception instance is raised and
    a callable is invoked with the request.
    """

    def __init__(self, responses: Dict[str, Any], tokens: Dict[str, tuple] | None = None):
        self.responses = dict(responses)
        self.tokens = tokens or {}
        self.calls: Counter = Counter()
        self.requests: List[LLMRequest] = []
        self._lock = threading.Lock()

    def complete(self, request: LLMRequest) -> LLMCompletion:
        with self._lock:
            self.calls[request.stage] += 1
            self.requests.append(request)

        if request.stage not in self.responses:
            raise AssertionError(f"unexpected call for stage {request.stage}")
        response = self.responses[request.stage]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(request)
        content = response if isinstance(response, str) else json.dumps(response)

        tokens_in, tokens_out = self.tokens.get(request.stage, (1000, 200))
        return LLMCompletion(content=content, model=request.model, tokens_in=tokens_in, tokens_out=tokens_out)

    def requests_for(self, stage: str) -> List[LLMRequest]:
        return [r for r in self.requests if r.stage == stage]


@pytest.fixture
def settings() -> Settings:
    """Settings with a dummy key and default models and pricing."""
    return Settings(llm=LLMConfig(openai_api_key="test-key"))


@pytest.fixture
def profile() -> ProfileRecord:
    return ProfileRecord.model_validate(sample_data.PROFILE_DATA)


@pytest.fixture
def sparse_profile() -> ProfileRecord:
    return ProfileRecord.model_validate(sample_data.SPARSE_PROFILE_DATA)


@pytest.fixture
def business() -> BusinessRecord:
    return BusinessRecord.model_validate(sample_data.BUSINESS_WITH_CONTEXT)


@pytest.fixture
def cold_business() -> BusinessRecord:
    return BusinessRecord.model_validate(sample_data.BUSINESS_WITHOUT_CONTEXT)


@pytest.fixture
def scripted_llm():
    """Factory for a :class:`ScriptedLLM` pre-loaded with valid payloads for every stage."""

    def _make(**overrides: Any) -> ScriptedLLM:
        responses = {
            "business_context": sample_data.CONTEXT_SYNTHESIS,
            "triage": sample_data.TRIAGE_RICH,
            "preprocessor": sample_data.PREPROCESSOR_FACTS,
            **sample_data.ANALYSIS_BY_TIER,
        }
        tokens = overrides.pop("tokens", None)
        responses.update(overrides)
        return ScriptedLLM(responses, tokens=tokens)

    return _make
