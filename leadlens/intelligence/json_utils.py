"""Utilities for decoding LLM payloads that should contain JSON objects."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional


def parse_json_object(text: Optional[str]) -> Dict[str, Any]:
    """
    Parse a JSON object from an LLM response.

    Tolerates a surrounding markdown code fence, nothing else: prose around
    the object or a truncated object is a malformed response.
    """
    if not text or not text.strip():
        raise ValueError("Empty payload")

    candidate = text.strip()

    if candidate.startswith("```"):
        parts = candidate.split("```")
        for part in parts:
            part = part.strip()
            if part.lower().startswith("json"):
                part = part[4:].strip()
            if part.startswith("{"):
                candidate = part
                break

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Could not decode JSON payload: {exc.msg}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data
