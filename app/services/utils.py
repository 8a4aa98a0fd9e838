"""
JobSafe Core Utilities
======================

Shared helpers for reading LLM output.

USAGE
-----
    from app.services.utils import parse_llm_json, snippet

    data = parse_llm_json(raw_text)   # raises ValueError on bad JSON
"""

import json
import re
from typing import Any

__all__ = [
    "strip_code_fences",
    "parse_llm_json",
    "snippet",
]


# =============================================================================
# JSON PARSING
# =============================================================================

_OPENING_FENCE = re.compile(r"^```(?:json)?[ \t]*\n?", re.IGNORECASE)
_CLOSING_FENCE = re.compile(r"\n?```$")


def strip_code_fences(text: str) -> str:
    """
    Remove one markdown code fence wrapping the whole reply.

        ```json\\n{"a": 1}\\n```  ->  {"a": 1}

    Text without fences is returned trimmed and otherwise untouched.
    """
    cleaned = text.strip()
    cleaned = _OPENING_FENCE.sub("", cleaned, count=1)
    cleaned = _CLOSING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_llm_json(text: str) -> Any:
    """
    Parse an LLM reply as JSON, with or without a ```json fence.

    RAISES
    ------
    ValueError
        If the reply is empty or not valid JSON
    """
    cleaned = strip_code_fences(text or "")
    if not cleaned:
        raise ValueError("Empty response")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e.msg}") from e


def snippet(text: str, limit: int = 300) -> str:
    """First `limit` characters of text, for error messages."""
    return (text or "")[:limit]
