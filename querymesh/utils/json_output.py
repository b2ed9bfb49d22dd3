"""Helpers for pulling JSON objects out of model output."""

from __future__ import annotations

import json
from typing import Any


def extract_code_block(content: str, include_json: bool = False) -> str | None:
    """Return the first fenced block, stripped of a ``sql``/``json`` tag."""
    if "```" not in content:
        return None
    chunks = content.split("```")
    for i in range(1, len(chunks), 2):
        block = chunks[i].strip()
        if block.startswith("sql"):
            block = block[3:].strip()
        elif include_json and block.startswith("json"):
            block = block[4:].strip()
        if block:
            return block
    return None


def extract_json_payload(content: str) -> dict[str, Any] | None:
    """
    Parse a JSON object from model output.

    Tries the raw text, then a fenced block, then the outermost brace span.
    Returns None when no object can be recovered.
    """
    if not content:
        return None

    try:
        payload = json.loads(content)
        if isinstance(payload, dict):
            return payload
    except json.JSONDecodeError:
        pass

    fenced = extract_code_block(content, include_json=True)
    if fenced:
        try:
            payload = json.loads(fenced)
            if isinstance(payload, dict):
                return payload
        except json.JSONDecodeError:
            pass

    brace_start = content.find("{")
    brace_end = content.rfind("}")
    if brace_start != -1 and brace_end != -1 and brace_end > brace_start:
        snippet = content[brace_start : brace_end + 1]
        try:
            payload = json.loads(snippet)
            if isinstance(payload, dict):
                return payload
        except json.JSONDecodeError:
            pass

    return None
