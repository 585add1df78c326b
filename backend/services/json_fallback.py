"""
Fallback JSON Repair Path - Recover hook fields from JSON-shaped output

Used when the model answers with a JSON object instead of the tag grammar,
or when the transport delivers structured payloads.
"""

from __future__ import annotations

import json
import re
from typing import Any

from json_repair import repair_json

from models.hook import Complexity, FeatureDetail, HookType
from services.tag_extractor import contains_tag_marker, parse_integer, phrase_to_hook_type

WRAPPER_KEY = "hookCodeJson"
_WRAPPER_PATTERN = re.compile(r'"hookCodeJson"\s*:\s*\{')

# Wire key -> record attribute
JSON_FIELD_MAP: dict[str, str] = {
    "name": "name",
    "description": "description",
    "code": "code",
    "hookCode": "code",
    "hookType": "hook_type",
    "gasEstimate": "gas_estimate",
    "complexity": "complexity",
    "functionalities": "functionalities",
    "implementationDetails": "implementation_details",
    "dependencies": "dependencies",
    "testCode": "test_code",
    "examples": "examples",
    "version": "version",
    "author": "author",
    "timestamp": "timestamp",
}


def looks_like_json(content: str) -> bool:
    """JSON-shaped and free of tag markers, which always take precedence"""
    if contains_tag_marker(content):
        return False
    return content.strip().startswith("{") or f'"{WRAPPER_KEY}"' in content


def load_json_object(text: str) -> dict[str, Any] | None:
    """Parse text as a JSON object, repairing truncation if needed"""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict):
        return data

    try:
        repaired = repair_json(text)
        data = json.loads(repaired)
    except (json.JSONDecodeError, ValueError, TypeError):
        return None
    return data if isinstance(data, dict) else None


def _wrapper_span(text: str) -> str | None:
    match = _WRAPPER_PATTERN.search(text)
    if not match:
        return None
    return text[match.end() - 1 :]


def parse_json_content(content: str) -> tuple[dict[str, Any], str | None] | None:
    """
    Parse accumulated content into (hook fields, reply text).

    Returns None when neither a direct nor a repaired parse yields an object.
    """
    data = load_json_object(content)

    if data is not None and isinstance(data.get(WRAPPER_KEY), dict):
        return unwrap_json_object(data)

    if data is None or WRAPPER_KEY in content:
        span = _wrapper_span(content)
        inner = load_json_object(span) if span else None
        if inner is not None:
            return inner, None

    if data is None:
        return None
    return unwrap_json_object(data)


def unwrap_json_object(data: dict[str, Any]) -> tuple[dict[str, Any], str | None]:
    """(hook fields, reply text) of one already-decoded object"""
    if isinstance(data.get(WRAPPER_KEY), dict):
        reply = data.get("message") if isinstance(data.get("message"), str) else None
        return data[WRAPPER_KEY], reply

    reply = data.get("reply") if isinstance(data.get("reply"), str) else None
    return data, reply


# ========== Field coercion ==========


def _coerce_str(value: Any) -> str | None:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _coerce_str_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    items = [_coerce_str(item) for item in value]
    return [item for item in items if item] or None


def _coerce_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        return parse_integer(value)
    return None


def _coerce_hook_type(value: Any) -> HookType | None:
    if not isinstance(value, str):
        return None
    try:
        return HookType(value.strip())
    except ValueError:
        return phrase_to_hook_type(value)


def _coerce_complexity(value: Any) -> Complexity | None:
    if not isinstance(value, str):
        return None
    try:
        return Complexity(value.strip().lower())
    except ValueError:
        return None


def _coerce_features(value: Any) -> list[FeatureDetail] | None:
    if not isinstance(value, list):
        return None
    features = []
    for item in value:
        if not isinstance(item, dict):
            continue
        name = _coerce_str(item.get("feature") or item.get("name"))
        if not name:
            continue
        features.append(
            FeatureDetail(
                name=name,
                description=_coerce_str(item.get("description")),
                code_snippet=_coerce_str(item.get("codeSnippet")),
            )
        )
    return features or None


_COERCERS = {
    "gas_estimate": _coerce_int,
    "hook_type": _coerce_hook_type,
    "complexity": _coerce_complexity,
    "functionalities": _coerce_str_list,
    "dependencies": _coerce_str_list,
    "examples": _coerce_str_list,
    "implementation_details": _coerce_features,
}


def coerce_fields(data: dict[str, Any]) -> dict[str, Any]:
    """Map known top-level keys onto record attributes, dropping bad values"""
    fields: dict[str, Any] = {}
    for key, value in data.items():
        attr = JSON_FIELD_MAP.get(key)
        if attr is None:
            continue
        coerced = _COERCERS.get(attr, _coerce_str)(value)
        if coerced is not None:
            fields[attr] = coerced
    if "implementation_details" in fields and "functionalities" not in fields:
        fields["functionalities"] = [f.name for f in fields["implementation_details"]]
    return fields
