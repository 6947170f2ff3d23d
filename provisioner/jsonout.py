from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any, Dict, List

from provisioner.core.errors import ResponseShapeError

# Keys that only appear on a flat web SDK config object.
FLAT_CONFIG_KEYS = ("apiKey", "appId", "projectId")

_decoder = json.JSONDecoder()

# "{" followed by a key or by "}" is where a JSON object can begin.
_OBJECT_START_RE = re.compile(r"\{\s*(\"|\})")


def extract_json_object(text: str, *, label: str = "Parse JSON") -> Dict[str, Any]:
    """
    Returns the first top-level JSON object embedded in CLI output.

    firebase-tools may print update notices or progress lines around its --json payload. A "{"
    that cannot open a JSON object (e.g. "{placeholder}") is skipped; the first one that can
    must decode completely, otherwise the output is truncated or malformed and we fail rather
    than fall through to an object nested inside it.
    """
    s = text or ""
    idx = s.find("{")
    while idx != -1:
        if not _OBJECT_START_RE.match(s, idx):
            idx = s.find("{", idx + 1)
            continue
        try:
            obj, _ = _decoder.raw_decode(s, idx)
        except json.JSONDecodeError as e:
            raise ResponseShapeError(label, f"malformed JSON object in command output: {e.msg}", output=s) from e
        return obj

    raise ResponseShapeError(label, "no JSON object found in command output", output=s)


def extract_json_list(text: str, *, label: str = "Parse JSON") -> List[Any]:
    """
    gcloud --format=json emits a bare array. Falls back to a `result` list inside an object.
    """
    s = (text or "").strip()
    if not s:
        return []
    start = s.find("[")
    if start != -1 and (s.find("{") == -1 or start < s.find("{")):
        try:
            obj, _ = _decoder.raw_decode(s, start)
            if isinstance(obj, list):
                return obj
        except json.JSONDecodeError:
            pass
    obj = extract_json_object(s, label=label)
    result = obj.get("result")
    if isinstance(result, list):
        return result
    raise ResponseShapeError(label, "expected a JSON list", output=s)


def result_list(payload: Dict[str, Any], *, label: str) -> List[Dict[str, Any]]:
    """firebase --json list commands answer {"status": "success", "result": [...]}."""
    result = payload.get("result")
    if result is None:
        return []
    if not isinstance(result, list):
        raise ResponseShapeError(label, "expected 'result' to be a list", output=json.dumps(payload))
    return [r for r in result if isinstance(r, dict)]


# -------------------------
# SDK config envelope
# -------------------------
class EnvelopeShape(Enum):
    RESULT_SDK_CONFIG = "result.sdkConfig"  # {"result": {"sdkConfig": {...}}}
    RESULT_FLAT = "result"                  # {"result": {...flat...}}
    SDK_CONFIG = "sdkConfig"                # {"sdkConfig": {...}}
    FLAT = "flat"                           # {...flat...}


def _is_flat(obj: Dict[str, Any]) -> bool:
    return any(k in obj for k in FLAT_CONFIG_KEYS)


def classify_envelope(payload: Dict[str, Any]) -> EnvelopeShape:
    inner = payload
    wrapped = isinstance(payload.get("result"), dict)
    if wrapped:
        inner = payload["result"]

    nested = not _is_flat(inner) and isinstance(inner.get("sdkConfig"), dict)

    if wrapped and nested:
        return EnvelopeShape.RESULT_SDK_CONFIG
    if wrapped:
        return EnvelopeShape.RESULT_FLAT
    if nested:
        return EnvelopeShape.SDK_CONFIG
    return EnvelopeShape.FLAT


def unwrap_sdk_config(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Unwraps `result` first, then `sdkConfig` when what remains is not already the flat config.
    """
    shape = classify_envelope(payload)
    if shape is EnvelopeShape.RESULT_SDK_CONFIG:
        return dict(payload["result"]["sdkConfig"])
    if shape is EnvelopeShape.RESULT_FLAT:
        return dict(payload["result"])
    if shape is EnvelopeShape.SDK_CONFIG:
        return dict(payload["sdkConfig"])
    if shape is EnvelopeShape.FLAT:
        return dict(payload)
    raise AssertionError(f"unhandled envelope shape: {shape}")
