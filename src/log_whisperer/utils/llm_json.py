from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?[ \t]*\n?", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")
_TRAILING_COMMA_RE = re.compile(r",\s*$")
_TRAILING_COLON_RE = re.compile(r":\s*$")

_CLOSERS = {"{": "}", "[": "]"}
_OPENERS = {"}": "{", "]": "["}


@dataclass
class JsonScanState:
    """Bracket and string state left over after one pass over a JSON prefix.

    ``stack`` holds unmatched openers in the order they were seen; the last
    element is the most recently opened structure.
    """

    stack: List[str] = field(default_factory=list)
    in_string: bool = False
    escaped: bool = False
    pushes: int = 0
    pops: int = 0

    @property
    def depth(self) -> int:
        return len(self.stack)


def strip_code_fence(text: str) -> str:
    """Remove a leading ```/```json fence line and a trailing ``` fence.

    Text that does not open with a fence is returned unchanged.
    """
    if text is None:
        return ""
    stripped = text.strip()
    if not stripped.startswith("```"):
        return text
    stripped = _FENCE_OPEN_RE.sub("", stripped, count=1)
    stripped = _FENCE_CLOSE_RE.sub("", stripped, count=1)
    return stripped.strip()


def scan_json_structure(text: str) -> JsonScanState:
    state = JsonScanState()
    for char in text:
        if state.in_string:
            if state.escaped:
                state.escaped = False
            elif char == "\\":
                state.escaped = True
            elif char == '"':
                state.in_string = False
            continue
        if char == '"':
            state.in_string = True
        elif char in _CLOSERS:
            state.stack.append(char)
            state.pushes += 1
        elif char in _OPENERS:
            # Mismatched closers are ignored; the input is expected to be broken.
            if state.stack and state.stack[-1] == _OPENERS[char]:
                state.stack.pop()
                state.pops += 1
    return state


def repair_truncated_json(text: str, state: Optional[JsonScanState] = None) -> str:
    """Close a truncated JSON document so that it can be handed to ``json.loads``.

    The repair is structural only: an open string is closed, a trailing comma
    is dropped, a key left without a value gets ``null`` and every open
    object/array is closed innermost first. A dangling key with no colon is
    left as is, so the result may still fail to parse.
    """
    repaired = strip_code_fence(text or "").strip()
    if not repaired:
        return "{}"

    if state is None:
        state = scan_json_structure(repaired)
    stack = list(state.stack)

    if state.in_string:
        if state.escaped:
            repaired = repaired[:-1]
        repaired += '"'

    repaired = _TRAILING_COMMA_RE.sub("", repaired)

    if _TRAILING_COLON_RE.search(repaired):
        repaired += " null"

    while stack:
        repaired += _CLOSERS[stack.pop()]
    return repaired


def describe_llm_failure(
    response: Any,
    required_keys: Optional[Iterable[str]] = None,
) -> Optional[Dict[str, Any]]:
    """Summarise why a model response could not be used, or None if it is fine."""
    if response is None:
        return {"error_type": "empty_response", "raw_len": 0}
    if isinstance(response, (dict, list)):
        data = response
        raw_text = ""
    elif isinstance(response, str):
        raw_text = response
        if not raw_text.strip():
            return {"error_type": "empty_response", "raw_len": len(raw_text)}
        try:
            data = json.loads(strip_code_fence(raw_text))
        except json.JSONDecodeError as exc:
            return {
                "error_type": "invalid_json",
                "raw_len": len(raw_text),
                "error": f"{exc.msg} at char {exc.pos}",
            }
    else:
        return {"error_type": "unsupported_type", "response_type": type(response).__name__}

    if not isinstance(data, dict):
        return {"error_type": "not_an_object", "raw_len": len(raw_text)}
    if required_keys:
        missing = [key for key in required_keys if key not in data]
        if missing:
            return {"error_type": "missing_keys", "missing_keys": missing, "raw_len": len(raw_text)}
    return None
