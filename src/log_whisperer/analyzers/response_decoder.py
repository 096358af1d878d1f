"""Resilient decoder for structured analysis responses.

The model is asked for JSON matching ``analysis_result.schema.json`` but the
reply can arrive wrapped in a markdown fence or cut off by the output token
cap. Decoding walks a small state machine::

    RAW -> STRIPPED -> PARSED
                    -> PARSE_FAILED -> REPAIRED -> PARSED
                                               -> UNRECOVERABLE

Exactly one repair attempt is made. The decoder never raises: anything it
cannot turn into a schema-valid result becomes the fixed fallback result.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from log_whisperer.models.analysis_result import AnalysisResult
from log_whisperer.observability.logger import EventLogger
from log_whisperer.telemetry import span
from log_whisperer.utils.json_schema import analysis_result_schema, schema_errors
from log_whisperer.utils.llm_json import describe_llm_failure, repair_truncated_json, strip_code_fence

logger = logging.getLogger(__name__)

_LIST_FIELDS = ("timeline", "mitreMapping")


class DecodeState(str, Enum):
    RAW = "RAW"
    STRIPPED = "STRIPPED"
    PARSED = "PARSED"
    PARSE_FAILED = "PARSE_FAILED"
    REPAIRED = "REPAIRED"
    UNRECOVERABLE = "UNRECOVERABLE"


@dataclass
class DecodeOutcome:
    state: DecodeState
    result: AnalysisResult
    raw_length: int
    repaired: bool = False
    issues: List[str] = field(default_factory=list)
    # Last non-terminal state reached; useful when the outcome is UNRECOVERABLE.
    stage_reached: Optional[DecodeState] = None

    @property
    def is_fallback(self) -> bool:
        return self.state == DecodeState.UNRECOVERABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "repaired": self.repaired,
            "is_fallback": self.is_fallback,
            "raw_length": self.raw_length,
            "issues": list(self.issues),
        }


def fallback_result() -> AnalysisResult:
    return AnalysisResult.fallback()


def decode_analysis_response(
    raw: Any,
    event_logger: EventLogger | None = None,
    schema: Optional[Dict[str, Any]] = None,
) -> DecodeOutcome:
    raw_text = raw if isinstance(raw, str) else ("" if raw is None else str(raw))
    raw_length = len(raw_text)
    schema = schema if schema is not None else analysis_result_schema()

    with span("analysis.decode", raw_length=raw_length) as sp:
        state = DecodeState.RAW
        text = strip_code_fence(raw_text)
        state = DecodeState.STRIPPED
        repaired = False

        data, error = _try_parse(text)
        if error is not None:
            state = DecodeState.PARSE_FAILED
            logger.warning(f"JSON parse failed, attempting repair. Raw text length: {raw_length}")
            _log_event(event_logger, "llm.parse_error", stage=state.value, raw_len=raw_length, error=error)

            data, error = _try_parse(repair_truncated_json(text))
            state = DecodeState.REPAIRED
            repaired = True
            if error is not None:
                sp.set_attribute("decode.state", DecodeState.UNRECOVERABLE.value)
                return _unrecoverable(raw_text, state, [f"$: {error}"], repaired, event_logger, schema)

        issues = schema_errors(data, schema)
        result, coerce_issues = _coerce(data)
        issues.extend(coerce_issues)
        if result is None:
            sp.set_attribute("decode.state", DecodeState.UNRECOVERABLE.value)
            return _unrecoverable(raw_text, state, issues, repaired, event_logger, schema)

        if issues:
            logger.info(f"Decoded analysis with {len(issues)} schema issue(s): {'; '.join(issues[:5])}")
        sp.set_attribute("decode.state", DecodeState.PARSED.value)
        sp.set_attribute("decode.repaired", repaired)
        return DecodeOutcome(
            state=DecodeState.PARSED,
            result=result,
            raw_length=raw_length,
            repaired=repaired,
            issues=issues,
            stage_reached=state,
        )


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def _try_parse(text: str) -> tuple[Any, Optional[str]]:
    try:
        return json.loads(text, parse_constant=_reject_constant), None
    except json.JSONDecodeError as exc:
        return None, f"{exc.msg} at char {exc.pos}"
    except ValueError as exc:
        return None, str(exc)
    except RecursionError:
        return None, "nesting too deep"


def _coerce(data: Any) -> tuple[Optional[AnalysisResult], List[str]]:
    if not isinstance(data, dict):
        return None, [f"$: expected an object, got {type(data).__name__}"]
    if "threatScore" not in data or data["threatScore"] is None:
        return None, []

    issues: List[str] = []
    payload = dict(data)
    for key in _LIST_FIELDS:
        if payload.get(key) is None:
            payload[key] = []
    if payload.get("markdownReport") is None:
        payload["markdownReport"] = ""

    score = payload["threatScore"]
    if isinstance(score, bool):
        return None, []
    if isinstance(score, float) and not math.isfinite(score):
        return None, [f"threatScore: {score} is not a finite number"]
    if isinstance(score, float) and not score.is_integer():
        payload["threatScore"] = score = round(score)
        issues.append(f"threatScore: rounded {data['threatScore']} to {score}")
    if isinstance(score, (int, float)) and not 0 <= score <= 100:
        payload["threatScore"] = max(0, min(100, score))
        issues.append(f"threatScore: clamped {score} to {payload['threatScore']}")

    try:
        return AnalysisResult.model_validate(payload), issues
    except ValidationError as exc:
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ())) or "$"
            issues.append(f"{loc}: {err.get('msg')}")
        return None, issues


def _unrecoverable(
    raw_text: str,
    stage: DecodeState,
    issues: List[str],
    repaired: bool,
    event_logger: EventLogger | None,
    schema: Dict[str, Any],
) -> DecodeOutcome:
    raw_length = len(raw_text)
    failure = describe_llm_failure(raw_text, schema.get("required")) or {"error_type": "invalid_values"}
    logger.error(
        f"Failed to recover analysis JSON (stage={stage.value}, raw_len={raw_length}, "
        f"error_type={failure['error_type']}); using fallback result"
    )
    _log_event(
        event_logger,
        "llm.fallback",
        stage=stage.value,
        raw_len=raw_length,
        error_type=failure["error_type"],
        missing_keys=failure.get("missing_keys"),
        issues=issues[:10],
    )
    return DecodeOutcome(
        state=DecodeState.UNRECOVERABLE,
        result=fallback_result(),
        raw_length=raw_length,
        repaired=repaired,
        issues=issues,
        stage_reached=stage,
    )


def _log_event(event_logger: EventLogger | None, event_type: str, **fields: Any) -> None:
    if event_logger:
        event_logger.log(event_type, llm_step="decode", **fields)
