from __future__ import annotations

import json
from pathlib import Path

from log_whisperer.analyzers.response_decoder import DecodeState, decode_analysis_response, fallback_result
from log_whisperer.models.analysis_result import FALLBACK_REPORT, Severity
from log_whisperer.observability.logger import EventLogger

VALID_DOC = {
    "threatScore": 72,
    "markdownReport": "## Executive Summary\nSQL injection attempts against /login.",
    "timeline": [
        {"timestamp": "10:00:01", "description": "UNION SELECT payload in query string", "severity": "HIGH"},
        {"timestamp": "10:00:09", "description": "Scanner user agent observed", "severity": "LOW"},
    ],
    "mitreMapping": [
        {"tactic": "Initial Access", "id": "T1190", "name": "Exploit Public-Facing Application"},
        {"tactic": "Reconnaissance", "id": "T1595.002", "name": "Vulnerability Scanning"},
    ],
}
VALID_TEXT = json.dumps(VALID_DOC)

FALLBACK_DICT = {
    "threatScore": 0,
    "markdownReport": FALLBACK_REPORT,
    "timeline": [],
    "mitreMapping": [],
}


def _doc(**overrides):
    doc = json.loads(VALID_TEXT)
    doc.update(overrides)
    return json.dumps(doc)


def test_well_formed_document_round_trips():
    outcome = decode_analysis_response(VALID_TEXT)
    assert outcome.state == DecodeState.PARSED
    assert not outcome.repaired
    assert outcome.issues == []
    assert outcome.result.to_dict() == VALID_DOC


def test_fenced_document_round_trips():
    outcome = decode_analysis_response("```json\n" + json.dumps(VALID_DOC, indent=2) + "\n```")
    assert outcome.state == DecodeState.PARSED
    assert outcome.result.to_dict() == VALID_DOC


def test_fenced_partial_document_is_flagged_not_rejected():
    outcome = decode_analysis_response('```json\n{"threatScore": 10}\n```')
    assert outcome.state == DecodeState.PARSED
    assert not outcome.repaired
    assert outcome.result.threat_score == 10
    assert outcome.result.timeline == []
    assert outcome.result.mitre_mapping == []
    flagged = " ".join(outcome.issues)
    assert "markdownReport" in flagged
    assert "timeline" in flagged
    assert "mitreMapping" in flagged
    assert set(outcome.result.to_dict()) == {"threatScore", "markdownReport", "timeline", "mitreMapping"}


def test_truncated_mid_key_falls_back():
    outcome = decode_analysis_response('{"threatScore": 80, "timeline": [{"timestamp":"t1","desc')
    assert outcome.state == DecodeState.UNRECOVERABLE
    assert outcome.is_fallback
    assert outcome.repaired
    assert outcome.stage_reached == DecodeState.REPAIRED
    assert outcome.result.to_dict() == FALLBACK_DICT


def test_truncated_after_complete_item_is_repaired():
    cut = VALID_TEXT[: VALID_TEXT.index('"severity": "HIGH"},') + len('"severity": "HIGH"},')]
    outcome = decode_analysis_response(cut)
    assert outcome.state == DecodeState.PARSED
    assert outcome.repaired
    assert outcome.result.threat_score == 72
    assert [e.severity for e in outcome.result.timeline] == [Severity.HIGH]
    assert outcome.result.mitre_mapping == []
    assert any("mitreMapping" in issue for issue in outcome.issues)


def test_truncated_inside_item_falls_back_instead_of_partial_result():
    cut = VALID_TEXT[: VALID_TEXT.index("Scanner user") + 7]
    outcome = decode_analysis_response(cut)
    # The repaired second event has no severity, so nothing partial is returned.
    assert outcome.is_fallback
    assert outcome.result.to_dict() == FALLBACK_DICT


def test_trailing_colon_value_becomes_default():
    outcome = decode_analysis_response('{"threatScore": 40, "markdownReport":')
    assert outcome.state == DecodeState.PARSED
    assert outcome.repaired
    assert outcome.result.markdown_report == ""


def test_decoder_never_raises_on_any_truncation():
    for offset in range(len(VALID_TEXT) + 1):
        outcome = decode_analysis_response(VALID_TEXT[:offset])
        assert outcome.state in (DecodeState.PARSED, DecodeState.UNRECOVERABLE)
        if outcome.is_fallback:
            assert outcome.result.to_dict() == FALLBACK_DICT


def test_unrecoverable_inputs_return_fallback():
    for raw in (None, "", "not json at all", "[1, 2]", '"just a string"', "{}", 42):
        outcome = decode_analysis_response(raw)
        assert outcome.state == DecodeState.UNRECOVERABLE
        assert outcome.result.to_dict() == FALLBACK_DICT


def test_severity_case_is_normalized_and_flagged():
    timeline = [{"timestamp": "t", "description": "d", "severity": " high "}]
    outcome = decode_analysis_response(_doc(timeline=timeline))
    assert outcome.state == DecodeState.PARSED
    assert outcome.result.timeline[0].severity == Severity.HIGH
    assert outcome.issues


def test_unknown_severity_falls_back():
    timeline = [{"timestamp": "t", "description": "d", "severity": "SEVERE"}]
    outcome = decode_analysis_response(_doc(timeline=timeline))
    assert outcome.is_fallback
    assert any("severity" in issue for issue in outcome.issues)


def test_out_of_range_score_is_clamped():
    outcome = decode_analysis_response(_doc(threatScore=150))
    assert outcome.state == DecodeState.PARSED
    assert outcome.result.threat_score == 100
    assert any("clamped" in issue for issue in outcome.issues)


def test_fractional_score_is_rounded():
    outcome = decode_analysis_response(_doc(threatScore=72.6))
    assert outcome.state == DecodeState.PARSED
    assert outcome.result.threat_score == 73
    assert any("rounded" in issue for issue in outcome.issues)


def test_non_standard_constants_fall_back():
    for token in ("NaN", "Infinity", "-Infinity"):
        raw = '{"threatScore": %s, "markdownReport": "x", "timeline": [], "mitreMapping": []}' % token
        outcome = decode_analysis_response(raw)
        assert outcome.state == DecodeState.UNRECOVERABLE
        assert outcome.result.threat_score == 0
        assert outcome.result.markdown_report == FALLBACK_REPORT


def test_overflowing_score_falls_back():
    outcome = decode_analysis_response(_doc(threatScore=1).replace('"threatScore": 1', '"threatScore": 1e400'))
    assert outcome.is_fallback
    assert any("not a finite number" in issue for issue in outcome.issues)


def test_missing_score_falls_back():
    doc = json.loads(VALID_TEXT)
    del doc["threatScore"]
    outcome = decode_analysis_response(json.dumps(doc))
    assert outcome.is_fallback


def test_unconventional_technique_id_is_flagged_but_kept():
    mapping = [{"tactic": "Impact", "id": "X-123", "name": "Something"}]
    outcome = decode_analysis_response(_doc(mitreMapping=mapping))
    assert outcome.state == DecodeState.PARSED
    assert outcome.result.mitre_mapping[0].id == "X-123"
    assert any(issue.startswith("mitreMapping.0.id") for issue in outcome.issues)


def test_null_collections_default_to_empty():
    outcome = decode_analysis_response('{"threatScore": 5, "markdownReport": "ok", "timeline": null, "mitreMapping": null}')
    assert outcome.state == DecodeState.PARSED
    assert outcome.result.to_dict() == {"threatScore": 5, "markdownReport": "ok", "timeline": [], "mitreMapping": []}


def test_failures_are_logged_as_events(tmp_path: Path):
    events_path = tmp_path / "events.jsonl"
    event_logger = EventLogger(path=events_path)
    decode_analysis_response('{"threatScore": 80, "timeline": [{"timestamp":"t1","desc', event_logger=event_logger)
    events = [json.loads(line) for line in events_path.read_text(encoding="utf-8").splitlines()]
    types = [event["event_type"] for event in events]
    assert types == ["llm.parse_error", "llm.fallback"]
    assert events[1]["stage"] == "REPAIRED"
    assert events[1]["raw_len"] == len('{"threatScore": 80, "timeline": [{"timestamp":"t1","desc')
    assert events[1]["error_type"] == "invalid_json"


def test_fallback_result_is_fixed():
    assert fallback_result().to_dict() == FALLBACK_DICT
