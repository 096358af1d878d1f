from __future__ import annotations

from log_whisperer.analyzers.presentation import (
    TACTIC_ORDER,
    build_view_model,
    group_mitre_by_tactic,
    severity_bucket,
    severity_distribution,
    threat_level,
)
from log_whisperer.models.analysis_result import AnalysisResult, MitreItem, Severity, TimelineEvent


def _event(severity: str) -> TimelineEvent:
    return TimelineEvent(timestamp="t", description="d", severity=severity)


def test_low_and_medium_share_a_bucket():
    assert severity_bucket(Severity.LOW) == severity_bucket(Severity.MEDIUM) == "Warn"
    assert severity_bucket(Severity.HIGH) == "Error"
    assert severity_bucket(Severity.CRITICAL) == "Critical"
    assert severity_bucket(Severity.HIGH) != severity_bucket(Severity.CRITICAL)
    assert severity_bucket("info") == "Info"


def test_severity_distribution_lists_all_buckets_in_order():
    events = [_event("LOW"), _event("MEDIUM"), _event("HIGH"), _event("CRITICAL"), _event("CRITICAL")]
    dist = severity_distribution(events)
    assert [b["name"] for b in dist] == ["Info", "Warn", "Error", "Critical"]
    assert {b["name"]: b["count"] for b in dist} == {"Info": 0, "Warn": 2, "Error": 1, "Critical": 2}


def test_tactics_follow_kill_chain_with_unknown_last():
    items = [
        MitreItem(tactic="Impact", id="T1486", name="Data Encrypted for Impact"),
        MitreItem(tactic="Made Up Tactic", id="T9999", name="Unknown"),
        MitreItem(tactic="initial access", id="T1190", name="Exploit Public-Facing Application"),
        MitreItem(tactic="Impact", id="T1490", name="Inhibit System Recovery"),
        MitreItem(tactic="RECONNAISSANCE", id="T1595", name="Active Scanning"),
    ]
    groups = group_mitre_by_tactic(items)
    assert [g["tactic"] for g in groups] == ["RECONNAISSANCE", "initial access", "Impact", "Made Up Tactic"]
    impact = groups[2]
    assert [t["id"] for t in impact["techniques"]] == ["T1486", "T1490"]


def test_tactic_order_has_fourteen_stages():
    assert len(TACTIC_ORDER) == 14
    assert TACTIC_ORDER[0] == "Reconnaissance"
    assert TACTIC_ORDER[-1] == "Impact"


def test_threat_level_thresholds():
    assert threat_level(76) == "critical"
    assert threat_level(75) == "elevated"
    assert threat_level(41) == "elevated"
    assert threat_level(40) == "low"
    assert threat_level(0) == "low"


def test_build_view_model():
    result = AnalysisResult(
        threat_score=90,
        markdown_report="## Executive Summary",
        timeline=[_event("HIGH")],
        mitre_mapping=[MitreItem(tactic="Execution", id="T1059", name="Command and Scripting Interpreter")],
    )
    view = build_view_model(result)
    assert view["threat_level"] == "critical"
    assert view["timeline"][0]["severity"] == "HIGH"
    assert view["timeline"][0]["badge"].startswith("bg-orange")
    assert view["tactics"][0]["tactic"] == "Execution"
