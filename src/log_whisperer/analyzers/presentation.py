from __future__ import annotations

from typing import Any, Dict, Iterable, List

from log_whisperer.models.analysis_result import AnalysisResult, MitreItem, Severity, TimelineEvent

TACTIC_ORDER = [
    "Reconnaissance",
    "Resource Development",
    "Initial Access",
    "Execution",
    "Persistence",
    "Privilege Escalation",
    "Defense Evasion",
    "Credential Access",
    "Discovery",
    "Lateral Movement",
    "Collection",
    "Command and Control",
    "Exfiltration",
    "Impact",
]
_TACTIC_INDEX = {name.lower(): idx for idx, name in enumerate(TACTIC_ORDER)}
_UNKNOWN_TACTIC_RANK = len(TACTIC_ORDER)

# Five severity levels collapse into four display buckets.
SEVERITY_BUCKETS = {
    Severity.INFO: "Info",
    Severity.LOW: "Warn",
    Severity.MEDIUM: "Warn",
    Severity.HIGH: "Error",
    Severity.CRITICAL: "Critical",
}
BUCKET_COLORS = {
    "Info": "#3f3f46",
    "Warn": "#fbbf24",
    "Error": "#f87171",
    "Critical": "#ef4444",
}
SEVERITY_COLORS = {
    Severity.CRITICAL: "bg-red-500 text-white",
    Severity.HIGH: "bg-orange-500 text-white",
    Severity.MEDIUM: "bg-yellow-500 text-black",
    Severity.LOW: "bg-blue-500 text-white",
    Severity.INFO: "bg-zinc-700 text-zinc-300",
}


def severity_bucket(severity: Severity | str) -> str:
    try:
        level = Severity(str(getattr(severity, "value", severity)).upper())
    except ValueError:
        return "Critical"
    return SEVERITY_BUCKETS[level]


def severity_distribution(timeline: Iterable[TimelineEvent]) -> List[Dict[str, Any]]:
    counts = {bucket: 0 for bucket in BUCKET_COLORS}
    for event in timeline:
        counts[severity_bucket(event.severity)] += 1
    return [
        {"name": bucket, "count": counts[bucket], "color": color}
        for bucket, color in BUCKET_COLORS.items()
    ]


def tactic_rank(tactic: str) -> int:
    return _TACTIC_INDEX.get((tactic or "").strip().lower(), _UNKNOWN_TACTIC_RANK)


def group_mitre_by_tactic(items: Iterable[MitreItem]) -> List[Dict[str, Any]]:
    """Group techniques by tactic, ordered along the ATT&CK kill chain.

    Unknown tactics keep their first-seen order after the known ones.
    """
    grouped: Dict[str, List[MitreItem]] = {}
    for item in items:
        grouped.setdefault(item.tactic, []).append(item)
    ordered = sorted(grouped, key=tactic_rank)
    return [
        {
            "tactic": tactic,
            "techniques": [item.model_dump() for item in grouped[tactic]],
        }
        for tactic in ordered
    ]


def threat_level(score: int) -> str:
    if score > 75:
        return "critical"
    if score > 40:
        return "elevated"
    return "low"


def build_view_model(result: AnalysisResult) -> Dict[str, Any]:
    return {
        "threat_level": threat_level(result.threat_score),
        "severity_distribution": severity_distribution(result.timeline),
        "tactics": group_mitre_by_tactic(result.mitre_mapping),
        "timeline": [
            {**event.model_dump(mode="json"), "badge": SEVERITY_COLORS[event.severity]}
            for event in result.timeline
        ],
    }
