"""Structured result returned by the model for one analysis request.

Field names on the wire are camelCase (``threatScore``, ``markdownReport``,
``mitreMapping``); the Python attributes are snake_case and ``to_dict()``
always dumps the wire names with all four top-level keys present.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

FALLBACK_REPORT = (
    "### Analysis Error\n\n"
    "The AI response was truncated and could not be fully recovered. "
    "Partial data may be missing. Please try reducing the input file size."
)


class Severity(str, Enum):
    INFO = "INFO"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class TimelineEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    timestamp: str
    description: str
    severity: Severity

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v


class MitreItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tactic: str
    id: str
    name: str


class AnalysisResult(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    threat_score: int = Field(alias="threatScore", ge=0, le=100)
    markdown_report: str = Field(default="", alias="markdownReport")
    timeline: List[TimelineEvent] = Field(default_factory=list)
    mitre_mapping: List[MitreItem] = Field(default_factory=list, alias="mitreMapping")

    @classmethod
    def fallback(cls, report: str = FALLBACK_REPORT) -> "AnalysisResult":
        return cls(threat_score=0, markdown_report=report, timeline=[], mitre_mapping=[])

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
