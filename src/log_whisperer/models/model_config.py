from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class GeminiModel(str, Enum):
    FLASH = "gemini-2.5-flash"
    PRO = "gemini-3-pro-preview"

    @classmethod
    def parse(cls, value: "str | GeminiModel | None") -> "GeminiModel":
        """Accept an enum member, a model id, or a short name such as ``flash``."""
        if value is None or value == "":
            return cls.FLASH
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if text == member.value or text.lower() == member.name.lower():
                return member
        raise ValueError(f"Unknown model {value!r}; expected one of {[m.value for m in cls]}")


MODEL_LABELS = {
    GeminiModel.FLASH: ("Gemini 2.5 Flash", "Fast inference for real-time log parsing."),
    GeminiModel.PRO: ("Gemini 3 Pro", "Deep reasoning for complex attack vectors."),
}


@dataclass
class RequestConfig:
    temperature: float = 0.2
    max_output_tokens: int = 8192
    timeout_sec: Optional[float] = 120.0
    response_mime_type: str = "application/json"
