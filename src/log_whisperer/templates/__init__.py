"""Prompt templates for log analysis requests."""

from .system_prompts import (
    ANALYSIS_PREFIX,
    DEFAULT_SYSTEM_PROMPT,
    build_contents,
)

__all__ = [
    "ANALYSIS_PREFIX",
    "DEFAULT_SYSTEM_PROMPT",
    "build_contents",
]
