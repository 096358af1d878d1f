from __future__ import annotations

from log_whisperer.telemetry.tracing import (
    init_telemetry,
    set_analysis_context,
    span,
)

__all__ = ["init_telemetry", "set_analysis_context", "span"]
