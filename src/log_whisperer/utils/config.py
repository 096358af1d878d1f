from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict

import yaml

DEFAULT_SETTINGS: Dict[str, Any] = {
    "llm": {
        "auth_method": "api_key",
        "api_key": None,
        "default_model": "gemini-2.5-flash",
        "temperature": 0.2,
        "max_output_tokens": 8192,
        "timeout_sec": 120,
        "gcp_project_id": None,
        "gcp_location": "global",
        "gcp_service_account_file": None,
    },
    "analysis": {
        "max_input_chars": 50000,
        "binary_scan_bytes": 50000,
        "min_string_length": 5,
    },
    "observability": {
        "enabled": True,
        "event_log_path": None,
    },
    "telemetry": {
        "enabled": False,
        "service_name": "log-whisperer",
        "otlp_endpoint": None,
        "otlp_insecure": True,
    },
}


def load_settings(path: str | Path | None = None) -> Dict[str, Any]:
    settings = copy.deepcopy(DEFAULT_SETTINGS)
    if path:
        path = Path(path)
        if path.exists():
            with path.open("r", encoding="utf-8") as handle:
                _merge(settings, yaml.safe_load(handle) or {})

    llm = settings.setdefault("llm", {})
    api_key = (
        os.environ.get("GEMINI_API_KEY")
        or os.environ.get("GOOGLE_API_KEY")
        or os.environ.get("API_KEY")
    )
    if api_key and not llm.get("api_key"):
        llm["api_key"] = api_key
    project_id = os.environ.get("GCP_PROJECT_ID")
    if project_id and not llm.get("gcp_project_id"):
        llm["gcp_project_id"] = project_id
    model = os.environ.get("LOGWHISPERER_MODEL")
    if model:
        llm["default_model"] = model
    event_log = os.environ.get("LOGWHISPERER_EVENT_LOG")
    if event_log:
        settings.setdefault("observability", {})["event_log_path"] = event_log
    return settings


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
