from __future__ import annotations

import os
from typing import Any, Dict, Optional

from log_whisperer.agents.base import LLMClient
from log_whisperer.clients.gemini_client import GeminiLLMClient


def build_llm_client(settings: Dict[str, Any]) -> Optional[LLMClient]:
    """
    Build the Gemini client from settings.

    Auth methods:
        - "api_key": Gemini Developer API with llm.api_key (default)
        - "service_account": Vertex AI with gcp_project_id and ADC / a service account file

    Returns None when api_key auth is selected and no key is available, so the
    dashboard can still start and report the missing key on first use.
    """
    llm_conf = settings.get("llm", {}) or {}
    auth_method = llm_conf.get("auth_method", "api_key")
    timeout_sec = llm_conf.get("timeout_sec", 120)
    default_model = llm_conf.get("default_model") or "gemini-2.5-flash"

    if auth_method == "service_account":
        gcp_project_id = llm_conf.get("gcp_project_id") or os.environ.get("GCP_PROJECT_ID")
        if not gcp_project_id:
            raise ValueError(
                "llm.auth_method is 'service_account' but gcp_project_id not set. "
                "Set llm.gcp_project_id or GCP_PROJECT_ID env var."
            )
        return GeminiLLMClient(
            vertexai=True,
            project_id=gcp_project_id,
            location=llm_conf.get("gcp_location", "global"),
            service_account_file=llm_conf.get("gcp_service_account_file"),
            default_model=default_model,
            timeout_sec=timeout_sec,
        )

    if auth_method != "api_key":
        raise ValueError(f"Unknown llm.auth_method: {auth_method!r}")

    api_key = llm_conf.get("api_key")
    if not api_key:
        return None
    return GeminiLLMClient(
        api_key=api_key,
        default_model=default_model,
        timeout_sec=timeout_sec,
    )
