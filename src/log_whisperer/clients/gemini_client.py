from __future__ import annotations

import os
from typing import Any, Dict, Optional

from google import genai
from google.genai import types

from log_whisperer.telemetry import span


class GeminiLLMClient:
    """
    Async client for Google Gemini using the google-genai SDK.

    Authenticates either with an API key (Gemini Developer API) or, when
    ``vertexai`` is set, with Application Default Credentials against Vertex AI.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = "gemini-2.5-flash",
        timeout_sec: Optional[float] = 120.0,
        vertexai: bool = False,
        project_id: Optional[str] = None,
        location: str = "global",
        service_account_file: Optional[str] = None,
    ) -> None:
        """
        Initialize the Gemini client.

        Args:
            api_key: Gemini API key (ignored when vertexai is set)
            default_model: Model used when a request does not name one
            timeout_sec: Per-request HTTP timeout in seconds
            vertexai: Use Vertex AI instead of the Developer API
            project_id: GCP project ID (Vertex AI only)
            location: GCP location, e.g. "global" or "us-central1"
            service_account_file: Path to a service account JSON file.
                                  If provided, sets GOOGLE_APPLICATION_CREDENTIALS.
        """
        self.default_model = default_model
        self.timeout_sec = timeout_sec
        http_options = None
        if timeout_sec:
            # google-genai takes the timeout in milliseconds.
            http_options = types.HttpOptions(timeout=int(timeout_sec * 1000))

        if vertexai:
            if not project_id:
                raise ValueError("GCP project_id is required for Gemini on Vertex AI")
            if service_account_file:
                if not os.path.isabs(service_account_file):
                    service_account_file = os.path.abspath(service_account_file)
                if not os.path.exists(service_account_file):
                    raise FileNotFoundError(
                        f"Service account file not found: {service_account_file}"
                    )
                os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = service_account_file
            self.client = genai.Client(
                vertexai=True,
                project=project_id,
                location=location,
                http_options=http_options,
            )
        else:
            if not api_key:
                raise ValueError("Gemini API key is required")
            self.client = genai.Client(api_key=api_key, http_options=http_options)

    async def generate_structured(
        self,
        contents: str,
        system_instruction: str,
        response_schema: Dict[str, Any],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_output_tokens: int = 8192,
        response_mime_type: str = "application/json",
    ) -> str:
        """
        Request a schema-constrained JSON completion.

        Returns:
            The raw response text. It may be fenced or truncated; decoding is
            the caller's job.
        """
        model_name = model or self.default_model
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=temperature,
            response_mime_type=response_mime_type,
            response_schema=response_schema,
            max_output_tokens=max_output_tokens,
        )
        with span("api.gemini", tool_name="gemini", http_method="POST", model=model_name) as sp:
            response = await self.client.aio.models.generate_content(
                model=model_name,
                contents=contents,
                config=config,
            )

            if getattr(response, "usage_metadata", None):
                sp.set_attribute("usage.input_tokens", response.usage_metadata.prompt_token_count or 0)
                sp.set_attribute("usage.output_tokens", response.usage_metadata.candidates_token_count or 0)
            finish_reason = _finish_reason(response)
            if finish_reason:
                sp.set_attribute("gemini.finish_reason", finish_reason)

            return _extract_text(response)


def _finish_reason(response: Any) -> Optional[str]:
    candidates = getattr(response, "candidates", None) or []
    for candidate in candidates:
        reason = getattr(candidate, "finish_reason", None)
        if reason is not None:
            return str(getattr(reason, "value", reason))
    return None


def _extract_text(response: Any) -> str:
    """
    Extract text content from a Gemini response.

    Returns an empty string when the response carries no text; the decoder
    turns that into the fallback result.
    """
    try:
        if getattr(response, "text", None):
            return response.text
    except ValueError:
        # .text raises when the candidate holds only non-text parts.
        pass

    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            text = getattr(part, "text", None)
            if text:
                return text
    return ""
