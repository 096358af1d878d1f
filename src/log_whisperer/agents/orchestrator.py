"""Request orchestration for one log analysis.

Two failure modes are kept apart on purpose:

- the remote call failing (credentials, network, quota, timeout) raises
  ``AnalysisFailedError``; the user has to retry;
- the reply failing to decode never raises; the decoder hands back the
  fallback result and the user still gets a report.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
from google.genai import errors as genai_errors

from log_whisperer.agents.base import LLMClient
from log_whisperer.analyzers.response_decoder import DecodeOutcome, decode_analysis_response
from log_whisperer.errors import AnalysisFailedError
from log_whisperer.models.model_config import GeminiModel, RequestConfig
from log_whisperer.observability.logger import EventLogger
from log_whisperer.telemetry import set_analysis_context, span
from log_whisperer.templates import DEFAULT_SYSTEM_PROMPT, build_contents
from log_whisperer.utils.file_parsers import MAX_INPUT_CHARS, truncate_input
from log_whisperer.utils.json_schema import analysis_result_schema, to_gemini_schema

logger = logging.getLogger(__name__)

_FAILURE_MESSAGES = {
    "auth": AnalysisFailedError.USER_MESSAGE,
    "rate_limit": "Analysis failed: the model is rate limited or out of quota. Try again shortly.",
    "timeout": "Analysis timed out waiting for the model. Try again or reduce the input size.",
    "network": "Analysis failed: could not reach the model service. Check your network connection.",
    "api": AnalysisFailedError.USER_MESSAGE,
}


def classify_transport_error(exc: BaseException) -> str:
    if isinstance(exc, genai_errors.APIError):
        code = getattr(exc, "code", None)
        if code in (401, 403):
            return "auth"
        if code == 429:
            return "rate_limit"
        if code in (408, 504):
            return "timeout"
        return "api"
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return "timeout"
    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return "network"
    return "api"


class AnalysisOrchestrator:
    def __init__(
        self,
        settings: Dict[str, Any],
        llm_client: Optional[LLMClient] = None,
        event_logger: EventLogger | None = None,
    ) -> None:
        self.settings = settings
        self.llm_client = llm_client
        self.event_logger = event_logger or EventLogger.from_settings(settings)
        llm_conf = settings.get("llm", {}) or {}
        analysis_conf = settings.get("analysis", {}) or {}
        self.default_model = GeminiModel.parse(llm_conf.get("default_model"))
        self.request_config = RequestConfig(
            temperature=llm_conf.get("temperature", 0.2),
            max_output_tokens=llm_conf.get("max_output_tokens", 8192),
            timeout_sec=llm_conf.get("timeout_sec", 120),
        )
        self.max_input_chars = analysis_conf.get("max_input_chars", MAX_INPUT_CHARS)
        self.validation_schema = analysis_result_schema()
        self.response_schema = to_gemini_schema(self.validation_schema)

    async def analyze(
        self,
        log_data: str,
        model: GeminiModel | str | None = None,
        system_instruction: Optional[str] = None,
    ) -> DecodeOutcome:
        text = truncate_input(log_data, self.max_input_chars)
        if not text.strip():
            raise ValueError("No input to analyze.")
        model_id = GeminiModel.parse(model or self.default_model)
        instruction = system_instruction if system_instruction and system_instruction.strip() else DEFAULT_SYSTEM_PROMPT

        analysis_id = set_analysis_context(model_id.value)
        self.event_logger.set_analysis_id(analysis_id)
        self.event_logger.stage_start("analysis", model=model_id.value, input_chars=len(text))
        logger.info(f"Starting analysis {analysis_id} with {model_id.value} ({len(text)} chars)")

        with span("analysis.run", model=model_id.value, input_chars=len(text)) as sp:
            try:
                raw = await self._call_model(text, model_id, instruction)
            except asyncio.CancelledError:
                self.event_logger.stage_end("analysis", status="cancelled")
                logger.info(f"Analysis {analysis_id} cancelled")
                raise
            except AnalysisFailedError as exc:
                self.event_logger.stage_end("analysis", status="error", error_type=exc.kind)
                raise

            outcome = decode_analysis_response(
                raw,
                event_logger=self.event_logger,
                schema=self.validation_schema,
            )
            sp.set_attribute("decode.state", outcome.state.value)

        self.event_logger.stage_end(
            "analysis",
            status="fallback" if outcome.is_fallback else "ok",
            decode_state=outcome.state.value,
            repaired=outcome.repaired,
            issue_count=len(outcome.issues),
        )
        return outcome

    async def _call_model(self, text: str, model: GeminiModel, instruction: str) -> str:
        if self.llm_client is None:
            raise AnalysisFailedError(
                "Analysis failed: no Gemini API key configured. Set GEMINI_API_KEY or llm.api_key.",
                kind="auth",
            )
        contents = build_contents(text)
        self.event_logger.log(
            "llm.input",
            model=model.value,
            prompt_chars=len(instruction),
            payload_chars=len(contents),
        )
        call = self.llm_client.generate_structured(
            contents=contents,
            system_instruction=instruction,
            response_schema=self.response_schema,
            model=model.value,
            temperature=self.request_config.temperature,
            max_output_tokens=self.request_config.max_output_tokens,
            response_mime_type=self.request_config.response_mime_type,
        )
        try:
            if self.request_config.timeout_sec:
                raw = await asyncio.wait_for(call, timeout=self.request_config.timeout_sec)
            else:
                raw = await call
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            kind = classify_transport_error(exc)
            logger.error(f"Gemini API error ({kind}): {exc}")
            self.event_logger.log(
                "analysis.error",
                error_type=kind,
                error=str(exc)[:500],
                exception=type(exc).__name__,
            )
            raise AnalysisFailedError(_FAILURE_MESSAGES[kind], kind=kind) from exc

        raw = raw or ""
        self.event_logger.log("llm.output", model=model.value, output_chars=len(raw))
        return raw
