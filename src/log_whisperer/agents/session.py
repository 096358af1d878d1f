from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from log_whisperer.agents.orchestrator import AnalysisOrchestrator
from log_whisperer.analyzers.response_decoder import DecodeOutcome
from log_whisperer.errors import AnalysisFailedError, AnalysisInProgressError
from log_whisperer.models.model_config import GeminiModel
from log_whisperer.templates import DEFAULT_SYSTEM_PROMPT
from log_whisperer.utils.file_parsers import decode_upload, detect_file_type, truncate_input

logger = logging.getLogger(__name__)

INPUT_UPLOAD = "upload"
INPUT_PASTE = "paste"

_EMPTY_INPUT_MESSAGES = {
    INPUT_UPLOAD: "Please upload a file first.",
    INPUT_PASTE: "Please paste some text to analyze.",
}


@dataclass
class LoadedInput:
    text: str
    file_name: Optional[str] = None
    file_type: Optional[str] = None


class AnalysisSession:
    """State owned by one dashboard user.

    Holds the selected model, the persona prompt, the current input and the
    single outstanding-request flag. Only one analysis may be in flight; a
    second ``run`` while busy raises ``AnalysisInProgressError``.

    Callers that change the input, model or persona and then run (the
    dashboard handler) hold ``reserve()`` across both steps, so a concurrent
    request cannot overwrite that state before the run reads it.
    """

    def __init__(
        self,
        orchestrator: AnalysisOrchestrator,
        model: GeminiModel | str | None = None,
        system_prompt: Optional[str] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.model = GeminiModel.parse(model or orchestrator.default_model)
        self.system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT
        self.input_mode = INPUT_UPLOAD
        self.upload: Optional[LoadedInput] = None
        self.pasted_text = ""
        self.last_outcome: Optional[DecodeOutcome] = None
        self.last_error: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._reserved = False

    @property
    def busy(self) -> bool:
        return self._reserved or self._task is not None

    def select_model(self, model: GeminiModel | str) -> GeminiModel:
        self.model = GeminiModel.parse(model)
        return self.model

    def set_system_prompt(self, prompt: str) -> None:
        self.system_prompt = prompt

    def reset_system_prompt(self) -> str:
        self.system_prompt = DEFAULT_SYSTEM_PROMPT
        return self.system_prompt

    def set_input_mode(self, mode: str) -> None:
        if mode not in _EMPTY_INPUT_MESSAGES:
            raise ValueError(f"input mode must be {INPUT_UPLOAD!r} or {INPUT_PASTE!r}")
        self.input_mode = mode
        self.last_error = None

    def load_upload(self, file_name: str, data: bytes) -> LoadedInput:
        self.last_error = None
        self.last_outcome = None
        analysis_conf = self.orchestrator.settings.get("analysis", {}) or {}
        text = decode_upload(
            file_name,
            data,
            scan_bytes=analysis_conf.get("binary_scan_bytes", 50000),
            min_length=analysis_conf.get("min_string_length", 5),
        )
        self.upload = LoadedInput(
            text=truncate_input(text, self.orchestrator.max_input_chars),
            file_name=file_name,
            file_type=detect_file_type(file_name),
        )
        return self.upload

    def paste(self, text: str) -> str:
        self.pasted_text = truncate_input(text, self.orchestrator.max_input_chars)
        return self.pasted_text

    def current_input(self) -> str:
        if self.input_mode == INPUT_UPLOAD:
            return self.upload.text if self.upload else ""
        return self.pasted_text

    def clear(self) -> None:
        """Drop the result, the error and the input of the active mode."""
        self.last_outcome = None
        self.last_error = None
        if self.input_mode == INPUT_UPLOAD:
            self.upload = None
        else:
            self.pasted_text = ""

    @contextmanager
    def reserve(self) -> Iterator["AnalysisSession"]:
        """Claim the in-flight flag before touching session state."""
        if self.busy:
            raise AnalysisInProgressError()
        self._reserved = True
        try:
            yield self
        finally:
            self._reserved = False

    async def run(self) -> DecodeOutcome:
        if self._task is not None:
            raise AnalysisInProgressError()
        self.last_outcome = None
        content = self.current_input()
        if not content or not content.strip():
            self.last_error = _EMPTY_INPUT_MESSAGES[self.input_mode]
            raise ValueError(self.last_error)

        self._task = asyncio.current_task()
        self.last_error = None
        try:
            outcome = await self.orchestrator.analyze(
                content,
                model=self.model,
                system_instruction=self.system_prompt,
            )
        except AnalysisFailedError as exc:
            self.last_error = str(exc)
            raise
        finally:
            self._task = None
        self.last_outcome = outcome
        return outcome

    def cancel(self) -> bool:
        task = self._task
        if task is None or task.done():
            return False
        logger.info("Cancelling in-flight analysis")
        task.cancel()
        return True
