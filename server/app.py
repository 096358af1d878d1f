from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from log_whisperer.agents.base import LLMClient
from log_whisperer.agents.orchestrator import AnalysisOrchestrator
from log_whisperer.agents.session import INPUT_PASTE, INPUT_UPLOAD, AnalysisSession
from log_whisperer.analyzers.presentation import build_view_model
from log_whisperer.analyzers.response_decoder import DecodeOutcome
from log_whisperer.clients.llm_factory import build_llm_client
from log_whisperer.errors import AnalysisFailedError, AnalysisInProgressError, FileReadError
from log_whisperer.models.model_config import MODEL_LABELS, GeminiModel
from log_whisperer.telemetry import init_telemetry
from log_whisperer.templates import DEFAULT_SYSTEM_PROMPT
from log_whisperer.utils.config import load_settings

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
DISCONNECT_POLL_SEC = 0.5


def _resolve_settings_path() -> str:
    return os.environ.get("LOGWHISPERER_SETTINGS", "config/settings.yaml")


def create_app(
    settings: Optional[Dict[str, Any]] = None,
    llm_client: Optional[LLMClient] = None,
) -> FastAPI:
    settings = settings if settings is not None else load_settings(_resolve_settings_path())
    init_telemetry(settings)
    if llm_client is None:
        llm_client = build_llm_client(settings)

    app = FastAPI(title="LogWhisperer Threat Intelligence Dashboard")
    orchestrator = AnalysisOrchestrator(settings, llm_client=llm_client)
    app.state.session = AnalysisSession(orchestrator)

    @app.get("/", response_class=HTMLResponse)
    def index(request: Request):
        session: AnalysisSession = request.app.state.session
        return templates.TemplateResponse(
            request,
            "dashboard.html",
            {
                "models": _model_options(),
                "selected_model": session.model.value,
                "system_prompt": session.system_prompt,
                "default_system_prompt": DEFAULT_SYSTEM_PROMPT,
                "max_input_chars": orchestrator.max_input_chars,
            },
        )

    @app.get("/api/models")
    def models_api():
        return _model_options()

    @app.get("/api/system-prompt/default")
    def default_system_prompt():
        return {"system_prompt": DEFAULT_SYSTEM_PROMPT}

    @app.post("/api/system-prompt/reset")
    def reset_system_prompt(request: Request):
        session: AnalysisSession = request.app.state.session
        return {"system_prompt": session.reset_system_prompt()}

    @app.get("/api/status")
    def status(request: Request):
        session: AnalysisSession = request.app.state.session
        return {
            "busy": session.busy,
            "model": session.model.value,
            "input_mode": session.input_mode,
            "last_error": session.last_error,
        }

    @app.post("/api/analyze")
    async def analyze(
        request: Request,
        mode: str = Form(INPUT_PASTE),
        text: str = Form(""),
        model: str = Form(""),
        system_prompt: str = Form(""),
        file: Optional[UploadFile] = File(None),
    ):
        session: AnalysisSession = request.app.state.session
        try:
            with session.reserve():
                try:
                    session.set_input_mode(mode)
                    if model:
                        session.select_model(model)
                    session.set_system_prompt(system_prompt or DEFAULT_SYSTEM_PROMPT)
                    if mode == INPUT_UPLOAD and file is not None:
                        data = await _read_upload(file)
                        session.load_upload(file.filename or "upload", data)
                    elif mode == INPUT_PASTE:
                        session.paste(text)
                except (ValueError, FileReadError) as exc:
                    raise HTTPException(status_code=400, detail=str(exc)) from exc
                outcome = await _run_until_disconnect(request, session)
        except AnalysisInProgressError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except AnalysisFailedError as exc:
            raise HTTPException(status_code=502, detail={"message": str(exc), "kind": exc.kind}) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _outcome_payload(session, outcome)

    @app.post("/api/cancel")
    def cancel(request: Request):
        session: AnalysisSession = request.app.state.session
        return {"cancelled": session.cancel()}

    @app.post("/api/clear")
    def clear(request: Request):
        session: AnalysisSession = request.app.state.session
        session.clear()
        return {"cleared": True, "input_mode": session.input_mode}

    return app


def _model_options() -> list[Dict[str, str]]:
    return [
        {"id": member.value, "label": MODEL_LABELS[member][0], "description": MODEL_LABELS[member][1]}
        for member in GeminiModel
    ]


async def _read_upload(file: UploadFile) -> bytes:
    try:
        return await file.read()
    except OSError as exc:
        logger.error(f"Failed to read upload {file.filename}: {exc}")
        raise FileReadError(FileReadError.USER_MESSAGE) from exc


async def _run_until_disconnect(request: Request, session: AnalysisSession) -> DecodeOutcome:
    """Run the analysis, cancelling it if the browser goes away first."""
    task = asyncio.ensure_future(session.run())
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SEC)
            if task in done:
                break
            if await request.is_disconnected():
                logger.info("Client disconnected; cancelling analysis")
                task.cancel()
                break
    except asyncio.CancelledError:
        task.cancel()
        raise
    try:
        return await task
    except asyncio.CancelledError as exc:
        raise HTTPException(status_code=499, detail="Analysis cancelled.") from exc


def _outcome_payload(session: AnalysisSession, outcome: DecodeOutcome) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "result": outcome.result.to_dict(),
        "decode": outcome.to_dict(),
        "view": build_view_model(outcome.result),
        "model": session.model.value,
    }
    if session.input_mode == INPUT_UPLOAD and session.upload:
        payload["input"] = {
            "file_name": session.upload.file_name,
            "file_type": session.upload.file_type,
            "chars": len(session.upload.text),
        }
    else:
        payload["input"] = {"chars": len(session.pasted_text)}
    return payload
