from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict

from log_whisperer.agents.orchestrator import AnalysisOrchestrator
from log_whisperer.clients.llm_factory import build_llm_client
from log_whisperer.errors import LogWhispererError
from log_whisperer.models.model_config import GeminiModel
from log_whisperer.telemetry import init_telemetry
from log_whisperer.utils.config import load_settings
from log_whisperer.utils.file_parsers import read_file_content


def _read_input(args: argparse.Namespace, settings: Dict[str, Any]) -> str:
    analysis = settings.get("analysis", {}) or {}
    if args.file:
        return read_file_content(
            args.file,
            scan_bytes=analysis.get("binary_scan_bytes", 50000),
            min_length=analysis.get("min_string_length", 5),
        )
    if args.text:
        return args.text
    return sys.stdin.read()


def _analyze(args: argparse.Namespace) -> int:
    settings = load_settings(args.settings)
    init_telemetry(settings)
    if args.event_log:
        settings.setdefault("observability", {})["event_log_path"] = args.event_log

    system_prompt = None
    if args.system_prompt_file:
        system_prompt = Path(args.system_prompt_file).read_text(encoding="utf-8")

    try:
        log_data = _read_input(args, settings)
        orchestrator = AnalysisOrchestrator(settings, llm_client=build_llm_client(settings))
        outcome = asyncio.run(
            orchestrator.analyze(log_data, model=args.model, system_instruction=system_prompt)
        )
    except (LogWhispererError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("cancelled", file=sys.stderr)
        return 130

    if args.json:
        print(json.dumps({"result": outcome.result.to_dict(), "decode": outcome.to_dict()}, indent=2))
    else:
        print(f"Threat score: {outcome.result.threat_score}/100")
        if outcome.repaired:
            print("(response was truncated and repaired)")
        print()
        print(outcome.result.markdown_report)
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("server.app:create_app", factory=True, host=args.host, port=args.port, reload=False)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="LLM-assisted security log analysis")
    parser.add_argument("--log-level", default="WARNING", help="Python logging level (default: WARNING)")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Analyze a log file, text, or stdin")
    source = analyze.add_mutually_exclusive_group()
    source.add_argument("--file", help="Path to a log or packet capture file")
    source.add_argument("--text", help="Log text to analyze")
    analyze.add_argument(
        "--model",
        choices=[m.name.lower() for m in GeminiModel] + [m.value for m in GeminiModel],
        help="Model to use (default: from settings)",
    )
    analyze.add_argument("--system-prompt-file", help="Replace the default analyst persona")
    analyze.add_argument("--settings", default="config/settings.yaml", help="Settings YAML path")
    analyze.add_argument("--event-log", help="Append JSONL diagnostics events to this file")
    analyze.add_argument("--json", action="store_true", help="Print the decoded result as JSON")
    analyze.set_defaults(func=_analyze)

    serve = sub.add_parser("serve", help="Run the web dashboard")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=_serve)

    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
