from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from log_whisperer.utils.config import DEFAULT_SETTINGS, _merge

SAMPLE_RESPONSE = {
    "threatScore": 88,
    "markdownReport": "## Executive Summary\n**CRITICAL: Brute Force** against sshd.",
    "timeline": [
        {"timestamp": "00:00:01", "description": "50 failed root logins from 203.0.113.7", "severity": "HIGH"},
        {"timestamp": "00:02:10", "description": "Accepted password for root", "severity": "CRITICAL"},
    ],
    "mitreMapping": [
        {"tactic": "Credential Access", "id": "T1110.001", "name": "Password Guessing"},
    ],
}


class FakeLLMClient:
    """Records every request and replies with canned text or an exception."""

    def __init__(
        self,
        response: str | None = None,
        error: Optional[BaseException] = None,
        delay: float = 0.0,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.response = json.dumps(SAMPLE_RESPONSE) if response is None else response
        self.error = error
        self.delay = delay
        self.gate = gate
        self.calls: List[Dict[str, Any]] = []

    async def generate_structured(self, **kwargs: Any) -> str:
        self.calls.append(kwargs)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


def make_settings(**llm_overrides: Any) -> Dict[str, Any]:
    settings: Dict[str, Any] = json.loads(json.dumps(DEFAULT_SETTINGS))
    _merge(settings, {"llm": llm_overrides})
    return settings


@pytest.fixture
def settings() -> Dict[str, Any]:
    return make_settings()
