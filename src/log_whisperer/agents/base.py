from __future__ import annotations

from typing import Any, Dict, Optional, Protocol


class LLMClient(Protocol):
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
        ...
