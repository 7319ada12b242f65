"""Protocol for LLM completion providers."""

from __future__ import annotations

from typing import Protocol


class LLMProvider(Protocol):
    async def complete(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int = 800,
    ) -> str: ...
