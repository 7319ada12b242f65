"""Google Gemini completion provider using the google-genai SDK."""

from __future__ import annotations

from google import genai
from google.genai import types

from hybrid_engine.exceptions import SynthesisError
from hybrid_engine.observability.logger import get_logger

logger = get_logger("gemini")


class GeminiProvider:
    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        temperature: float = 0.3,
    ) -> None:
        self._client = genai.Client(api_key=api_key)
        self._model = model
        self._temperature = temperature

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int = 800,
    ) -> str:
        try:
            config = types.GenerateContentConfig(
                temperature=self._temperature,
                max_output_tokens=max_tokens,
            )
            if system:
                config.system_instruction = system

            response = await self._client.aio.models.generate_content(
                model=self._model,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            raise SynthesisError(f"Gemini completion failed: {e}") from e

        text = response.text or ""
        if not text.strip():
            raise SynthesisError("Gemini returned an empty completion")
        return text
