"""LLM Provider implementation using the Google genai SDK."""

import os

from google import genai
from google.genai import types

from .usage import report_usage


class GeminiProvider:
    """Gemini API provider (roadmap, scanners, user compilers)."""

    def __init__(self, api_key: str | None = None, model: str = "gemini-2.5-flash"):
        self._api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not self._api_key:
            raise ValueError("GEMINI_API_KEY environment variable not set")

        self._model = model
        self._client = genai.Client(api_key=self._api_key)

    async def complete(
        self,
        messages: list[dict],
        system: str | None = None,
        max_tokens: int = 1024,
        model: str | None = None,
    ) -> str:
        """Generate completion using the async generate_content endpoint."""
        # Gemini calls the assistant role "model"
        contents = [
            types.Content(
                role="model" if msg["role"] == "assistant" else "user",
                parts=[types.Part(text=msg["content"])],
            )
            for msg in messages
        ]

        model = model or self._model
        try:
            response = await self._client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=types.GenerateContentConfig(
                    system_instruction=system,
                    max_output_tokens=max_tokens,
                ),
            )
        except Exception as e:
            raise RuntimeError(f"LLM API error: {e}") from e

        metadata = response.usage_metadata
        if metadata is not None:
            report_usage(model, metadata.prompt_token_count, metadata.candidates_token_count)

        return response.text or ""
