"""LLM Provider implementation using the OpenAI chat completions API."""

import os

from openai import AsyncOpenAI

from .usage import report_usage


class OpenAIProvider:
    """OpenAI API provider (processors, decision engine, code extractor)."""

    def __init__(self, api_key: str | None = None, model: str = "gpt-5-mini"):
        self._api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self._api_key:
            raise ValueError("OPENAI_API_KEY environment variable not set")

        self._model = model
        self._client = AsyncOpenAI(api_key=self._api_key)

    async def complete(
        self,
        messages: list[dict],
        system: str | None = None,
        max_tokens: int = 1024,
        model: str | None = None,
    ) -> str:
        """Generate completion using the chat completions endpoint."""
        model = model or self._model
        chat = [{"role": "system", "content": system}] if system else []
        chat.extend(messages)

        try:
            # Reasoning models reject max_tokens
            response = await self._client.chat.completions.create(
                model=model,
                messages=chat,
                max_completion_tokens=max_tokens,
            )
        except Exception as e:
            raise RuntimeError(f"LLM API error: {e}") from e

        if response.usage is not None:
            report_usage(model, response.usage.prompt_tokens, response.usage.completion_tokens)

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
