"""JSON completions on top of any ILLMProvider."""

import json

from ..errors import LLMResponseError
from .llm_provider import ILLMProvider


def parse_json_response(text: str | None):
    """Parse LLM output as JSON, tolerating a markdown code fence."""
    if not text or not text.strip():
        raise LLMResponseError("Empty response from LLM")

    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    text = text.strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise LLMResponseError(f"Unparseable JSON from LLM: {e}") from e


async def complete_json(
    llm: ILLMProvider,
    prompt: str,
    system: str | None = None,
    max_tokens: int = 2048,
    model: str | None = None,
) -> dict:
    """Single-prompt completion parsed as a JSON object.

    Raises:
        LLMResponseError: empty, unparseable or non-object output
    """
    text = await llm.complete(
        messages=[{"role": "user", "content": prompt}],
        system=system,
        max_tokens=max_tokens,
        model=model,
    )
    result = parse_json_response(text)
    if not isinstance(result, dict):
        raise LLMResponseError(f"Expected a JSON object, got {type(result).__name__}")
    return result


async def complete_text(
    llm: ILLMProvider,
    prompt: str,
    system: str | None = None,
    max_tokens: int = 1024,
    model: str | None = None,
) -> str:
    """Single-prompt plain-text completion."""
    return await llm.complete(
        messages=[{"role": "user", "content": prompt}],
        system=system,
        max_tokens=max_tokens,
        model=model,
    )
