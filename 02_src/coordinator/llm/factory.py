"""Pick the provider client for a model name."""

from .gemini_provider import GeminiProvider
from .llm_provider import ILLMProvider, LLMProvider
from .openai_provider import OpenAIProvider


def create_provider(model: str) -> ILLMProvider:
    """claude-* -> Anthropic, gemini-* -> Gemini, anything else -> OpenAI."""
    if model.startswith("claude"):
        return LLMProvider(model=model)
    if model.startswith("gemini"):
        return GeminiProvider(model=model)
    return OpenAIProvider(model=model)
