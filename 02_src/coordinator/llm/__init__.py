"""LLM module."""

from .gemini_provider import GeminiProvider
from .factory import create_provider
from .json_completion import complete_json, complete_text, parse_json_response
from .llm_provider import ILLMProvider, LLMProvider
from .openai_provider import OpenAIProvider
from .usage import MeteredLLM, Usage, UsageSink, report_usage

__all__ = [
    "ILLMProvider",
    "LLMProvider",
    "OpenAIProvider",
    "GeminiProvider",
    "MeteredLLM",
    "Usage",
    "UsageSink",
    "create_provider",
    "complete_json",
    "complete_text",
    "parse_json_response",
    "report_usage",
]
