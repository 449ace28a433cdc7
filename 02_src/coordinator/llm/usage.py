"""Token usage reported by the provider clients.

Providers call `report_usage` after every response. The report goes to the
sink installed by the `MeteredLLM` wrapping the current call, so one shared
client per model still attributes usage to the agent that made the call.
"""

from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from .llm_provider import ILLMProvider


@dataclass(frozen=True)
class Usage:
    model: str
    input_tokens: int
    output_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


UsageSink = Callable[[Usage], None]

_sink: ContextVar[UsageSink | None] = ContextVar("llm_usage_sink", default=None)


def report_usage(model: str, input_tokens: int | None, output_tokens: int | None) -> None:
    sink = _sink.get()
    if sink is None:
        return
    sink(
        Usage(
            model=model,
            input_tokens=int(input_tokens or 0),
            output_tokens=int(output_tokens or 0),
        )
    )


class MeteredLLM:
    """ILLMProvider wrapper that sends provider usage reports to `sink`."""

    def __init__(self, llm: "ILLMProvider", sink: UsageSink):
        self._llm = llm
        self._sink = sink

    @property
    def inner(self) -> "ILLMProvider":
        return self._llm

    async def complete(
        self,
        messages: list[dict],
        system: str | None = None,
        max_tokens: int = 1024,
        model: str | None = None,
    ) -> str:
        token = _sink.set(self._sink)
        try:
            return await self._llm.complete(
                messages=messages, system=system, max_tokens=max_tokens, model=model
            )
        finally:
            _sink.reset(token)
