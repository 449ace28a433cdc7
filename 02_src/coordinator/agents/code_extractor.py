"""CodeExtractor: targeted scan plus LLM extraction, handed to the edit coordinator."""

import json

from ..llm import ILLMProvider, complete_json
from ..message_router import IMessageRouter
from ..models import AgentMessage, MessageType, Priority
from ..scheduler import IScheduler
from ..storage import IStorage
from .base import BaseAgent

AGENT_ID = "code_extractor"

EXTRACT_PROMPT = """Extract and analyze the relevant code sections.

Target: {target}
Purpose: {purpose}

Scan result:
{scan}

Extract the core implementation, dependencies, related functions, configuration
and tests. Analyze implementation quality, potential issues, optimization
opportunities and refactoring options.

Return JSON:
{{
  "files": ["path"],
  "sections": [{{"file": "", "code": "", "role": "core|dependency|related|config|test"}}],
  "analysis": {{"quality": "", "issues": [], "optimizations": [], "refactoring": []}}
}}"""


class CodeExtractor(BaseAgent):
    """Serves CODE_EXTRACTION_REQUEST by awaiting a targeted scan from the pool."""

    message_types = (MessageType.CODE_EXTRACTION_REQUEST,)

    def __init__(
        self,
        router: IMessageRouter,
        storage: IStorage,
        scheduler: IScheduler,
        llm: ILLMProvider,
        model: str | None = None,
        scan_timeout: float = 30.0,
    ):
        super().__init__(AGENT_ID, router, storage, scheduler)
        self._llm = llm
        self._model = model
        self._scan_timeout = scan_timeout

    async def handle(self, message: AgentMessage) -> None:
        match message.type:
            case MessageType.CODE_EXTRACTION_REQUEST:
                await self.handle_extraction_request(message)
            case _:
                pass

    async def handle_extraction_request(self, message: AgentMessage) -> dict:
        target = message.payload.get("target", {})
        context = message.payload.get("context") or {}
        requester = message.payload.get("requester") or message.source
        self._logger.info("Code extraction requested for %s", target)

        scan = await self.request_targeted_scan(target)
        extraction = await complete_json(
            self._llm,
            EXTRACT_PROMPT.format(
                target=json.dumps(context.get("target", target), default=str),
                purpose=context.get("purpose", "review"),
                scan=json.dumps(scan, indent=2, default=str),
            ),
            max_tokens=2000,
            model=self._model,
        )

        await self.send(
            MessageType.CODE_EXTRACTED,
            "edit_coordinator",
            {"extraction": extraction, "context": context, "requester": requester},
            correlation_id=message.correlation_id,
        )
        return extraction

    async def request_targeted_scan(self, target) -> dict:
        """Ask the scanner pool and wait for the correlated SCAN_RESULT."""
        reply = await self._router.request(
            AgentMessage(
                type=MessageType.TARGETED_SCAN,
                source=self._agent_id,
                target="repository_scanner_manager",
                payload={"target": target, "reason": "code_extraction", "requester": self._agent_id},
                priority=Priority.MEDIUM,
            ),
            MessageType.SCAN_RESULT,
            timeout=self._scan_timeout,
        )
        return reply.payload.get("result", {})
