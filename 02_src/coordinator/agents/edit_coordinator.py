"""EditCoordinator: turns extracted code into prioritized edit recommendations."""

import json
from datetime import datetime, timezone

from ..llm import ILLMProvider, complete_json
from ..message_router import IMessageRouter
from ..models import AgentMessage, MessageType, Priority
from ..scheduler import IScheduler
from ..storage import IStorage
from .base import BaseAgent

AGENT_ID = "edit_coordinator"

SUGGEST_PROMPT = """Generate code edit suggestions for the extracted code.

Context:
{context}

Extracted code:
{extraction}

Cover bug fixes, performance, code quality, security and refactoring.

Return JSON:
{{
  "suggestions": [{{"type": "bug|performance|quality|security|refactoring",
                    "severity": "critical|high|medium|low",
                    "complexity": "low|medium|high",
                    "file": "", "line_changes": "", "explanation": "", "impact": ""}}]
}}"""

EFFORT_HOURS = {"low": 0.5, "medium": 2.0, "high": 5.0}


def calculate_priority(suggestions: list[dict]) -> str:
    if any(s.get("type") == "security" and s.get("severity") == "critical" for s in suggestions):
        return "critical"
    if any(s.get("type") == "bug" and s.get("severity") == "high" for s in suggestions):
        return "high"
    return "medium"


def estimate_effort(suggestions: list[dict]) -> float:
    """Hours: low 0.5, medium 2, high 5 per suggestion."""
    return sum(EFFORT_HOURS.get(s.get("complexity"), 0.0) for s in suggestions)


class EditCoordinator(BaseAgent):
    message_types = (MessageType.CODE_EXTRACTED,)

    def __init__(
        self,
        router: IMessageRouter,
        storage: IStorage,
        scheduler: IScheduler,
        llm: ILLMProvider,
        model: str | None = None,
    ):
        super().__init__(AGENT_ID, router, storage, scheduler)
        self._llm = llm
        self._model = model

    async def handle(self, message: AgentMessage) -> None:
        match message.type:
            case MessageType.CODE_EXTRACTED:
                await self.handle_code_extracted(message)
            case _:
                pass

    async def handle_code_extracted(self, message: AgentMessage) -> dict:
        extraction = message.payload.get("extraction") or {}
        context = message.payload.get("context") or {}
        requester = message.payload.get("requester") or message.source

        result = await complete_json(
            self._llm,
            SUGGEST_PROMPT.format(
                context=json.dumps(context, indent=2, default=str),
                extraction=json.dumps(extraction, indent=2, default=str),
            ),
            max_tokens=2000,
            model=self._model,
        )
        suggestions = [s for s in result.get("suggestions", []) if isinstance(s, dict)]

        files = list(extraction.get("files", []))
        recommendations = {
            "suggestions": suggestions,
            "files": files,
            "priority": calculate_priority(suggestions),
            "estimated_effort": estimate_effort(suggestions),
            "requester": requester,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        await self.distribute(recommendations, requester, message.correlation_id)
        return recommendations

    async def distribute(
        self, recommendations: dict, requester: str, correlation_id: str | None = None
    ) -> None:
        await self._storage.add_document("edit_recommendations", recommendations)
        await self.send(
            MessageType.EDIT_RECOMMENDATIONS,
            requester,
            recommendations,
            priority=Priority.from_label(recommendations["priority"]),
            correlation_id=correlation_id,
        )

        for user_id in await self.find_affected_users(recommendations["files"]):
            await self._storage.add_document(
                "notifications",
                {
                    "user_id": user_id,
                    "type": "edit_recommendations",
                    "recommendations": recommendations,
                    "read": False,
                    "timestamp": recommendations["timestamp"],
                },
            )

    async def find_affected_users(self, files: list[str]) -> list[str]:
        if not files:
            return []
        wanted = set(files)
        users: set[str] = set()
        for task in await self._storage.find_documents("tasks"):
            if wanted.intersection(task.get("files", [])):
                users.update(task.get("assigned_to", []))
        return sorted(users)
