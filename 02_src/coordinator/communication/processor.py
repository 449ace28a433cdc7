"""UserMessageProcessor: LLM intent analysis + urgency classification for one message."""

import asyncio
from dataclasses import replace
from datetime import datetime, timezone

from ..llm import ILLMProvider, complete_json
from ..logging_config import get_logger
from ..message_router import IMessageRouter
from ..models import (
    AgentMessage,
    MessageStatus,
    MessageType,
    Priority,
    ProcessedMessage,
    UserMessage,
)
from ..storage import IStorage

ANALYZE_PROMPT = """Analyze this hackathon participant message.
User: {user_name}
Message: {content}
Context: {context}

Return JSON:
{{
  "intent": "question|request|feedback|issue|help|status_update|collaboration",
  "entities": {{"tasks": [], "users": [], "technical_terms": [], "files": []}},
  "emotional_tone": "frustrated|neutral|positive|urgent|confused",
  "requires_action": true,
  "expertise_needed": []
}}"""

CLASSIFY_PROMPT = """Classify urgency and routing for this message.
Content: {content}
User Status: {user_status}

Return JSON:
{{
  "urgency": "critical|high|medium|low",
  "category": "technical|coordination|planning|help",
  "action": "notify_team|update_roadmap|assign_help|provide_info|escalate",
  "confidence": 0.0
}}"""


class UserMessageProcessor:
    """One of two symmetric intake workers.

    A processor is available when none of its LLM calls is in flight and fewer
    than `pending_limit` messages are reserved for it.
    """

    def __init__(
        self,
        agent_id: str,
        llm: ILLMProvider,
        router: IMessageRouter,
        storage: IStorage,
        model: str | None = None,
        pending_limit: int = 5,
    ):
        self._agent_id = agent_id
        self._llm = llm
        self._router = router
        self._storage = storage
        self._model = model
        self._pending_limit = pending_limit
        self._pending: set[str] = set()
        self._llm_calls = 0
        self._processed_count = 0
        self._failed_count = 0
        self._logger = get_logger(__name__, agent_id=agent_id)

    @property
    def agent_id(self) -> str:
        return self._agent_id

    @property
    def queue_size(self) -> int:
        return len(self._pending)

    @property
    def is_processing(self) -> bool:
        return self._llm_calls > 0

    def is_available(self) -> bool:
        return not self.is_processing and self.queue_size < self._pending_limit

    def reserve(self, message_id: str) -> None:
        """Count a message against this processor before its task starts."""
        self._pending.add(message_id)

    async def process(self, message: UserMessage) -> ProcessedMessage:
        """Run the whole pipeline for one message. LLM failures propagate."""
        self._pending.add(message.id)
        message.status = MessageStatus.PROCESSING
        try:
            self._llm_calls += 1
            try:
                analysis, classification = await asyncio.gather(
                    self._analyze(message), self._classify(message)
                )
            finally:
                self._llm_calls -= 1

            processed = ProcessedMessage(
                original=message,
                intent=analysis.get("intent", "question"),
                entities=analysis.get("entities") or {},
                urgency=classification.get("urgency", "medium"),
                suggested_action=classification.get("action", "provide_info"),
                agent_id=self._agent_id,
                processed_at=datetime.now(timezone.utc),
                confidence=float(classification.get("confidence") or 0.0),
            )
            processed = replace(
                processed,
                recommendations=await self._recommendations(processed),
                affected_users=await self._affected_users(processed),
            )

            await self._report(processed)
            await self._storage.add_document(
                "processed_messages",
                {
                    **processed.to_dict(),
                    "analysis": analysis,
                    "classification": classification,
                },
            )

            message.status = MessageStatus.PROCESSED
            self._processed_count += 1
            return processed
        except Exception:
            message.status = MessageStatus.FAILED
            self._failed_count += 1
            raise
        finally:
            self._pending.discard(message.id)

    async def _analyze(self, message: UserMessage) -> dict:
        prompt = ANALYZE_PROMPT.format(
            user_name=message.user_name,
            content=message.content,
            context=message.context,
        )
        return await complete_json(self._llm, prompt, max_tokens=500, model=self._model)

    async def _classify(self, message: UserMessage) -> dict:
        prompt = CLASSIFY_PROMPT.format(
            content=message.content,
            user_status=message.context.get("user_status", "active"),
        )
        return await complete_json(self._llm, prompt, max_tokens=200, model=self._model)

    async def _report(self, processed: ProcessedMessage) -> None:
        """Hand the processed message to the decision engine."""
        await self._router.send(
            AgentMessage(
                type=MessageType.USER_COMMUNICATION,
                source=self._agent_id,
                target="decision_engine",
                payload={
                    "processed_message": processed.to_dict(),
                    "recommended_actions": processed.recommendations,
                    "affected_users": processed.affected_users,
                },
                priority=Priority.from_label(processed.urgency),
            )
        )

    async def _recommendations(self, processed: ProcessedMessage) -> list[dict]:
        recommendations = []

        if processed.intent == "help":
            helpers = await self._find_experts(processed.entities.get("technical_terms", []))
            recommendations.append(
                {
                    "action": "connect_with_expert",
                    "targets": helpers,
                    "message": f"Connect {processed.original.user_name} with experts",
                }
            )

        if processed.urgency == "critical":
            recommendations.append({"action": "escalate_to_coordinator", "priority": "immediate"})

        if processed.intent == "collaboration":
            recommendations.append({"action": "initiate_collaboration", "type": "team_sync"})

        return recommendations

    async def _find_experts(self, terms: list[str]) -> list[str]:
        if not terms:
            return []
        wanted = {t.lower() for t in terms}
        users = await self._storage.find_documents("users")
        return [
            u["id"]
            for u in users
            if wanted & {s.lower() for s in u.get("skills", [])}
        ]

    async def _affected_users(self, processed: ProcessedMessage) -> list[str]:
        affected: dict[str, None] = dict.fromkeys(processed.entities.get("users", []))

        for task_name in processed.entities.get("tasks", []):
            for task in await self._storage.find_documents("tasks", {"name": task_name}):
                affected.update(dict.fromkeys(task.get("assigned_to", [])))

        return list(affected)

    def get_stats(self) -> dict:
        return {
            "agent_id": self._agent_id,
            "available": self.is_available(),
            "processing": self.is_processing,
            "queue_size": self.queue_size,
            "processed": self._processed_count,
            "failed": self._failed_count,
        }

    async def health_check(self) -> dict:
        total = self._processed_count + self._failed_count
        return {"error_rate": self._failed_count / total if total else 0.0}
