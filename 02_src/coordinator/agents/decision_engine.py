"""DecisionEngine: reactive strategic decisions plus a 10s proactive rule tick."""

import json
from datetime import datetime, timedelta, timezone

from ..llm import ILLMProvider, complete_json, complete_text
from ..errors import LLMResponseError
from ..message_router import IMessageRouter
from ..models import ALL_AGENTS, AgentMessage, MessageType, Priority, ScanMode, SystemState
from ..scheduler import IScheduler
from ..storage import IStorage
from .base import BaseAgent

AGENT_ID = "decision_engine"

DECISION_PROMPT = """Strategic decision required for a live hackathon.

User communication:
- Intent: {intent}
- Urgency: {urgency}
- Entities: {entities}

System state:
- Active users: {state.active_users}
- Tasks in progress: {state.tasks_in_progress}
- Completion rate: {state.completion_rate:.1f}%
- Blocked tasks: {blocked}
- Critical issues: {critical}

Recommended actions:
{recommendations}

Return JSON:
{{
  "decision": "what was decided",
  "actions": [{{"type": "notify|allocate|collaborate|update", "target": "id", "details": {{}}}}],
  "resource_allocation": {{"scanners": 0, "focus_area": ""}},
  "requires_roadmap_update": false,
  "roadmap_changes": {{}},
  "notify_agents": [],
  "priority": "immediate|high|normal|low",
  "reasoning": "why"
}}"""

REALLOCATION_PROMPT = """Completion rate is {rate:.1f}% with {in_progress} tasks in progress.
Suggest task prioritization and resource redistribution for the team."""

GUIDANCE_PROMPT = """The progress coordinator reports the project is {status}.

Coordination assessment:
{coordination}

System state:
{state}

Return JSON:
{{
  "summary": "",
  "priority_changes": [{{"task_id": "", "new_priority": "critical|high|medium|low"}}],
  "reassignments": [{{"task_id": "", "from_user": "", "to_user": ""}}],
  "timeline_adjustments": [{{"phase_id": "", "new_duration": 2}}],
  "changes_required": true
}}"""

COMPLEXITY_SCANNERS = {"low": 1, "medium": 3, "high": 5, "critical": 8}


def determine_scan_mode(scanners: int) -> ScanMode:
    """Map a requested scanner count to a scanning strategy."""
    if scanners == 1:
        return ScanMode.MINIMAL
    if scanners <= 3:
        return ScanMode.TARGETED
    if scanners <= 5:
        return ScanMode.COMPREHENSIVE
    return ScanMode.DEEP_DIVE


def optimal_scanners(complexity: str | None) -> int:
    return COMPLEXITY_SCANNERS.get(complexity or "", 2)


class DecisionEngine(BaseAgent):
    """Consumes processed user messages and system snapshots, emits directives."""

    message_types = (
        MessageType.USER_COMMUNICATION,
        MessageType.PROGRESS_UPDATE,
        MessageType.ASSISTANCE_NEEDED,
        MessageType.SCANNER_REQUEST,
        MessageType.SCAN_SUMMARY,
        MessageType.CONFLICTS_DETECTED,
        MessageType.COORDINATION_UPDATE,
        MessageType.STRATEGIC_GUIDANCE_REQUEST,
    )

    def __init__(
        self,
        router: IMessageRouter,
        storage: IStorage,
        scheduler: IScheduler,
        llm: ILLMProvider,
        model: str | None = None,
        interval: float = 10.0,
    ):
        super().__init__(AGENT_ID, router, storage, scheduler)
        self._llm = llm
        self._model = model
        self._interval = interval
        self._allocation_cache: dict[str, int] = {}
        self.repository_health: int | None = None
        self.last_coordination: dict = {}

    async def on_start(self) -> None:
        self.every("monitor", self._interval, self.analyze_system)

    async def handle(self, message: AgentMessage) -> None:
        match message.type:
            case MessageType.USER_COMMUNICATION:
                await self.handle_user_communication(message)
            case MessageType.PROGRESS_UPDATE:
                await self.handle_progress_update(message)
            case MessageType.ASSISTANCE_NEEDED:
                await self.suggest_assistance(
                    message.payload.get("user_id"), message.payload.get("task_id")
                )
            case MessageType.SCANNER_REQUEST:
                await self.update_scanner_allocation(
                    optimal_scanners(message.payload.get("complexity")),
                    message.payload.get("area") or "general",
                )
            case MessageType.SCAN_SUMMARY:
                await self.handle_scan_summary(message.payload)
            case MessageType.CONFLICTS_DETECTED:
                await self.handle_conflicts(message.payload)
            case MessageType.COORDINATION_UPDATE:
                self.last_coordination = message.payload.get("coordination", {})
            case MessageType.STRATEGIC_GUIDANCE_REQUEST:
                await self.provide_strategic_guidance(message.payload)
            case _:
                pass

    async def get_system_state(self) -> SystemState:
        """Snapshot from users, tasks and issues collections."""
        users = await self._storage.find_documents("users", {"status": "active"})
        cutoff = (datetime.now(timezone.utc) - timedelta(minutes=10)).isoformat()
        active = [u for u in users if u.get("last_activity", cutoff) >= cutoff]

        tasks = await self._storage.find_documents("tasks")
        in_progress = sum(1 for t in tasks if t.get("status") == "in_progress")
        completed = sum(1 for t in tasks if t.get("status") == "completed")
        blocked = [t["id"] for t in tasks if t.get("status") == "blocked"]

        issues = await self._storage.find_documents("issues", {"severity": "critical"})
        critical = [i["id"] for i in issues if i.get("status") != "resolved"]

        return SystemState(
            active_users=len(active),
            tasks_in_progress=in_progress,
            completion_rate=(completed / len(tasks) * 100) if tasks else 0.0,
            blocked_tasks=blocked,
            critical_issues=critical,
        )

    async def handle_user_communication(self, message: AgentMessage) -> None:
        processed = message.payload.get("processed_message", {})
        recommendations = message.payload.get("recommended_actions", [])
        affected_users = message.payload.get("affected_users", [])

        state = await self.get_system_state()
        decision = await self.make_decision(processed, state, recommendations)

        await self.execute_decision(decision)

        if decision.get("requires_roadmap_update"):
            await self.send(
                MessageType.ROADMAP_UPDATE,
                "roadmap_orchestrator",
                {
                    "decision": decision,
                    "user_feedback": processed,
                    "suggested_changes": decision.get("roadmap_changes", {}),
                    "reason": decision.get("reasoning", ""),
                },
                priority=Priority.CRITICAL,
            )

        for user_id in affected_users:
            await self._storage.add_document(
                "notifications",
                {
                    "user_id": user_id,
                    "type": "decision_update",
                    "message": decision.get("decision", ""),
                    "priority": decision.get("priority", "normal"),
                    "read": False,
                    "timestamp": _now(),
                },
            )

        await self._storage.add_document(
            "monitoring_context",
            {"user_feedback": processed, "decision": decision, "timestamp": _now()},
        )

    async def make_decision(
        self, processed: dict, state: SystemState, recommendations: list
    ) -> dict:
        """Ask the strategic LLM. Raises LLMResponseError on empty/invalid output."""
        prompt = DECISION_PROMPT.format(
            intent=processed.get("intent", "unknown"),
            urgency=processed.get("urgency", "medium"),
            entities=json.dumps(processed.get("entities", {})),
            state=state,
            blocked=len(state.blocked_tasks),
            critical=len(state.critical_issues),
            recommendations=json.dumps(recommendations, indent=2),
        )
        decision = await complete_json(self._llm, prompt, max_tokens=1000, model=self._model)
        if not isinstance(decision.get("actions", []), list):
            raise LLMResponseError("Decision actions must be a list")
        return decision

    async def execute_decision(self, decision: dict) -> None:
        self._logger.info("Executing decision: %s", decision.get("decision", ""))

        for action in decision.get("actions", []):
            target = action.get("target", "")
            details = action.get("details") or {}
            match action.get("type"):
                case "notify":
                    await self._storage.add_document(
                        "notifications", {"target": target, **details, "timestamp": _now()}
                    )
                case "allocate":
                    await self._storage.add_document(
                        "resource_allocations", {"target": target, **details, "timestamp": _now()}
                    )
                case "collaborate":
                    await self.send(
                        MessageType.COLLABORATION_REQUEST, "progress_coordinator", details
                    )
                case "update":
                    await self.send(
                        MessageType.COMPONENT_UPDATE, target, details, priority=Priority.LOW
                    )
                case other:
                    self._logger.warning("Unknown decision action type: %s", other)

        allocation = decision.get("resource_allocation") or {}
        if allocation.get("scanners"):
            await self.update_scanner_allocation(
                int(allocation["scanners"]), allocation.get("focus_area") or "general"
            )

        for agent in decision.get("notify_agents") or []:
            await self.send(
                MessageType.DECISION_NOTIFICATION,
                agent,
                {
                    "decision": decision.get("decision", ""),
                    "actions": [
                        a for a in decision.get("actions", []) if a.get("target") == agent
                    ],
                    "priority": decision.get("priority", "normal"),
                },
            )

    async def update_scanner_allocation(self, scanners: int, focus_area: str) -> None:
        await self.send(
            MessageType.SCANNER_ALLOCATION,
            "repository_scanner_manager",
            {
                "requested_scanners": scanners,
                "mode": determine_scan_mode(scanners).value,
                "focus_areas": [focus_area],
                "priority": "high",
            },
            priority=Priority.HIGH,
        )
        self._allocation_cache[focus_area] = scanners

    async def analyze_system(self) -> None:
        """Proactive tick: threshold rules over a fresh snapshot."""
        state = await self.get_system_state()

        if len(state.blocked_tasks) > 2:
            await self.send(
                MessageType.BLOCKAGE_ALERT,
                "progress_coordinator",
                {"blocked_tasks": state.blocked_tasks, "suggestion": "initiate_team_sync"},
                priority=Priority.CRITICAL,
            )

        if state.completion_rate < 30 and state.tasks_in_progress > 5:
            suggestion = await complete_text(
                self._llm,
                REALLOCATION_PROMPT.format(
                    rate=state.completion_rate, in_progress=state.tasks_in_progress
                ),
                max_tokens=500,
                model=self._model,
            )
            if not suggestion:
                raise LLMResponseError("Empty reallocation strategy from LLM")
            await self.send(
                MessageType.REALLOCATION_SUGGESTION,
                "roadmap_orchestrator",
                {"strategy": suggestion, "completion_rate": state.completion_rate},
                priority=Priority.HIGH,
            )

        for issue_id in state.critical_issues:
            await self.send(
                MessageType.CRITICAL_ISSUE,
                ALL_AGENTS,
                {"issue_id": issue_id, "action": "immediate_attention_required"},
                priority=Priority.CRITICAL,
            )

    async def handle_progress_update(self, message: AgentMessage) -> None:
        progress = message.payload.get("progress", 0)
        elapsed = message.payload.get("time_elapsed", 0)  # seconds
        if progress < 30 and elapsed > 3600:
            await self.suggest_assistance(
                message.payload.get("user_id"), message.payload.get("task_id")
            )

    async def suggest_assistance(self, user_id: str | None, task_id: str | None) -> None:
        await self.send(
            MessageType.ASSISTANCE_SUGGESTION,
            "communication_hub",
            {
                "user_id": user_id,
                "task_id": task_id,
                "message": "User may need assistance with this task",
            },
        )

    async def handle_scan_summary(self, payload: dict) -> None:
        """Record repository health; critical findings become open issues."""
        self.repository_health = payload.get("overall_health")
        for finding in payload.get("critical_findings", []):
            await self._storage.add_document(
                "issues",
                {
                    "severity": "critical",
                    "status": "open",
                    "source": "repository_scan",
                    "finding": finding,
                    "timestamp": _now(),
                },
            )

    async def handle_conflicts(self, payload: dict) -> None:
        for conflict in payload.get("conflicts", []):
            for user_id in conflict.get("affected_users", []):
                await self._storage.add_document(
                    "notifications",
                    {
                        "user_id": user_id,
                        "type": "conflict",
                        "message": conflict.get("description", "Conflicting changes detected"),
                        "location": conflict.get("location"),
                        "priority": payload.get("severity", "high"),
                        "read": False,
                        "timestamp": _now(),
                    },
                )

    async def provide_strategic_guidance(self, payload: dict) -> dict:
        coordination = payload.get("coordination", {})
        state = await self.get_system_state()
        summary = await complete_json(
            self._llm,
            GUIDANCE_PROMPT.format(
                status=coordination.get("status", "at_risk"),
                coordination=json.dumps(coordination, indent=2, default=str),
                state=json.dumps(state.to_dict(), indent=2),
            ),
            max_tokens=1000,
            model=self._model,
        )
        await self.send(
            MessageType.STRATEGIC_SUMMARY,
            "roadmap_orchestrator",
            summary,
            priority=Priority.HIGH,
        )
        return summary

    @property
    def allocation_cache(self) -> dict[str, int]:
        return dict(self._allocation_cache)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
