"""UserCompiler: per-user agent tracking one participant's tasks."""

import json
from datetime import datetime, timedelta, timezone

from ..communication import IResponseChannel
from ..llm import ILLMProvider, complete_json
from ..message_router import IMessageRouter
from ..models import AgentMessage, MessageType, Priority, user_compiler_id
from ..scheduler import IScheduler
from ..storage import IStorage
from .base import BaseAgent

GUIDANCE_PROMPT = """Generate personalized guidance for a hackathon task.

User skills: {skills}
User experience: {experience}

Task: {task[name]}
Description: {task[description]}
Required skills: {required}
Dependencies: {dependencies}

Return JSON with "steps", "challenges", "resources", "best_practices" and
"integration_points"."""

CONTEXTUALIZE_PROMPT = """Contextualize these repository findings for the user.

User skills: {skills}
Current tasks: {tasks}

Findings:
{findings}

Return JSON with "effects" (per finding), "priority_order", "actions",
"blockers" and "progress" (0-100 estimate for the user's work)."""

INSIGHTS_PROMPT = """Assess this participant's progress.

User: {name}
Active tasks: {active}
Completed tasks: {completed}

Tasks:
{tasks}

Return JSON with "progress" (0-100), "status", "productivity", "blockers"
and "recommendations"."""


def assess_impact(findings: list[dict]) -> str:
    critical = sum(1 for f in findings if f.get("severity") == "critical")
    high = sum(1 for f in findings if f.get("severity") == "high")
    if critical:
        return "critical"
    if high > 2:
        return "high"
    if high:
        return "medium"
    return "low"


class UserCompiler(BaseAgent):
    """Compiles assignments, insights and progress for a single user."""

    message_types = (
        MessageType.TASK_ASSIGNMENT,
        MessageType.TASK_REASSIGNED,
        MessageType.ROADMAP_UPDATED,
        MessageType.SCAN_INSIGHTS,
    )

    def __init__(
        self,
        user_id: str,
        router: IMessageRouter,
        storage: IStorage,
        scheduler: IScheduler,
        llm: ILLMProvider,
        channel: IResponseChannel | None = None,
        model: str | None = None,
        interval: float = 60.0,
    ):
        super().__init__(user_compiler_id(user_id), router, storage, scheduler)
        self.user_id = user_id
        self._llm = llm
        self._channel = channel
        self._model = model
        self._interval = interval
        self.user_context: dict = {}
        self.assigned_tasks: dict[str, dict] = {}

    async def on_start(self) -> None:
        await self.load_user_context()
        self.every("monitor", self._interval, self.monitor)

    async def handle(self, message: AgentMessage) -> None:
        if message.target != self._agent_id:
            return
        match message.type:
            case MessageType.TASK_ASSIGNMENT:
                await self.handle_task_assignment(message.payload)
            case MessageType.TASK_REASSIGNED:
                await self.load_user_context()
                await self.notify_user(
                    {
                        "type": "task_reassigned",
                        "task_id": message.payload.get("task_id"),
                        "reason": message.payload.get("reason", ""),
                    }
                )
            case MessageType.ROADMAP_UPDATED:
                await self.load_user_context()
                await self.notify_user(
                    {"type": "roadmap_updated", "version": message.payload.get("version")}
                )
            case MessageType.SCAN_INSIGHTS:
                await self.process_repository_insights(message.payload)
            case _:
                pass

    async def load_user_context(self) -> None:
        self.user_context = await self._storage.get_document("users", self.user_id) or {}
        tasks = await self._storage.find_documents("tasks", {"assigned_to": self.user_id})
        self.assigned_tasks = {t["id"]: t for t in tasks}

    async def handle_task_assignment(self, payload: dict) -> None:
        task = payload.get("task") or {}
        if not task.get("id"):
            return
        self.assigned_tasks[task["id"]] = {**self.assigned_tasks.get(task["id"], {}), **task}

        guidance = await complete_json(
            self._llm,
            GUIDANCE_PROMPT.format(
                skills=", ".join(self.user_context.get("skills", [])),
                experience=self.user_context.get("experience", "unknown"),
                task={"name": "", "description": "", **task},
                required=", ".join(task.get("skills", [])),
                dependencies=", ".join(payload.get("dependencies", [])) or "none",
            ),
            max_tokens=1500,
            model=self._model,
        )
        await self._storage.add_document(
            "task_assignments",
            {
                "user_id": self.user_id,
                "task_id": task["id"],
                "phase": payload.get("phase"),
                "deadline": payload.get("deadline"),
                "guidance": guidance,
                "assigned_at": _now(),
            },
        )
        await self.notify_user(
            {
                "type": "task_assigned",
                "task": task,
                "guidance": guidance,
                "deadline": payload.get("deadline"),
            }
        )

    def is_relevant(self, finding: dict) -> bool:
        location = finding.get("location") or ""
        return any(
            f and f in location
            for task in self.assigned_tasks.values()
            for f in task.get("files", [])
        )

    async def process_repository_insights(self, payload: dict) -> None:
        relevant = [f for f in payload.get("findings") or [] if self.is_relevant(f)]
        if not relevant:
            return

        insights = await complete_json(
            self._llm,
            CONTEXTUALIZE_PROMPT.format(
                skills=", ".join(self.user_context.get("skills", [])),
                tasks=", ".join(t.get("name", "") for t in self.assigned_tasks.values()),
                findings=json.dumps(relevant, indent=2),
            ),
            max_tokens=1500,
            model=self._model,
        )
        await self.report_progress(
            {"insights": insights, "impact": assess_impact(relevant)}
        )

        critical = [f for f in relevant if f.get("severity") == "critical"]
        if critical:
            await self.notify_user({"type": "critical_findings", "findings": critical})

    async def monitor(self) -> None:
        """Periodic tick: refresh task progress, then report insights."""
        await self.check_user_progress()
        if self.assigned_tasks:
            await self.generate_user_insights()

    async def check_user_progress(self) -> None:
        hour_ago = datetime.now(timezone.utc) - timedelta(hours=1)
        for task in list(self.assigned_tasks.values()):
            if task.get("status") != "in_progress":
                continue
            progress = await self.task_progress(task["id"])
            started = task.get("started_at")
            if progress < 30 and started and _parse_dt(started) < hour_ago:
                await self.send(
                    MessageType.ASSISTANCE_NEEDED,
                    "decision_engine",
                    {"user_id": self.user_id, "task_id": task["id"], "reason": "slow_progress"},
                    priority=Priority.HIGH,
                )
            task["progress"] = progress
            try:
                await self._storage.update_document(
                    "tasks", task["id"], {"progress": progress, "last_checked": _now()}
                )
            except KeyError:
                self._logger.warning("Task %s vanished from the store", task["id"])

    async def task_progress(self, task_id: str) -> int:
        """Ten points per commit attributed to this user and task."""
        commits = await self._storage.find_documents(
            "commits", {"task_id": task_id, "user_id": self.user_id}
        )
        return min(100, len(commits) * 10)

    async def generate_user_insights(self) -> dict:
        tasks = list(self.assigned_tasks.values())
        insights = await complete_json(
            self._llm,
            INSIGHTS_PROMPT.format(
                name=self.user_context.get("name", self.user_id),
                active=sum(1 for t in tasks if t.get("status") == "in_progress"),
                completed=sum(1 for t in tasks if t.get("status") == "completed"),
                tasks=json.dumps(tasks, indent=2, default=str),
            ),
            max_tokens=1000,
            model=self._model,
        )
        await self.report_progress({"type": "user_insights", "insights": insights})
        return insights

    async def report_progress(self, data: dict) -> None:
        await self.send(
            MessageType.USER_PROGRESS,
            "progress_coordinator",
            {"user_id": self.user_id, **data, "timestamp": _now()},
            priority=Priority.LOW,
        )

    async def notify_user(self, notification: dict) -> None:
        await self._storage.add_document(
            "notifications",
            {"user_id": self.user_id, **notification, "read": False, "timestamp": _now()},
        )
        if self._channel:
            await self._channel.emit(self.user_id, "notification", notification)

    async def health_check(self) -> dict:
        return {"user_id": self.user_id, "assigned_tasks": len(self.assigned_tasks)}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_dt(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
