"""RoadmapOrchestrator: owner of the plan-of-record."""

import asyncio
import json
from datetime import datetime, timedelta, timezone

from ..errors import LLMResponseError
from ..llm import ILLMProvider, complete_json
from ..message_router import IMessageRouter
from ..models import (
    AgentMessage,
    MessageType,
    Priority,
    Roadmap,
    Task,
    TaskStatus,
    user_compiler_id,
)
from ..scheduler import IScheduler
from ..storage import IStorage
from .base import BaseAgent

AGENT_ID = "roadmap_orchestrator"

DEFAULT_SCOPE = {"name": "Hackathon Project", "description": "", "duration": 8}

CREATE_PROMPT = """Create a hackathon roadmap.

Project: {scope[name]}
Description: {scope[description]}
Duration: {scope[duration]} hours

Team ({count} members):
{team}

Assign tasks by skill, create parallel work streams, identify dependencies,
set realistic milestones, plan integration points and keep buffer time.

Return JSON:
{{
  "phases": [{{"id": "phase_1", "name": "", "duration": 2,
              "tasks": [{{"id": "", "name": "", "description": "", "assigned_to": ["user_id"],
                          "skills": [], "dependencies": [], "estimated_hours": 1,
                          "priority": "critical|high|medium|low", "files": []}}]}}],
  "milestones": [{{"name": "", "target_time": "T+4h", "criteria": ["task id or name"]}}],
  "integration_points": [{{"time": "T+3h", "teams": ["user_id"], "purpose": ""}}],
  "risk_mitigation": {{"identified_risks": [], "buffer_time": 1, "contingency_plans": []}}
}}"""

UPDATES_FORMAT = """Return JSON:
{
  "changes_required": true,
  "priority_changes": [{"task_id": "", "new_priority": "critical|high|medium|low"}],
  "reassignments": [{"task_id": "", "from_user": "", "to_user": ""}],
  "timeline_adjustments": [{"phase_id": "", "new_duration": 2}],
  "new_tasks": [{"phase_id": "", "task": {"id": "", "name": "", "assigned_to": []}}],
  "affected_users": []
}"""

NEW_USER_PROMPT = """A new user joined the hackathon. Integrate them into the roadmap.

New user:
- ID: {user[id]}
- Name: {user[name]}
- Skills: {skills}
- Available hours: {hours}

Current roadmap:
{roadmap}

Reassign suitable tasks and add tasks that fit their skills.
"""

DEPARTURE_PROMPT = """User {user_id} left the hackathon. Redistribute their tasks.

Departing user's tasks:
{tasks}

Remaining team:
{team}

Consider skill match, current workload, dependencies and the critical path.
"""

STRATEGIC_PROMPT = """Strategic insights from the decision engine:
{summary}

Current roadmap version: {version}

Decide whether task priorities, assignments or phase durations need adjusting.
Set "changes_required" to false when no adjustment is needed.
"""

UPDATE_REQUEST_PROMPT = """Roadmap update requested.

Decision: {decision}
User feedback: {feedback}
Suggested changes: {changes}
Reason: {reason}

Current roadmap:
- Version: {version}
- Tasks: {task_count}

Evaluate the request and return the changes to apply.
"""

REALLOCATION_PROMPT = """The decision engine suggests a reallocation:
{strategy}

Completion rate: {rate}%

Current roadmap:
{roadmap}

Return the concrete changes to apply.
"""

CONTINUOUS_PROMPT = """Continuous roadmap review.

Progress: {progress}
Active users: {active_users}
Open issues: {issues}
Elapsed: {elapsed:.1f} hours

Check milestone risk, assignment balance, bottlenecks and priorities.
"""


class RoadmapOrchestrator(BaseAgent):
    """Creates the roadmap and keeps it aligned with the team and strategy.

    Every structural change bumps the version, persists `roadmaps/current`
    plus the `tasks` collection, and redistributes assignments to the
    user compilers.
    """

    message_types = (
        MessageType.USER_REGISTERED,
        MessageType.USER_DEPARTED,
        MessageType.STRATEGIC_SUMMARY,
        MessageType.ROADMAP_UPDATE,
        MessageType.REALLOCATION_SUGGESTION,
    )

    def __init__(
        self,
        router: IMessageRouter,
        storage: IStorage,
        scheduler: IScheduler,
        llm: ILLMProvider,
        model: str | None = None,
        interval: float = 300.0,
    ):
        super().__init__(AGENT_ID, router, storage, scheduler)
        self._llm = llm
        self._model = model
        self._interval = interval
        self._roadmap: Roadmap | None = None
        # Serializes structural changes across concurrent handlers and the timer
        self._lock = asyncio.Lock()

    @property
    def roadmap(self) -> Roadmap | None:
        return self._roadmap

    async def on_start(self) -> None:
        stored = await self._storage.get_document("roadmaps", "current")
        if stored:
            self._roadmap = Roadmap.from_dict(stored)
            self._logger.info("Loaded roadmap version %d", self._roadmap.version)
        self.every("update", self._interval, self.update_roadmap)

    async def handle(self, message: AgentMessage) -> None:
        # Broadcasts reach every agent; only subscribed types take the lock
        if message.type not in self.message_types:
            return
        payload = message.payload
        async with self._lock:
            match message.type:
                case MessageType.USER_REGISTERED:
                    await self.handle_new_user(payload.get("user", payload))
                case MessageType.USER_DEPARTED:
                    await self.handle_user_departure(payload["user_id"])
                case MessageType.STRATEGIC_SUMMARY:
                    await self.incorporate_strategic_summary(payload)
                case MessageType.ROADMAP_UPDATE:
                    await self.handle_roadmap_update_request(payload)
                case MessageType.REALLOCATION_SUGGESTION:
                    await self.handle_reallocation_suggestion(payload)
                case _:
                    pass

    async def create_initial_roadmap(self) -> Roadmap:
        users = await self._storage.find_documents("users")
        scope = {**DEFAULT_SCOPE, **(await self._storage.get_document("hackathon", "current") or {})}

        data = await complete_json(
            self._llm,
            CREATE_PROMPT.format(scope=scope, count=len(users), team=_describe_team(users)),
            max_tokens=4096,
            model=self._model,
        )
        if not data.get("phases"):
            raise LLMResponseError("Roadmap without phases")

        roadmap = Roadmap.from_dict({**data, "version": 1})
        self._roadmap = roadmap
        await self._save()
        await self.distribute_tasks()
        await self._announce_created()
        self._logger.info(
            "Roadmap created: %d phases, %d tasks",
            len(roadmap.phases),
            sum(1 for _ in roadmap.iter_tasks()),
        )
        return roadmap

    async def handle_new_user(self, user: dict) -> None:
        self._logger.info("New user registered: %s", user.get("name", user.get("id")))
        if self._roadmap is None:
            await self.create_initial_roadmap()
            return

        updates = await self._ask_for_updates(
            NEW_USER_PROMPT.format(
                user={"id": "", "name": "", **user},
                skills=", ".join(user.get("skills", [])),
                hours=user.get("available_hours", "unknown"),
                roadmap=json.dumps(self._roadmap.to_dict(), indent=2),
            )
        )
        await self.apply_updates(updates)

    async def handle_user_departure(self, user_id: str) -> None:
        self._logger.info("User departed: %s", user_id)
        if self._roadmap is None:
            return
        affected = self._roadmap.tasks_for_user(user_id)
        if not affected:
            return

        remaining = [
            u for u in await self._storage.find_documents("users", {"status": "active"})
            if u["id"] != user_id
        ]
        team = "\n".join(
            f"- {u['id']} ({u.get('name', '')}): {', '.join(u.get('skills', []))}"
            f" | load: {self.open_task_count(u['id'])} tasks"
            for u in remaining
        )
        updates = await self._ask_for_updates(
            DEPARTURE_PROMPT.format(
                user_id=user_id,
                tasks=json.dumps([_task_summary(t) for t in affected], indent=2),
                team=team or "(nobody)",
            )
        )
        await self.apply_updates(updates, reason="User departure")

    async def incorporate_strategic_summary(self, summary: dict) -> None:
        if self._roadmap is None:
            return
        updates = await self._ask_for_updates(
            STRATEGIC_PROMPT.format(
                summary=json.dumps(summary, indent=2, default=str),
                version=self._roadmap.version,
            )
        )
        if updates.get("changes_required", updates.get("adjustments_needed", False)):
            await self.apply_updates(updates, reason="Strategic adjustment")

    async def handle_roadmap_update_request(self, payload: dict) -> None:
        if self._roadmap is None:
            self._logger.warning("Roadmap update requested before a roadmap exists")
            return
        updates = await self._ask_for_updates(
            UPDATE_REQUEST_PROMPT.format(
                decision=json.dumps(payload.get("decision", {}), default=str),
                feedback=json.dumps(payload.get("user_feedback", {}), default=str),
                changes=json.dumps(payload.get("suggested_changes", {}), default=str),
                reason=payload.get("reason", ""),
                version=self._roadmap.version,
                task_count=sum(1 for _ in self._roadmap.iter_tasks()),
            )
        )
        if updates.get("changes_required", True):
            await self.apply_updates(updates, reason=payload.get("reason") or "Decision update")

    async def handle_reallocation_suggestion(self, payload: dict) -> None:
        if self._roadmap is None:
            return
        updates = await self._ask_for_updates(
            REALLOCATION_PROMPT.format(
                strategy=payload.get("strategy", ""),
                rate=payload.get("completion_rate", "unknown"),
                roadmap=json.dumps(self._roadmap.to_dict(), indent=2),
            )
        )
        if updates.get("changes_required", True):
            await self.apply_updates(updates, reason="Reallocation")

    async def update_roadmap(self) -> None:
        """Periodic review against live progress."""
        async with self._lock:
            await self._review()

    async def _review(self) -> None:
        if self._roadmap is None:
            return
        tasks = await self._storage.find_documents("tasks")
        progress = {
            "total_tasks": len(tasks),
            **{
                status.value: sum(1 for t in tasks if t.get("status") == status.value)
                for status in TaskStatus
            },
        }
        active = await self._storage.find_documents("users", {"status": "active"})
        issues = [
            i for i in await self._storage.find_documents("issues")
            if i.get("status") != "resolved"
        ]
        elapsed = (datetime.now(timezone.utc) - self._roadmap.created_at).total_seconds() / 3600

        updates = await self._ask_for_updates(
            CONTINUOUS_PROMPT.format(
                progress=json.dumps(progress),
                active_users=len(active),
                issues=len(issues),
                elapsed=elapsed,
            )
        )
        if updates.get("changes_required"):
            await self.apply_updates(updates, reason="Continuous update")

    async def _ask_for_updates(self, prompt: str) -> dict:
        return await complete_json(
            self._llm, f"{prompt}\n{UPDATES_FORMAT}", max_tokens=2048, model=self._model
        )

    async def apply_updates(self, updates: dict, reason: str = "Roadmap update") -> set[str]:
        """Apply a structured change set. Returns the users whose work changed."""
        roadmap = self._roadmap
        if roadmap is None:
            return set()
        await self._sync_task_state()

        affected: set[str] = set(updates.get("affected_users") or [])
        reassigned: list[tuple[str, str]] = []

        for change in updates.get("priority_changes") or []:
            task = roadmap.find_task(str(change.get("task_id")))
            if task and change.get("new_priority"):
                task.priority = change["new_priority"]
                affected.update(task.assigned_to)

        for change in updates.get("reassignments") or []:
            task = roadmap.find_task(str(change.get("task_id")))
            to_user = change.get("to_user")
            if task is None or not to_user:
                continue
            from_user = change.get("from_user")
            task.assigned_to = [u for u in task.assigned_to if u != from_user]
            if to_user not in task.assigned_to:
                task.assigned_to.append(to_user)
            reassigned.append((task.id, to_user))
            affected.add(to_user)
            if from_user:
                affected.add(from_user)

        phases = {p.id: p for p in roadmap.phases}
        for change in updates.get("timeline_adjustments") or []:
            phase = phases.get(str(change.get("phase_id")))
            if phase and change.get("new_duration") is not None:
                phase.duration = change["new_duration"]

        for entry in updates.get("new_tasks") or []:
            phase = phases.get(str(entry.get("phase_id"))) or (roadmap.phases[-1] if roadmap.phases else None)
            task = Task.from_dict(entry.get("task") or {})
            if phase is None or not task.id or roadmap.find_task(task.id):
                continue
            phase.tasks.append(task)
            affected.update(task.assigned_to)

        roadmap.touch()
        await self._save()

        for task_id, user_id in reassigned:
            await self.send(
                MessageType.TASK_REASSIGNED,
                user_compiler_id(user_id),
                {"task_id": task_id, "reason": reason},
                priority=Priority.HIGH,
            )
        await self.distribute_tasks(affected)
        for user_id in affected:
            await self.send(
                MessageType.ROADMAP_UPDATED,
                user_compiler_id(user_id),
                {"version": roadmap.version, "target_user": user_id, "reason": reason},
            )

        self._logger.info("Roadmap v%d: %s (%d users affected)", roadmap.version, reason, len(affected))
        return affected

    async def distribute_tasks(self, users: set[str] | None = None) -> None:
        """Send TASK_ASSIGNMENT to the compiler of every assignee (or only `users`)."""
        if self._roadmap is None:
            return
        for phase, task in self._roadmap.iter_tasks():
            for user_id in task.assigned_to:
                if users is not None and user_id not in users:
                    continue
                await self.send(
                    MessageType.TASK_ASSIGNMENT,
                    user_compiler_id(user_id),
                    {
                        "task": _task_summary(task),
                        "phase": phase.name,
                        "dependencies": task.dependencies,
                        "deadline": self._deadline(phase.id).isoformat(),
                    },
                    priority=Priority.from_label(task.priority),
                )

    def open_task_count(self, user_id: str) -> int:
        if self._roadmap is None:
            return 0
        return sum(
            1 for t in self._roadmap.tasks_for_user(user_id) if t.status != TaskStatus.COMPLETED
        )

    def critical_path(self) -> list[str]:
        if self._roadmap is None:
            return []
        return [t.id for _, t in self._roadmap.iter_tasks() if t.priority == "critical"]

    def summary(self) -> dict:
        roadmap = self._roadmap
        if roadmap is None:
            return {}
        total_hours = sum(p.duration for p in roadmap.phases)
        return {
            "version": roadmap.version,
            "total_phases": len(roadmap.phases),
            "total_tasks": sum(1 for _ in roadmap.iter_tasks()),
            "milestones": len(roadmap.milestones),
            "estimated_completion": (roadmap.created_at + timedelta(hours=total_hours)).isoformat(),
            "critical_tasks": self.critical_path(),
        }

    def _deadline(self, phase_id: str) -> datetime:
        """End of the phase, counted from roadmap creation."""
        hours = 0.0
        for phase in self._roadmap.phases:
            hours += phase.duration
            if phase.id == phase_id:
                break
        return self._roadmap.created_at + timedelta(hours=hours)

    async def _sync_task_state(self) -> None:
        """Pull status/progress written by other agents back into the roadmap."""
        stored = {t["id"]: t for t in await self._storage.find_documents("tasks")}
        for _, task in self._roadmap.iter_tasks():
            doc = stored.get(task.id)
            if not doc:
                continue
            try:
                task.status = TaskStatus(doc.get("status", task.status.value))
            except ValueError:
                pass
            task.progress = doc.get("progress", task.progress)

    async def _save(self) -> None:
        roadmap = self._roadmap
        tasks = {
            task.id: {**_task_summary(task), "phase_id": phase.id}
            for phase, task in roadmap.iter_tasks()
        }
        await self._storage.set_document("roadmaps", "current", roadmap.to_dict())
        await self._storage.set_documents("tasks", tasks)
        # The tasks collection mirrors the roadmap exactly
        for stale in await self._storage.find_documents("tasks"):
            if stale["id"] not in tasks:
                await self._storage.delete_document("tasks", stale["id"])

    async def _announce_created(self) -> None:
        await self.send(
            MessageType.ROADMAP_CREATED,
            "progress_coordinator",
            {"roadmap": self._roadmap.to_dict()},
            priority=Priority.HIGH,
        )
        await self.send(
            MessageType.ROADMAP_CREATED,
            "decision_engine",
            {"summary": self.summary(), "critical_path": self.critical_path()},
        )


def _describe_team(users: list[dict]) -> str:
    return "\n".join(
        f"- {u['id']} ({u.get('name', '')}): {', '.join(u.get('skills', []))}"
        f" | available: {u.get('available_hours', '?')}h"
        for u in users
    ) or "(no registered users)"


def _task_summary(task: Task) -> dict:
    return {
        "id": task.id,
        "name": task.name,
        "description": task.description,
        "assigned_to": list(task.assigned_to),
        "skills": list(task.skills),
        "dependencies": list(task.dependencies),
        "estimated_hours": task.estimated_hours,
        "priority": task.priority,
        "status": task.status.value,
        "progress": task.progress,
        "files": list(task.files),
    }
