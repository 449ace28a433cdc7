"""ProgressCoordinator: global progress picture and 30s coordination loop."""

import json
import re
from datetime import datetime, timedelta, timezone

from ..llm import ILLMProvider, complete_json
from ..message_router import IMessageRouter
from ..models import AgentMessage, MessageType, Priority
from ..scheduler import IScheduler
from ..storage import IStorage
from .base import BaseAgent

AGENT_ID = "progress_coordinator"

COORDINATION_PROMPT = """Perform global progress coordination for a live hackathon.

Global state:
{state}

User progress ({count} users):
{users}

Assess overall progress, bottlenecks, collaboration opportunities, risk areas
and resource allocation efficiency.

Return JSON:
{{
  "overall_progress": 0,
  "status": "on_track|at_risk|critical",
  "bottlenecks": [],
  "collaboration_opportunities": [],
  "critical_issues": [],
  "recommendations": []
}}"""

RELATIVE_TIME = re.compile(r"^T\+(\d+(?:\.\d+)?)h?$")


class ProgressCoordinator(BaseAgent):
    """Keeps `global_state/current`, user progress and milestone status."""

    message_types = (
        MessageType.USER_PROGRESS,
        MessageType.REPOSITORY_ANALYSIS,
        MessageType.ROADMAP_CREATED,
        MessageType.BLOCKAGE_ALERT,
        MessageType.COLLABORATION_REQUEST,
    )

    def __init__(
        self,
        router: IMessageRouter,
        storage: IStorage,
        scheduler: IScheduler,
        llm: ILLMProvider,
        model: str | None = None,
        interval: float = 30.0,
    ):
        super().__init__(AGENT_ID, router, storage, scheduler)
        self._llm = llm
        self._model = model
        self._interval = interval
        self.global_state: dict = {}
        self.user_progress: dict[str, dict] = {}

    async def on_start(self) -> None:
        self.global_state = await self._storage.get_document("global_state", "current") or {}
        self.every("coordination", self._interval, self.perform_global_coordination)

    async def handle(self, message: AgentMessage) -> None:
        if message.target != self._agent_id:
            return
        match message.type:
            case MessageType.USER_PROGRESS:
                await self.handle_user_progress(message.payload)
            case MessageType.REPOSITORY_ANALYSIS:
                await self.handle_repository_analysis(message.payload.get("analysis", message.payload))
            case MessageType.ROADMAP_CREATED:
                await self.handle_roadmap_created(message.payload.get("roadmap", message.payload))
            case MessageType.BLOCKAGE_ALERT:
                await self.handle_blockage_alert(message.payload)
            case MessageType.COLLABORATION_REQUEST:
                await self.handle_collaboration_request(message)
            case _:
                pass

    async def handle_user_progress(self, payload: dict) -> None:
        user_id = payload.get("user_id")
        if not user_id:
            return
        insights = payload.get("insights") or {}
        self.user_progress[user_id] = {
            "insights": insights,
            "impact": payload.get("impact"),
            "last_update": _now(),
        }
        if insights.get("blockers"):
            await self.check_dependencies(user_id, insights["blockers"])
        await self.update_global_progress()

    async def check_dependencies(self, user_id: str, blockers: list) -> None:
        """Notify assignees of tasks that depend on the blocked user's tasks."""
        tasks = await self._storage.find_documents("tasks")
        blocked_ids = {t["id"] for t in tasks if user_id in t.get("assigned_to", [])}
        notified: set[str] = set()
        for task in tasks:
            if not blocked_ids.intersection(task.get("dependencies", [])):
                continue
            for assignee in task.get("assigned_to", []):
                if assignee == user_id or assignee in notified:
                    continue
                notified.add(assignee)
                await self._storage.add_document(
                    "notifications",
                    {
                        "user_id": assignee,
                        "type": "dependency_blocked",
                        "message": f"Task dependency blocked by {user_id}",
                        "blockers": blockers,
                        "read": False,
                        "timestamp": _now(),
                    },
                )

    async def update_global_progress(self) -> None:
        tasks = await self._storage.find_documents("tasks")
        completed = sum(1 for t in tasks if t.get("status") == "completed")
        self.global_state["progress"] = {
            "percentage": (completed / len(tasks) * 100) if tasks else 0.0,
            "completed_tasks": completed,
            "total_tasks": len(tasks),
            "in_progress": sum(1 for t in tasks if t.get("status") == "in_progress"),
            "blocked": sum(1 for t in tasks if t.get("status") == "blocked"),
        }
        await self._save_state()

    async def handle_repository_analysis(self, analysis: dict) -> None:
        findings = analysis.get("findings") or []
        self.global_state["repository_health"] = {
            "findings": findings,
            "metrics": analysis.get("metrics") or {},
            "health_score": analysis.get("health_score"),
            "last_analysis": _now(),
        }

        conflicts = await self.identify_conflicts(findings)
        if conflicts:
            await self.send(
                MessageType.CONFLICTS_DETECTED,
                "decision_engine",
                {"conflicts": conflicts, "severity": "high"},
                priority=Priority.CRITICAL,
            )
        await self.update_progress_map()

    async def identify_conflicts(self, findings: list[dict]) -> list[dict]:
        tasks = await self._storage.find_documents("tasks")
        conflicts = []
        for finding in findings:
            if finding.get("type") != "conflict" and finding.get("severity") != "critical":
                continue
            paths = list(finding.get("files") or [])
            if finding.get("location"):
                paths.append(finding["location"])
            users = sorted(
                {
                    user
                    for task in tasks
                    if _touches(task.get("files", []), paths)
                    for user in task.get("assigned_to", [])
                }
            )
            conflicts.append({**finding, "affected_users": users})
        return conflicts

    async def update_progress_map(self) -> dict:
        progress_map = {
            "timestamp": _now(),
            "overall": self.global_state.get("progress"),
            "users": [
                {
                    "user_id": user_id,
                    "progress": data["insights"].get("progress", 0),
                    "status": data["insights"].get("status", "active"),
                    "last_update": data["last_update"],
                }
                for user_id, data in self.user_progress.items()
            ],
            "repository_health": self.global_state.get("repository_health"),
            "milestones": await self.milestone_status(),
        }
        await self._storage.add_document("progress_maps", progress_map)
        await self.send(
            MessageType.PROGRESS_MAP_UPDATE, "dashboard", progress_map, priority=Priority.LOW
        )
        return progress_map

    async def milestone_status(self) -> list[dict]:
        roadmap = await self._storage.get_document("roadmaps", "current")
        if not roadmap:
            return []
        tasks = await self._storage.find_documents("tasks")
        done = {t["id"] for t in tasks if t.get("status") == "completed"}
        done |= {t.get("name") for t in tasks if t.get("status") == "completed"}
        created_at = _parse_dt(roadmap.get("created_at"))

        statuses = []
        for milestone in roadmap.get("milestones", []):
            completed = milestone_completed(milestone.get("criteria", []), done)
            target = _target_time(milestone.get("target_time"), created_at)
            if completed:
                status = "completed"
            elif target and datetime.now(timezone.utc) > target:
                status = "overdue"
            else:
                status = "pending"
            statuses.append(
                {
                    "name": milestone.get("name", ""),
                    "target_time": milestone.get("target_time"),
                    "completed": completed,
                    "status": status,
                }
            )
        return statuses

    async def handle_roadmap_created(self, roadmap: dict) -> None:
        phases = roadmap.get("phases", [])
        self.global_state["roadmap"] = {
            "version": roadmap.get("version", 1),
            "phases": len(phases),
            "total_tasks": sum(len(p.get("tasks", [])) for p in phases),
            "milestones": roadmap.get("milestones", []),
        }
        await self._save_state()

    async def handle_blockage_alert(self, payload: dict) -> None:
        blocked = payload.get("blocked_tasks", [])
        self.global_state["blockages"] = {"tasks": blocked, "reported_at": _now()}
        await self._save_state()

        users: set[str] = set()
        for task_id in blocked:
            task = await self._storage.get_document("tasks", task_id)
            if task:
                users.update(task.get("assigned_to", []))
        for user_id in sorted(users):
            await self._storage.add_document(
                "notifications",
                {
                    "user_id": user_id,
                    "type": "team_sync",
                    "message": f"{len(blocked)} tasks are blocked; team sync requested",
                    "suggestion": payload.get("suggestion", "initiate_team_sync"),
                    "read": False,
                    "timestamp": _now(),
                },
            )

    async def handle_collaboration_request(self, message: AgentMessage) -> str:
        details = message.payload
        participants = list(details.get("participants") or details.get("users") or [])
        session_id = await self._storage.add_document(
            "collaboration_sessions",
            {
                "requested_by": message.source,
                "participants": participants,
                "topic": details.get("topic") or details.get("reason", ""),
                "details": details,
                "status": "proposed",
                "correlation_id": message.correlation_id,
                "timestamp": _now(),
            },
        )
        for user_id in participants:
            await self._storage.add_document(
                "notifications",
                {
                    "user_id": user_id,
                    "type": "collaboration_request",
                    "session_id": session_id,
                    "read": False,
                    "timestamp": _now(),
                },
            )
        self._logger.info("Collaboration session %s with %s", session_id, participants)
        return session_id

    async def perform_global_coordination(self) -> dict:
        coordination = await complete_json(
            self._llm,
            COORDINATION_PROMPT.format(
                state=json.dumps(self.global_state, indent=2, default=str),
                count=len(self.user_progress),
                users=json.dumps(self.user_progress, indent=2, default=str),
            ),
            max_tokens=1500,
            model=self._model,
        )

        await self.send(
            MessageType.COORDINATION_UPDATE,
            "decision_engine",
            {
                "coordination": coordination,
                "user_progress": self.user_progress,
                "global_state": self.global_state,
            },
        )
        if coordination.get("status") in ("at_risk", "critical"):
            await self.send(
                MessageType.STRATEGIC_GUIDANCE_REQUEST,
                "decision_engine",
                {"reason": "project_at_risk", "coordination": coordination, "urgency": "high"},
                priority=Priority.CRITICAL,
            )

        self.global_state["coordination"] = coordination
        await self._save_state()
        return coordination

    async def _save_state(self) -> None:
        await self._storage.set_document("global_state", "current", self.global_state)

    async def health_check(self) -> dict:
        return {"tracked_users": len(self.user_progress)}


def milestone_completed(criteria: list[str], completed: set) -> bool:
    """A milestone is complete when every criterion names a completed task."""
    return bool(criteria) and all(c in completed for c in criteria)


def _touches(task_files: list[str], paths: list[str]) -> bool:
    return any(f and f in p for f in task_files for p in paths)


def _target_time(value, created_at: datetime | None) -> datetime | None:
    if not value:
        return None
    match = RELATIVE_TIME.match(str(value))
    if match:
        if created_at is None:
            return None
        return created_at + timedelta(hours=float(match.group(1)))
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _parse_dt(value) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
