"""Roadmap data models."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum


class TaskStatus(str, Enum):
    """Progress state of a roadmap task."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"


@dataclass
class Task:
    """A unit of work on the roadmap."""

    id: str
    name: str
    description: str = ""
    assigned_to: list[str] = field(default_factory=list)
    skills: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    estimated_hours: float = 0
    priority: str = "medium"  # critical|high|medium|low
    status: TaskStatus = TaskStatus.NOT_STARTED
    progress: int = 0
    files: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        status = data.get("status") or TaskStatus.NOT_STARTED.value
        try:
            task_status = TaskStatus(status)
        except ValueError:
            task_status = TaskStatus.NOT_STARTED
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            description=data.get("description", ""),
            assigned_to=list(data.get("assigned_to", [])),
            skills=list(data.get("skills", [])),
            dependencies=list(data.get("dependencies", [])),
            estimated_hours=data.get("estimated_hours", 0),
            priority=data.get("priority", "medium"),
            status=task_status,
            progress=data.get("progress", 0),
            files=list(data.get("files", [])),
        )


@dataclass
class Phase:
    """A roadmap phase grouping tasks."""

    id: str
    name: str
    duration: float  # hours
    tasks: list[Task] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict, index: int = 0) -> "Phase":
        return cls(
            id=str(data.get("id") or f"phase_{index + 1}"),
            name=data.get("name", f"Phase {index + 1}"),
            duration=data.get("duration", 0),
            tasks=[Task.from_dict(t) for t in data.get("tasks", [])],
        )


@dataclass
class Milestone:
    """A checkpoint satisfied when every criterion names a completed task."""

    name: str
    target_time: str
    criteria: list[str] = field(default_factory=list)
    status: str = "pending"  # pending|completed|overdue


@dataclass
class Roadmap:
    """Plan-of-record for the hackathon. Owned by RoadmapOrchestrator."""

    version: int
    phases: list[Phase]
    milestones: list[Milestone] = field(default_factory=list)
    integration_points: list[dict] = field(default_factory=list)
    risk_mitigation: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def iter_tasks(self):
        """Yield (phase, task) pairs across all phases."""
        for phase in self.phases:
            for task in phase.tasks:
                yield phase, task

    def find_task(self, task_id: str) -> Task | None:
        for _, task in self.iter_tasks():
            if task.id == task_id:
                return task
        return None

    def tasks_for_user(self, user_id: str) -> list[Task]:
        return [task for _, task in self.iter_tasks() if user_id in task.assigned_to]

    def touch(self) -> None:
        """Record a structural change."""
        self.version += 1
        self.last_updated = datetime.now(timezone.utc)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["last_updated"] = self.last_updated.isoformat()
        for phase in data["phases"]:
            for task in phase["tasks"]:
                task["status"] = TaskStatus(task["status"]).value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Roadmap":
        """Build a Roadmap from stored or LLM-generated JSON."""
        now = datetime.now(timezone.utc)
        return cls(
            version=int(data.get("version", 1)),
            phases=[Phase.from_dict(p, i) for i, p in enumerate(data.get("phases", []))],
            milestones=[
                Milestone(
                    name=m.get("name", ""),
                    target_time=m.get("target_time", ""),
                    criteria=list(m.get("criteria", [])),
                    status=m.get("status", "pending"),
                )
                for m in data.get("milestones", [])
            ],
            integration_points=list(data.get("integration_points", [])),
            risk_mitigation=dict(data.get("risk_mitigation", {})),
            created_at=_parse_dt(data.get("created_at")) or now,
            last_updated=_parse_dt(data.get("last_updated")) or now,
        )


def _parse_dt(value) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)
