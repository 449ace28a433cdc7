"""System-wide snapshot models."""

from dataclasses import asdict, dataclass, field


@dataclass
class SystemState:
    """Snapshot read by the DecisionEngine. Eventually consistent."""

    active_users: int = 0
    tasks_in_progress: int = 0
    completion_rate: float = 0.0  # percent
    blocked_tasks: list[str] = field(default_factory=list)
    critical_issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)
