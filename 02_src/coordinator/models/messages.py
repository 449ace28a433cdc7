"""Bus message data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum

ALL_AGENTS = "all_agents"
ALL_USER_COMPILERS = "all_user_compilers"
USER_COMPILER_PREFIX = "user_compiler_"


def user_compiler_id(user_id: str) -> str:
    """Agent id of the UserCompiler serving a user."""
    return f"{USER_COMPILER_PREFIX}{user_id}"


class Priority(IntEnum):
    """Message priority. Higher value = more urgent."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def from_label(cls, label: str | None) -> "Priority":
        """Map an urgency/priority label ("critical", "high", ...) to a Priority."""
        if not label:
            return cls.MEDIUM
        try:
            return cls[label.upper()]
        except KeyError:
            return cls.MEDIUM


class MessageType(str, Enum):
    """Closed catalog of bus message types."""

    # Intake / decisions
    USER_COMMUNICATION = "USER_COMMUNICATION"
    DECISION_NOTIFICATION = "DECISION_NOTIFICATION"
    COLLABORATION_REQUEST = "COLLABORATION_REQUEST"
    COMPONENT_UPDATE = "COMPONENT_UPDATE"
    BLOCKAGE_ALERT = "BLOCKAGE_ALERT"
    REALLOCATION_SUGGESTION = "REALLOCATION_SUGGESTION"
    CRITICAL_ISSUE = "CRITICAL_ISSUE"
    ASSISTANCE_SUGGESTION = "ASSISTANCE_SUGGESTION"
    ASSISTANCE_NEEDED = "ASSISTANCE_NEEDED"
    STRATEGIC_SUMMARY = "STRATEGIC_SUMMARY"
    STRATEGIC_GUIDANCE_REQUEST = "STRATEGIC_GUIDANCE_REQUEST"

    # Scanning
    SCANNER_ALLOCATION = "SCANNER_ALLOCATION"
    SCANNER_REQUEST = "SCANNER_REQUEST"
    TARGETED_SCAN = "TARGETED_SCAN"
    SCAN_RESULT = "SCAN_RESULT"
    SCAN_INSIGHTS = "SCAN_INSIGHTS"
    SCAN_SUMMARY = "SCAN_SUMMARY"
    REPOSITORY_ANALYSIS = "REPOSITORY_ANALYSIS"

    # Roadmap
    ROADMAP_CREATED = "ROADMAP_CREATED"
    ROADMAP_UPDATE = "ROADMAP_UPDATE"
    ROADMAP_UPDATED = "ROADMAP_UPDATED"
    TASK_ASSIGNMENT = "TASK_ASSIGNMENT"
    TASK_REASSIGNED = "TASK_REASSIGNED"

    # Users / progress
    USER_REGISTERED = "USER_REGISTERED"
    USER_DEPARTED = "USER_DEPARTED"
    USER_PROGRESS = "USER_PROGRESS"
    PROGRESS_UPDATE = "PROGRESS_UPDATE"
    PROGRESS_MAP_UPDATE = "PROGRESS_MAP_UPDATE"
    CONFLICTS_DETECTED = "CONFLICTS_DETECTED"
    COORDINATION_UPDATE = "COORDINATION_UPDATE"

    # Code
    CODE_EXTRACTION_REQUEST = "CODE_EXTRACTION_REQUEST"
    CODE_EXTRACTED = "CODE_EXTRACTED"
    EDIT_RECOMMENDATIONS = "EDIT_RECOMMENDATIONS"


@dataclass(frozen=True)
class AgentMessage:
    """A message exchanged through the MessageRouter. Never mutated after creation."""

    type: MessageType
    source: str
    target: str
    payload: dict = field(default_factory=dict)
    priority: int = Priority.MEDIUM
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: str | None = None

    def to_dict(self) -> dict:
        """JSON-friendly representation."""
        return {
            "type": self.type.value,
            "source": self.source,
            "target": self.target,
            "payload": self.payload,
            "priority": int(self.priority),
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
        }
