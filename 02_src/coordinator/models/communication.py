"""Intake data models: raw user messages and processor output."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class MessageStatus(str, Enum):
    """Lifecycle of an intake message."""

    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


@dataclass
class UserMessage:
    """A message submitted by a user, waiting in the intake queue."""

    id: str
    user_id: str
    user_name: str
    content: str
    context: dict
    timestamp: datetime
    status: MessageStatus = MessageStatus.PENDING


@dataclass(frozen=True)
class ProcessedMessage:
    """Output of a UserMessageProcessor."""

    original: UserMessage
    intent: str
    entities: dict
    urgency: str
    suggested_action: str
    agent_id: str
    processed_at: datetime
    confidence: float = 0.0
    recommendations: list[dict] = field(default_factory=list)
    affected_users: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """JSON-friendly representation (used as bus payload and persisted record)."""
        return {
            "message_id": self.original.id,
            "user_id": self.original.user_id,
            "user_name": self.original.user_name,
            "content": self.original.content,
            "context": self.original.context,
            "timestamp": self.original.timestamp.isoformat(),
            "intent": self.intent,
            "entities": self.entities,
            "urgency": self.urgency,
            "suggested_action": self.suggested_action,
            "confidence": self.confidence,
            "agent_id": self.agent_id,
            "processed_at": self.processed_at.isoformat(),
            "recommendations": list(self.recommendations),
            "affected_users": list(self.affected_users),
        }
