"""Core data models for the hackathon coordinator."""

from .communication import MessageStatus, ProcessedMessage, UserMessage
from .messages import (
    ALL_AGENTS,
    ALL_USER_COMPILERS,
    USER_COMPILER_PREFIX,
    AgentMessage,
    MessageType,
    Priority,
    user_compiler_id,
)
from .roadmap import Milestone, Phase, Roadmap, Task, TaskStatus
from .scanning import AggregatedScan, ScanDepth, ScanMode, ScanOptions, ScanResult
from .system import SystemState
from .tracing import TraceEvent

__all__ = [
    # Messages
    "ALL_AGENTS",
    "ALL_USER_COMPILERS",
    "USER_COMPILER_PREFIX",
    "AgentMessage",
    "MessageType",
    "Priority",
    "user_compiler_id",
    # Communication
    "MessageStatus",
    "UserMessage",
    "ProcessedMessage",
    # Roadmap
    "Roadmap",
    "Phase",
    "Task",
    "TaskStatus",
    "Milestone",
    # Scanning
    "ScanMode",
    "ScanDepth",
    "ScanOptions",
    "ScanResult",
    "AggregatedScan",
    # System
    "SystemState",
    # Tracing
    "TraceEvent",
]
