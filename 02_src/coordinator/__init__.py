"""Hackathon coordinator core."""

from .agent_manager import AgentManager, IAgentManager
from .agents import (
    CodeExtractor,
    DecisionEngine,
    EditCoordinator,
    ProgressCoordinator,
    RepositoryScanner,
    RepositoryScannerManager,
    RoadmapOrchestrator,
    UserCompiler,
)
from .communication import ResponseChannel, UserCommunicationHub, UserMessageProcessor
from .config import Settings
from .errors import ErrorHandler, ErrorSeverity, LLMResponseError
from .health import HealthMonitor
from .llm import GeminiProvider, ILLMProvider, LLMProvider, OpenAIProvider
from .message_router import IMessageRouter, MessageRouter
from .models import AgentMessage, MessageType, Priority, TraceEvent
from .scheduler import IScheduler, Scheduler
from .storage import IStorage, Storage
from .token_manager import TokenManager
from .tracker import ITracker, Tracker

__all__ = [
    # Composition root
    "AgentManager",
    "IAgentManager",
    "Settings",
    # Models
    "AgentMessage",
    "MessageType",
    "Priority",
    "TraceEvent",
    # Infrastructure
    "IStorage",
    "Storage",
    "IMessageRouter",
    "MessageRouter",
    "IScheduler",
    "Scheduler",
    "ITracker",
    "Tracker",
    "ErrorHandler",
    "ErrorSeverity",
    "LLMResponseError",
    "HealthMonitor",
    "TokenManager",
    "ILLMProvider",
    "LLMProvider",
    "OpenAIProvider",
    "GeminiProvider",
    # Communication
    "UserCommunicationHub",
    "UserMessageProcessor",
    "ResponseChannel",
    # Agents
    "DecisionEngine",
    "RepositoryScannerManager",
    "RepositoryScanner",
    "RoadmapOrchestrator",
    "ProgressCoordinator",
    "UserCompiler",
    "CodeExtractor",
    "EditCoordinator",
]
