"""Bus-driven agents."""

from .base import BaseAgent, IAgent
from .code_extractor import CodeExtractor
from .decision_engine import DecisionEngine, determine_scan_mode, optimal_scanners
from .edit_coordinator import EditCoordinator
from .progress_coordinator import ProgressCoordinator
from .roadmap_orchestrator import RoadmapOrchestrator
from .scanner import RepositoryScanner
from .scanner_manager import (
    RepositoryScannerManager,
    aggregate_metrics,
    calculate_health,
    consolidate_recommendations,
    merge_findings,
)
from .user_compiler import UserCompiler

__all__ = [
    "IAgent",
    "BaseAgent",
    "DecisionEngine",
    "RepositoryScannerManager",
    "RepositoryScanner",
    "RoadmapOrchestrator",
    "ProgressCoordinator",
    "UserCompiler",
    "CodeExtractor",
    "EditCoordinator",
    "determine_scan_mode",
    "optimal_scanners",
    "merge_findings",
    "aggregate_metrics",
    "consolidate_recommendations",
    "calculate_health",
]
