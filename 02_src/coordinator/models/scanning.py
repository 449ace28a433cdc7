"""Repository scanning data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ScanMode(str, Enum):
    """Scanner worker strategy."""

    CONTINUOUS = "continuous"
    TARGETED = "targeted"
    MINIMAL = "minimal"
    COMPREHENSIVE = "comprehensive"
    DEEP_DIVE = "deep_dive"


class ScanDepth(str, Enum):
    SHALLOW = "shallow"
    MEDIUM = "medium"
    DEEP = "deep"
    MAXIMUM = "maximum"


@dataclass
class ScanOptions:
    """Parameters for a single scan."""

    depth: ScanDepth = ScanDepth.MEDIUM
    focus: str | list[str] | None = None
    include_metrics: bool = False
    analyze_dependencies: bool = False
    detect_patterns: bool = False
    vulnerability_analysis: bool = False
    performance_profile: bool = False
    architecture_review: bool = False

    @property
    def focus_areas(self) -> list[str]:
        if self.focus is None:
            return []
        if isinstance(self.focus, str):
            return [self.focus]
        return list(self.focus)


@dataclass
class ScanResult:
    """Output of one scanner worker."""

    scanner_id: str
    duration: float  # seconds
    findings: list[dict] = field(default_factory=list)
    metrics: dict = field(default_factory=dict)
    recommendations: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "scanner_id": self.scanner_id,
            "duration": self.duration,
            "findings": self.findings,
            "metrics": self.metrics,
            "recommendations": self.recommendations,
        }


@dataclass
class AggregatedScan:
    """Deep-dive result merged across all workers."""

    findings: list[dict]
    metrics: dict
    recommendations: list[dict]
    health_score: int
    scanner_count: int
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "findings": self.findings,
            "metrics": self.metrics,
            "recommendations": self.recommendations,
            "health_score": self.health_score,
            "scanner_count": self.scanner_count,
            "timestamp": self.timestamp.isoformat(),
        }
