"""RepositoryScanner: one worker of the elastic scanning pool."""

import json
import time
from datetime import datetime, timezone

from ..llm import ILLMProvider, complete_json
from ..logging_config import get_logger
from ..message_router import IMessageRouter
from ..models import (
    ALL_USER_COMPILERS,
    AgentMessage,
    MessageType,
    ScanDepth,
    ScanMode,
    ScanOptions,
    ScanResult,
)
from ..repository import IRepositorySource
from ..storage import IStorage

logger = get_logger(__name__)

INSIGHTS_PROMPT = """Analyze these repository scan results.

Scanner: {scanner_id}
Mode: {mode}
Focus area: {focus}

Analysis:
{analysis}

Return JSON:
{{
  "findings": [{{"type": "security|performance|quality|architecture|dependency",
                 "severity": "critical|high|medium|low", "location": "path",
                 "description": "", "impact": "", "suggestion": ""}}],
  "metrics": {{"files": 0, "lines": 0, "complexity": 0, "coverage": 0, "performance": 0}},
  "recommendations": [{{"type": "immediate|short-term|long-term", "priority": 1,
                        "description": "", "effort": "low|medium|high"}}],
  "summary": ""
}}"""

TARGETED_PROMPT = """Perform a targeted analysis of:
{target}

Repository files in scope:
{files}

Return JSON with "findings", "code_sections" (list of {{"file", "snippet", "note"}}) and "summary"."""


class RepositoryScanner:
    """Scans repository state at a given depth and reports insights."""

    def __init__(
        self,
        scanner_id: str,
        router: IMessageRouter,
        storage: IStorage,
        llm: ILLMProvider,
        source: IRepositorySource,
        mode: ScanMode = ScanMode.TARGETED,
        model: str | None = None,
    ):
        self._id = scanner_id
        self._router = router
        self._storage = storage
        self._llm = llm
        self._source = source
        self._model = model
        self.mode = mode
        self.focus_area = "general"
        self._busy = False
        self.last_scan_time: datetime | None = None

    @property
    def id(self) -> str:
        return self._id

    def is_busy(self) -> bool:
        return self._busy

    def set_mode(self, mode: ScanMode) -> None:
        self.mode = mode
        logger.info("Scanner %s set to %s mode", self._id, mode.value)

    def set_focus_area(self, area: str) -> None:
        self.focus_area = area
        logger.info("Scanner %s focusing on %s", self._id, area)

    async def perform_scan(self, options: ScanOptions) -> ScanResult:
        """Analyze, ask the LLM for insights, store and report."""
        self._busy = True
        started = time.monotonic()
        try:
            repo_state = await self._source.get_repository_state()
            analysis = self._analyze(repo_state, options)
            insights = await complete_json(
                self._llm,
                INSIGHTS_PROMPT.format(
                    scanner_id=self._id,
                    mode=self.mode.value,
                    focus=", ".join(options.focus_areas) or self.focus_area,
                    analysis=json.dumps(analysis, indent=2, default=str),
                ),
                max_tokens=2048,
                model=self._model,
            )

            await self._storage.add_document(
                "scan_results",
                {
                    "scanner_id": self._id,
                    "mode": self.mode.value,
                    "focus_area": self.focus_area,
                    "depth": options.depth.value,
                    "insights": insights,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
            )
            await self._report_to_compilers(insights)

            self.last_scan_time = datetime.now(timezone.utc)
            return ScanResult(
                scanner_id=self._id,
                duration=time.monotonic() - started,
                findings=insights.get("findings") or [],
                metrics=insights.get("metrics") or {},
                recommendations=insights.get("recommendations") or [],
            )
        finally:
            self._busy = False

    def _analyze(self, repo_state: dict, options: ScanOptions) -> dict:
        """Depth-specific view of the repository handed to the LLM."""
        files = repo_state.get("files", [])
        analysis: dict = {"depth": options.depth.value, "focus": options.focus_areas}

        match options.depth:
            case ScanDepth.SHALLOW:
                since = self.last_scan_time.isoformat() if self.last_scan_time else ""
                analysis["files"] = [
                    f for f in files if isinstance(f, dict) and f.get("modified_at", "") > since
                ]
            case ScanDepth.MEDIUM:
                analysis["files"] = files
                if options.analyze_dependencies:
                    analysis["dependencies"] = repo_state.get("dependencies", {})
            case ScanDepth.DEEP:
                analysis["files"] = files
                analysis["dependencies"] = repo_state.get("dependencies", {})
                analysis["metrics"] = repo_state.get("metrics") or {}
                analysis["detect_patterns"] = options.detect_patterns
            case ScanDepth.MAXIMUM:
                analysis["files"] = files
                analysis["dependencies"] = repo_state.get("dependencies", {})
                analysis["metrics"] = repo_state.get("metrics") or {}
                analysis["detect_patterns"] = True
                analysis["vulnerability_analysis"] = options.vulnerability_analysis
                analysis["performance_profile"] = options.performance_profile
                analysis["architecture_review"] = options.architecture_review

        if options.include_metrics and "metrics" not in analysis:
            analysis["metrics"] = repo_state.get("metrics") or {}
        return analysis

    async def _report_to_compilers(self, insights: dict) -> None:
        relevant = [
            f for f in insights.get("findings") or [] if f.get("severity") in ("critical", "high")
        ]
        if not relevant:
            return
        await self._router.send(
            AgentMessage(
                type=MessageType.SCAN_INSIGHTS,
                source=f"repository_scanner_{self._id}",
                target=ALL_USER_COMPILERS,
                payload={"findings": relevant, "summary": insights.get("summary") or ""},
            )
        )

    async def perform_targeted_scan(self, target: dict | str) -> dict:
        self._busy = True
        try:
            repo_state = await self._source.get_repository_state()
            wanted = (target.get("files") or []) if isinstance(target, dict) else [target]
            files = [
                f
                for f in repo_state.get("files", [])
                if not wanted or _file_path(f) in wanted
            ]
            result = await complete_json(
                self._llm,
                TARGETED_PROMPT.format(
                    target=json.dumps(target, indent=2, default=str),
                    files=json.dumps(files, indent=2, default=str),
                ),
                max_tokens=2048,
                model=self._model,
            )
            self.last_scan_time = datetime.now(timezone.utc)
            return {"scanner_id": self._id, **result}
        finally:
            self._busy = False

    async def incremental_scan(self) -> None:
        """Shallow scan when the repository changed since the last scan and the worker is idle."""
        if self._busy:
            return
        changes = await self._source.get_changes_since(self.last_scan_time)
        if changes:
            await self.perform_scan(
                ScanOptions(depth=ScanDepth.SHALLOW, focus="incremental", include_metrics=True)
            )

    def status(self) -> dict:
        return {
            "id": self._id,
            "mode": self.mode.value,
            "focus_area": self.focus_area,
            "busy": self._busy,
            "last_scan_time": self.last_scan_time.isoformat() if self.last_scan_time else None,
        }


def _file_path(entry) -> str:
    return entry.get("path", "") if isinstance(entry, dict) else str(entry)
