"""RepositoryScannerManager: elastic pool of scanner workers."""

import asyncio
from datetime import datetime, timezone

from ..llm import ILLMProvider
from ..message_router import IMessageRouter
from ..models import (
    AggregatedScan,
    AgentMessage,
    MessageType,
    Priority,
    ScanDepth,
    ScanMode,
    ScanOptions,
    ScanResult,
)
from ..repository import IRepositorySource
from ..scheduler import IScheduler
from ..storage import IStorage
from .base import BaseAgent
from .scanner import RepositoryScanner

AGENT_ID = "repository_scanner_manager"
CORE_SCANNER_ID = "core"
TEMP_PREFIX = "temp_"

COMPREHENSIVE_AREAS = ("security", "performance", "architecture", "dependencies", "quality")


def merge_findings(results: list[ScanResult]) -> list[dict]:
    """Deduplicate findings by (type, location); first occurrence wins."""
    seen: set[tuple] = set()
    merged = []
    for result in results:
        for finding in result.findings:
            key = (finding.get("type"), finding.get("location"))
            if key in seen:
                continue
            seen.add(key)
            merged.append(finding)
    return merged


def aggregate_metrics(results: list[ScanResult]) -> dict:
    """Sum file/line counts, average complexity, coverage and performance."""
    metrics = {"total_files": 0, "total_lines": 0}
    averaged: dict[str, list[float]] = {"complexity": [], "coverage": [], "performance": []}
    for result in results:
        metrics["total_files"] += result.metrics.get("files", 0) or 0
        metrics["total_lines"] += result.metrics.get("lines", 0) or 0
        for key, values in averaged.items():
            value = result.metrics.get(key)
            if isinstance(value, (int, float)):
                values.append(value)
    for key, values in averaged.items():
        metrics[f"avg_{key}"] = sum(values) / len(values) if values else None
    return metrics


def consolidate_recommendations(results: list[ScanResult]) -> list[dict]:
    """Keep the highest-priority recommendation per type."""
    best: dict[str, dict] = {}
    for result in results:
        for rec in result.recommendations:
            kind = rec.get("type", "general")
            current = best.get(kind)
            if current is None or rec.get("priority", 0) > current.get("priority", 0):
                best[kind] = rec
    return list(best.values())


def calculate_health(metrics: dict) -> int:
    score = 100
    complexity = metrics.get("avg_complexity")
    coverage = metrics.get("avg_coverage")
    performance = metrics.get("avg_performance")
    if complexity is not None:
        if complexity > 10:
            score -= 20
        if complexity > 20:
            score -= 20
    if coverage is not None and coverage < 80:
        score -= 15
    if performance is not None and performance > 1000:
        score -= 10
    return max(0, score)


class RepositoryScannerManager(BaseAgent):
    """Owns the scanner pool: sizing, configuration, strategies and targeted scans.

    The `core` worker is created at construction and never removed; every
    other worker is ephemeral. Pool size stays within [1, max_scanners].
    """

    message_types = (MessageType.SCANNER_ALLOCATION, MessageType.TARGETED_SCAN)

    def __init__(
        self,
        router: IMessageRouter,
        storage: IStorage,
        scheduler: IScheduler,
        llm: ILLMProvider,
        source: IRepositorySource,
        model: str | None = None,
        max_scanners: int = 8,
        core_interval: float = 60.0,
        temp_ttl: float = 300.0,
    ):
        super().__init__(AGENT_ID, router, storage, scheduler)
        self._llm = llm
        self._source = source
        self._model = model
        self._max_scanners = max_scanners
        self._core_interval = core_interval
        self._temp_ttl = temp_ttl
        self._next_id = 1
        self._scanners: dict[str, RepositoryScanner] = {
            CORE_SCANNER_ID: self._new_scanner(CORE_SCANNER_ID, ScanMode.CONTINUOUS)
        }
        self._current_mode = ScanMode.CONTINUOUS
        self._focus_areas: list[str] = []

    @property
    def scanners(self) -> dict[str, RepositoryScanner]:
        return dict(self._scanners)

    @property
    def core(self) -> RepositoryScanner:
        return self._scanners[CORE_SCANNER_ID]

    async def on_start(self) -> None:
        self.every("core_scan", self._core_interval, self.core.incremental_scan)

    async def on_stop(self) -> None:
        # stop() cancelled their TTL timers
        for scanner_id in [s for s in self._scanners if s.startswith(TEMP_PREFIX)]:
            self.deactivate_scanner(scanner_id)

    async def handle(self, message: AgentMessage) -> None:
        match message.type:
            case MessageType.SCANNER_ALLOCATION:
                await self.handle_allocation(message)
            case MessageType.TARGETED_SCAN:
                await self.handle_targeted_scan(message)
            case _:
                pass

    async def handle_allocation(self, message: AgentMessage) -> None:
        payload = message.payload
        try:
            mode = ScanMode(payload.get("mode", ScanMode.CONTINUOUS.value))
        except ValueError:
            self._logger.warning("Unknown scan mode %r, using continuous", payload.get("mode"))
            mode = ScanMode.CONTINUOUS
        focus_areas = list(payload.get("focus_areas") or [])

        self.adjust_scanner_count(int(payload.get("requested_scanners", 1)))
        self.configure_scanners(mode, focus_areas)
        await self.execute_scanning_strategy(mode, focus_areas, payload.get("priority", "normal"))

    def _new_scanner(self, scanner_id: str, mode: ScanMode = ScanMode.TARGETED) -> RepositoryScanner:
        return RepositoryScanner(
            scanner_id,
            self._router,
            self._storage,
            self._llm,
            self._source,
            mode=mode,
            model=self._model,
        )

    def _allocate_id(self, prefix: str) -> str:
        scanner_id = f"{prefix}_{self._next_id}"
        self._next_id += 1
        return scanner_id

    def adjust_scanner_count(self, requested: int) -> None:
        target = max(1, min(requested, self._max_scanners))
        current = len(self._scanners)

        if target > current:
            for _ in range(target - current):
                scanner_id = self._allocate_id("scanner")
                self._scanners[scanner_id] = self._new_scanner(scanner_id)
            self._logger.info("Scanner pool grown to %d", len(self._scanners))
        elif target < current:
            excess = current - target
            for scanner_id in [s for s in self._scanners if s != CORE_SCANNER_ID][:excess]:
                self.deactivate_scanner(scanner_id)
            self._logger.info("Scanner pool shrunk to %d", len(self._scanners))

    def deactivate_scanner(self, scanner_id: str) -> None:
        if scanner_id == CORE_SCANNER_ID:
            return
        if self._scanners.pop(scanner_id, None) is None:
            return
        timer = f"{self._agent_id}:ttl:{scanner_id}"
        if timer in self._timers:
            self._timers.remove(timer)
            self._scheduler.cancel(timer)
        self._logger.info("Scanner %s deactivated", scanner_id)

    def configure_scanners(self, mode: ScanMode, focus_areas: list[str]) -> None:
        self._current_mode = mode
        self._focus_areas = focus_areas
        others = [s for sid, s in self._scanners.items() if sid != CORE_SCANNER_ID]
        for index, scanner in enumerate(others):
            scanner.set_mode(mode)
            if focus_areas:
                scanner.set_focus_area(focus_areas[index % len(focus_areas)])
        self.core.set_mode(ScanMode.CONTINUOUS)

    async def execute_scanning_strategy(
        self, mode: ScanMode, focus_areas: list[str], priority: str = "normal"
    ) -> AggregatedScan | None:
        self._logger.info(
            "Executing %s strategy over %d scanners (priority %s)",
            mode.value,
            len(self._scanners),
            priority,
        )
        workers = list(self._scanners.values())

        match mode:
            case ScanMode.MINIMAL:
                await self.core.perform_scan(
                    ScanOptions(depth=ScanDepth.SHALLOW, focus=focus_areas[:1] or None)
                )
            case ScanMode.TARGETED:
                await self._run_all(
                    [
                        ScanOptions(
                            depth=ScanDepth.MEDIUM,
                            focus=focus_areas[i % len(focus_areas)] if focus_areas else None,
                            include_metrics=True,
                        )
                        for i in range(len(workers))
                    ],
                    workers,
                )
            case ScanMode.COMPREHENSIVE:
                await self._run_all(
                    [
                        ScanOptions(
                            depth=ScanDepth.DEEP,
                            focus=COMPREHENSIVE_AREAS[i % len(COMPREHENSIVE_AREAS)],
                            include_metrics=True,
                            analyze_dependencies=True,
                            detect_patterns=True,
                        )
                        for i in range(len(workers))
                    ],
                    workers,
                )
            case ScanMode.DEEP_DIVE:
                options = ScanOptions(
                    depth=ScanDepth.MAXIMUM,
                    focus=focus_areas or None,
                    include_metrics=True,
                    analyze_dependencies=True,
                    detect_patterns=True,
                    vulnerability_analysis=True,
                    performance_profile=True,
                    architecture_review=True,
                )
                results = await self._run_all([options] * len(workers), workers)
                aggregated = self.aggregate(results)
                await self.report_deep_dive(aggregated)
                return aggregated
            case _:
                await self.core.perform_scan(
                    ScanOptions(depth=ScanDepth.MEDIUM, focus="incremental")
                )
        return None

    async def _run_all(
        self, options: list[ScanOptions], workers: list[RepositoryScanner]
    ) -> list[ScanResult]:
        outcomes = await asyncio.gather(
            *(w.perform_scan(o) for w, o in zip(workers, options)), return_exceptions=True
        )
        results = []
        for worker, outcome in zip(workers, outcomes):
            if isinstance(outcome, BaseException):
                self._logger.error("Scanner %s failed: %s", worker.id, outcome)
                continue
            results.append(outcome)
        return results

    def aggregate(self, results: list[ScanResult]) -> AggregatedScan:
        metrics = aggregate_metrics(results)
        return AggregatedScan(
            findings=merge_findings(results),
            metrics=metrics,
            recommendations=consolidate_recommendations(results),
            health_score=calculate_health(metrics),
            scanner_count=len(results),
            timestamp=datetime.now(timezone.utc),
        )

    async def report_deep_dive(self, aggregated: AggregatedScan) -> None:
        await self.send(
            MessageType.REPOSITORY_ANALYSIS,
            "progress_coordinator",
            {"analysis": aggregated.to_dict(), "scan_type": ScanMode.DEEP_DIVE.value},
            priority=Priority.HIGH,
        )
        await self.send(
            MessageType.SCAN_SUMMARY,
            "decision_engine",
            {
                "critical_findings": [
                    f for f in aggregated.findings if f.get("severity") == "critical"
                ],
                "overall_health": aggregated.health_score,
            },
        )

    def get_available_scanner(self) -> RepositoryScanner:
        """Idle ephemeral worker, else a temporary one, else core at the ceiling."""
        for scanner_id, scanner in self._scanners.items():
            if scanner_id != CORE_SCANNER_ID and not scanner.is_busy():
                return scanner

        if len(self._scanners) >= self._max_scanners:
            return self.core

        scanner_id = self._allocate_id("temp")
        scanner = self._new_scanner(scanner_id)
        self._scanners[scanner_id] = scanner

        timer = f"{self._agent_id}:ttl:{scanner_id}"
        self._scheduler.call_later(timer, self._temp_ttl, self._expire(scanner_id))
        self._timers.append(timer)
        return scanner

    def _expire(self, scanner_id: str):
        async def expire() -> None:
            self.deactivate_scanner(scanner_id)

        return expire

    async def handle_targeted_scan(self, message: AgentMessage) -> None:
        target = message.payload.get("target", {})
        requester = message.payload.get("requester") or message.source

        scanner = self.get_available_scanner()
        result = await scanner.perform_targeted_scan(target)

        await self.send(
            MessageType.SCAN_RESULT,
            requester,
            {"result": result, "reason": message.payload.get("reason", "")},
            priority=message.priority,
            correlation_id=message.correlation_id,
        )

    def get_status(self) -> dict:
        return {
            "total_scanners": len(self._scanners),
            "mode": self._current_mode.value,
            "focus_areas": list(self._focus_areas),
            "scanners": [s.status() for s in self._scanners.values()],
        }

    async def health_check(self) -> dict:
        return {
            "total_scanners": len(self._scanners),
            "busy_scanners": sum(1 for s in self._scanners.values() if s.is_busy()),
        }
