"""Error taxonomy and the ErrorHandler (recording, severity handling, storm alerts)."""

import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Protocol

from .logging_config import get_logger
from .storage import IStorage

logger = get_logger(__name__)


class LLMResponseError(Exception):
    """LLM returned an empty or unparseable response where a decision was required."""


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IErrorHandler(Protocol):
    """Records errors and raises alerts."""

    async def handle_error(
        self,
        error: BaseException,
        severity: ErrorSeverity,
        context: dict | None = None,
    ) -> None:
        """Record an error and react according to its severity."""
        ...


class ErrorHandler:
    """Persists errors to `errors`, alerts to `alerts`, recoveries to `recovery_attempts`."""

    RECURRING_THRESHOLD = 3

    def __init__(self, storage: IStorage, storm_threshold: int = 50):
        self._storage = storage
        self._storm_threshold = storm_threshold
        self._error_counts: dict[str, int] = {}
        self._patterns: dict[str, int] = {}

    async def handle_error(
        self,
        error: BaseException,
        severity: ErrorSeverity,
        context: dict | None = None,
    ) -> None:
        """Record an error and react according to its severity."""
        logger.error(
            "Error occurred: %s",
            error,
            extra={"context": {"severity": severity.value, **(context or {})}},
        )

        pattern = self._extract_pattern(error)
        self._patterns[pattern] = self._patterns.get(pattern, 0) + 1

        await self._storage.add_document(
            "errors",
            {
                "name": type(error).__name__,
                "message": str(error),
                "severity": severity.value,
                "context": context or {},
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

        match severity:
            case ErrorSeverity.CRITICAL:
                self._count(error)
                await self._send_alert(
                    {
                        "type": "critical_error",
                        "severity": "critical",
                        "message": str(error),
                        "context": context or {},
                    }
                )
                if context and context.get("agent_id"):
                    await self._record_recovery(context["agent_id"])
            case ErrorSeverity.HIGH:
                count = self._count(error)
                if count >= self.RECURRING_THRESHOLD:
                    await self._send_alert(
                        {
                            "type": "recurring_error",
                            "severity": "high",
                            "message": f"Error occurred {count} times: {error}",
                            "context": context or {},
                        }
                    )
            case ErrorSeverity.MEDIUM:
                self._count(error)
            case ErrorSeverity.LOW:
                pass

        await self._check_error_storm()

    def _count(self, error: BaseException) -> int:
        key = f"{type(error).__name__}_{self._extract_pattern(error)}"
        self._error_counts[key] = self._error_counts.get(key, 0) + 1
        return self._error_counts[key]

    @staticmethod
    def _extract_pattern(error: BaseException) -> str:
        """Normalize numbers and quoted words so similar errors share a key."""
        message = re.sub(r"\d+", "N", str(error))
        message = re.sub(r"['\"]\w+['\"]", "STR", message)
        return message[:100]

    async def _check_error_storm(self) -> None:
        total = sum(self._error_counts.values())
        if total > self._storm_threshold:
            await self._send_alert(
                {
                    "type": "error_storm",
                    "severity": "critical",
                    "message": f"Error storm detected: {total} errors in recent period",
                }
            )
            self._error_counts.clear()

    async def _send_alert(self, alert: dict) -> None:
        alert["timestamp"] = datetime.now(timezone.utc).isoformat()
        await self._storage.add_document("alerts", alert)
        logger.error("ALERT: %s", alert["message"], extra={"context": alert})

    async def _record_recovery(self, agent_id: str) -> None:
        logger.info("Attempting recovery for agent %s", agent_id)
        await self._storage.add_document(
            "recovery_attempts",
            {
                "agent_id": agent_id,
                "reason": "critical_error",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    async def get_error_report(self, since: datetime | None = None) -> dict:
        """Summary of errors since a point in time (default: last hour)."""
        start = since or datetime.now(timezone.utc) - timedelta(hours=1)
        errors = [
            e
            for e in await self._storage.find_documents(
                "errors", order_by="timestamp", descending=True
            )
            if datetime.fromisoformat(e["timestamp"]) > start
        ]

        by_severity: dict[str, int] = {}
        by_agent: dict[str, int] = {}
        for e in errors:
            by_severity[e["severity"]] = by_severity.get(e["severity"], 0) + 1
            agent_id = e.get("context", {}).get("agent_id")
            if agent_id:
                by_agent[agent_id] = by_agent.get(agent_id, 0) + 1

        patterns = sorted(self._patterns.items(), key=lambda kv: kv[1], reverse=True)

        return {
            "total_errors": len(errors),
            "by_severity": by_severity,
            "by_agent": by_agent,
            "patterns": [{"pattern": p, "count": c} for p, c in patterns[:10]],
            "recent_errors": errors[:10],
        }

    def clear_error_counts(self) -> None:
        self._error_counts.clear()
        self._patterns.clear()
