"""Tests for ErrorHandler."""

from datetime import datetime, timedelta, timezone

import pytest

from coordinator.errors import ErrorHandler, ErrorSeverity


class TestHandleError:
    @pytest.mark.asyncio
    async def test_records_error(self, error_handler, storage):
        await error_handler.handle_error(
            ValueError("bad input"), ErrorSeverity.LOW, {"agent_id": "decision_engine"}
        )

        errors = await storage.find_documents("errors")
        assert len(errors) == 1
        assert errors[0]["name"] == "ValueError"
        assert errors[0]["message"] == "bad input"
        assert errors[0]["severity"] == "low"
        assert await storage.find_documents("alerts") == []

    @pytest.mark.asyncio
    async def test_critical_alerts_and_records_recovery(self, error_handler, storage):
        await error_handler.handle_error(
            RuntimeError("down"), ErrorSeverity.CRITICAL, {"agent_id": "roadmap_orchestrator"}
        )

        alerts = await storage.find_documents("alerts")
        assert alerts[0]["type"] == "critical_error"
        recoveries = await storage.find_documents("recovery_attempts")
        assert recoveries[0]["agent_id"] == "roadmap_orchestrator"

    @pytest.mark.asyncio
    async def test_recurring_high_errors_alert(self, error_handler, storage):
        """Numbers are normalized so similar messages count together."""
        for n in range(3):
            await error_handler.handle_error(
                RuntimeError(f"timeout after {n}s"), ErrorSeverity.HIGH
            )

        alerts = await storage.find_documents("alerts")
        assert [a["type"] for a in alerts] == ["recurring_error"]

    @pytest.mark.asyncio
    async def test_error_storm(self, storage):
        handler = ErrorHandler(storage, storm_threshold=3)
        for n in range(4):
            await handler.handle_error(RuntimeError(f"e{n}"), ErrorSeverity.MEDIUM)

        alerts = await storage.find_documents("alerts")
        assert [a["type"] for a in alerts] == ["error_storm"]


class TestErrorReport:
    @pytest.mark.asyncio
    async def test_report_groups(self, error_handler):
        await error_handler.handle_error(
            ValueError("a"), ErrorSeverity.LOW, {"agent_id": "scanner"}
        )
        await error_handler.handle_error(
            ValueError("b"), ErrorSeverity.MEDIUM, {"agent_id": "scanner"}
        )

        report = await error_handler.get_error_report()

        assert report["total_errors"] == 2
        assert report["by_severity"] == {"low": 1, "medium": 1}
        assert report["by_agent"] == {"scanner": 2}
        assert len(report["recent_errors"]) == 2

    @pytest.mark.asyncio
    async def test_report_since(self, error_handler):
        await error_handler.handle_error(ValueError("a"), ErrorSeverity.LOW)

        future = datetime.now(timezone.utc) + timedelta(minutes=1)
        report = await error_handler.get_error_report(since=future)

        assert report["total_errors"] == 0
