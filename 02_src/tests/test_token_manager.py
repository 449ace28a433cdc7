"""Tests for TokenManager and per-agent usage metering."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from coordinator.llm import MeteredLLM, Usage, report_usage
from coordinator.token_manager import TokenManager, calculate_cost


class ReportingLLM:
    """Provider stand-in that reports usage the way the real clients do."""

    def __init__(self, input_tokens=100, output_tokens=50, delay=0.0):
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.delay = delay

    async def complete(self, messages, system=None, max_tokens=1024, model=None):
        if self.delay:
            await asyncio.sleep(self.delay)
        report_usage(model or "gpt-5-mini", self.input_tokens, self.output_tokens)
        return "ok"


def hours_ago(hours):
    return (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()


class TestCost:
    def test_known_and_unknown_models(self):
        assert calculate_cost("gpt-5", 2000) == pytest.approx(0.06)
        assert calculate_cost("mystery-model", 1000) == pytest.approx(0.001)


class TestTokenManager:
    @pytest.mark.asyncio
    async def test_usage_by_agent_and_model(self, storage, scheduler):
        tokens = TokenManager(storage, scheduler)
        tokens.record_usage("decision_engine", Usage("o4-mini", 800, 200))
        tokens.record_usage("decision_engine", Usage("o4-mini", 100, 0))
        tokens.record_usage("processor_1", Usage("gpt-5-mini", 500, 500))

        usage = tokens.get_usage()

        assert usage["total_tokens"] == 2100
        assert usage["by_agent"]["decision_engine"]["tokens"] == 1100
        assert usage["by_agent"]["processor_1"]["cost"] == pytest.approx(0.0003)
        assert usage["by_model"]["o4-mini"]["cost"] == pytest.approx(0.0165)
        assert len(usage["timeline"]) == 3

        report = tokens.get_usage_report()
        assert "timeline" not in report
        assert report["pending"] == 3
        assert report["projected_cost_24h"] == pytest.approx(usage["total_cost"] * 24)
        assert report["within_budget"] is True

    @pytest.mark.asyncio
    async def test_flush_persists_and_history_reloads(self, storage, scheduler):
        tokens = TokenManager(storage, scheduler)
        tokens.record_usage("roadmap_orchestrator", Usage("gemini-2.5-pro", 1000, 1000))

        await tokens.flush()

        stored = await storage.find_documents("token_usage")
        assert len(stored) == 1
        assert stored[0]["agent_id"] == "roadmap_orchestrator"
        assert stored[0]["tokens_used"] == 2000
        assert tokens.get_usage_report()["pending"] == 0

        restarted = TokenManager(storage, scheduler)
        await restarted.start()
        assert restarted.get_usage()["by_agent"]["roadmap_orchestrator"]["tokens"] == 2000
        assert scheduler.is_scheduled(TokenManager.TIMER)
        await restarted.stop()
        assert not scheduler.is_scheduled(TokenManager.TIMER)
        assert len(await storage.find_documents("token_usage")) == 1

    @pytest.mark.asyncio
    async def test_old_records_outside_window(self, storage, scheduler):
        await storage.add_document(
            "token_usage",
            {
                "agent_id": "decision_engine",
                "model": "o4-mini",
                "input_tokens": 1000,
                "output_tokens": 0,
                "tokens_used": 1000,
                "cost": 0.015,
                "timestamp": hours_ago(2),
            },
        )
        tokens = TokenManager(storage, scheduler)
        await tokens.load_history()

        assert tokens.get_usage()["total_tokens"] == 0
        since = datetime.now(timezone.utc) - timedelta(hours=3)
        assert tokens.get_usage(since=since)["total_tokens"] == 1000
        assert tokens.projected_cost(10) == 0

    @pytest.mark.asyncio
    async def test_budget_exceeded_alerts_once(self, storage, scheduler):
        tokens = TokenManager(storage, scheduler, hourly_budget=0.01)
        tokens.record_usage("decision_engine", Usage("gpt-5", 1000, 0))

        assert await tokens.check_budget() is False
        assert await tokens.check_budget() is False

        alerts = await storage.find_documents("alerts")
        assert [a["type"] for a in alerts] == ["budget_exceeded"]
        assert alerts[0]["severity"] == "critical"
        assert tokens.get_usage_report()["within_budget"] is False

    @pytest.mark.asyncio
    async def test_budget_warning_then_exceeded(self, storage, scheduler):
        tokens = TokenManager(storage, scheduler, hourly_budget=0.035)
        tokens.record_usage("decision_engine", Usage("gpt-5", 1000, 0))
        assert await tokens.check_budget() is True

        tokens.record_usage("decision_engine", Usage("gpt-5", 1000, 0))
        assert await tokens.check_budget() is False

        alerts = await storage.find_documents("alerts", order_by="timestamp")
        assert [a["type"] for a in alerts] == ["budget_warning", "budget_exceeded"]

    @pytest.mark.asyncio
    async def test_no_budget_never_alerts(self, storage, scheduler):
        tokens = TokenManager(storage, scheduler)
        tokens.record_usage("decision_engine", Usage("gpt-5", 100000, 0))

        await tokens.flush()

        assert await storage.find_documents("alerts") == []


class TestMeteredLLM:
    @pytest.mark.asyncio
    async def test_concurrent_calls_attributed_to_caller(self, storage, scheduler):
        tokens = TokenManager(storage, scheduler)
        shared = ReportingLLM(delay=0.01)
        engine = MeteredLLM(shared, lambda u: tokens.record_usage("decision_engine", u))
        compiler = MeteredLLM(shared, lambda u: tokens.record_usage("user_compiler_alex", u))

        await asyncio.gather(
            engine.complete(messages=[{"role": "user", "content": "a"}], model="o4-mini"),
            compiler.complete(messages=[{"role": "user", "content": "b"}]),
            engine.complete(messages=[{"role": "user", "content": "c"}], model="o4-mini"),
        )

        by_agent = tokens.get_usage()["by_agent"]
        assert by_agent["decision_engine"]["tokens"] == 300
        assert by_agent["user_compiler_alex"]["tokens"] == 150
        assert set(tokens.get_usage()["by_model"]) == {"o4-mini", "gpt-5-mini"}

    @pytest.mark.asyncio
    async def test_unmetered_call_reports_nowhere(self, storage, scheduler):
        tokens = TokenManager(storage, scheduler)
        metered = MeteredLLM(ReportingLLM(), lambda u: tokens.record_usage("a", u))

        await ReportingLLM().complete(messages=[])
        assert tokens.get_usage()["total_tokens"] == 0

        await metered.complete(messages=[])
        assert tokens.get_usage()["total_tokens"] == 150
