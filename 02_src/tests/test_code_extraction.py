"""Tests for CodeExtractor and EditCoordinator."""

import asyncio

import pytest

from coordinator.agents import CodeExtractor, EditCoordinator, RepositoryScannerManager
from coordinator.agents.edit_coordinator import calculate_priority, estimate_effort
from coordinator.models import AgentMessage, MessageType, Priority

EXTRACTION = {"files": ["api/auth.py"], "sections": [], "analysis": {"issues": ["no rate limit"]}}
SUGGESTIONS = {
    "suggestions": [
        {"type": "security", "severity": "critical", "complexity": "medium", "file": "api/auth.py"},
        {"type": "quality", "severity": "low", "complexity": "low", "file": "api/auth.py"},
    ]
}


class StaticSource:
    async def get_repository_state(self):
        return {"files": [{"path": "api/auth.py"}]}

    async def get_changes_since(self, since):
        return []


class TestEditHeuristics:
    @pytest.mark.parametrize(
        "suggestions,expected",
        [
            ([{"type": "security", "severity": "critical"}], "critical"),
            ([{"type": "bug", "severity": "high"}], "high"),
            ([{"type": "security", "severity": "high"}], "medium"),
            ([], "medium"),
        ],
    )
    def test_calculate_priority(self, suggestions, expected):
        assert calculate_priority(suggestions) == expected

    def test_estimate_effort(self):
        assert estimate_effort(
            [{"complexity": "low"}, {"complexity": "medium"}, {"complexity": "high"}, {}]
        ) == 7.5


class TestEditCoordinator:
    @pytest.mark.asyncio
    async def test_recommendations_distributed(self, router, storage, scheduler, json_llm, recorder):
        await storage.set_document(
            "tasks", "t1", {"assigned_to": ["alex", "sam"], "files": ["api/auth.py"]}
        )
        coordinator = EditCoordinator(router, storage, scheduler, json_llm(SUGGESTIONS))

        result = await coordinator.handle_code_extracted(
            AgentMessage(
                type=MessageType.CODE_EXTRACTED,
                source="code_extractor",
                target="edit_coordinator",
                payload={"extraction": EXTRACTION, "context": {}, "requester": "decision_engine"},
                correlation_id="cid",
            )
        )

        assert result["priority"] == "critical"
        assert result["estimated_effort"] == 2.5
        assert result["files"] == ["api/auth.py"]

        sent = next(m for m in recorder if m.type == MessageType.EDIT_RECOMMENDATIONS)
        assert sent.target == "decision_engine"
        assert sent.priority == Priority.CRITICAL
        assert sent.correlation_id == "cid"

        assert len(await storage.find_documents("edit_recommendations")) == 1
        notified = await storage.find_documents("notifications", {"type": "edit_recommendations"})
        assert sorted(n["user_id"] for n in notified) == ["alex", "sam"]


class TestCodeExtractionFlow:
    @pytest.mark.asyncio
    async def test_request_to_recommendations(self, router, storage, scheduler, json_llm, recorder):
        """Extraction request travels through the scanner pool and edit coordinator."""
        manager = RepositoryScannerManager(
            router, storage, scheduler, json_llm({"findings": [], "summary": "auth"}), StaticSource()
        )
        extractor = CodeExtractor(router, storage, scheduler, json_llm(EXTRACTION), scan_timeout=1.0)
        editor = EditCoordinator(router, storage, scheduler, json_llm(SUGGESTIONS))
        for agent in (manager, extractor, editor):
            await agent.start()

        await router.send(
            AgentMessage(
                type=MessageType.CODE_EXTRACTION_REQUEST,
                source="decision_engine",
                target="code_extractor",
                payload={"target": {"files": ["api/auth.py"]}, "context": {"purpose": "security review"}},
                correlation_id="req-1",
            )
        )
        for agent in (manager, extractor, editor):
            await agent.stop()

        types = [m.type for m in router.get_history()]
        assert types.index(MessageType.TARGETED_SCAN) < types.index(MessageType.SCAN_RESULT)
        assert types.index(MessageType.SCAN_RESULT) < types.index(MessageType.CODE_EXTRACTED)

        scan_result = next(m for m in recorder if m.type == MessageType.SCAN_RESULT)
        assert scan_result.target == "code_extractor"

        extracted = next(m for m in recorder if m.type == MessageType.CODE_EXTRACTED)
        assert extracted.correlation_id == "req-1"
        assert extracted.payload["requester"] == "decision_engine"
        assert extracted.payload["extraction"] == EXTRACTION

        recommendations = next(m for m in recorder if m.type == MessageType.EDIT_RECOMMENDATIONS)
        assert recommendations.target == "decision_engine"
        assert recommendations.correlation_id == "req-1"

    @pytest.mark.asyncio
    async def test_scan_timeout(self, router, storage, scheduler, json_llm):
        extractor = CodeExtractor(router, storage, scheduler, json_llm(EXTRACTION), scan_timeout=0.05)

        with pytest.raises(asyncio.TimeoutError):
            await extractor.request_targeted_scan({"files": ["x.py"]})
