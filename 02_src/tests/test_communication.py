"""Tests for the intake hub, its processors and the response channel."""

import asyncio
import json
from unittest.mock import AsyncMock, Mock

import pytest

from coordinator.communication import (
    DEFAULT_RESPONSE,
    FAILURE_RESPONSE,
    INTENT_RESPONSES,
    ResponseChannel,
    UserCommunicationHub,
    UserMessageProcessor,
    calculate_intake_priority,
)
from coordinator.models import AgentMessage, MessageType, Priority


def intake_llm(analysis: dict, classification: dict):
    """Mock LLM answering the analysis and classification prompts."""

    async def complete(messages, system=None, max_tokens=1024, model=None):
        prompt = messages[0]["content"]
        if prompt.startswith("Analyze"):
            return json.dumps(analysis)
        return json.dumps(classification)

    llm = Mock()
    llm.complete = AsyncMock(side_effect=complete)
    return llm


ANALYSIS = {
    "intent": "help",
    "entities": {"tasks": ["API"], "users": ["jordan"], "technical_terms": ["React"]},
}
CLASSIFICATION = {"urgency": "critical", "action": "escalate", "confidence": 0.9}


@pytest.fixture
def channel():
    return ResponseChannel()


def make_processor(agent_id, llm, router, storage, **kwargs):
    return UserMessageProcessor(agent_id, llm, router, storage, **kwargs)


class TestIntakePriority:
    @pytest.mark.parametrize(
        "content,status,expected",
        [
            ("I'm BLOCKED on the API", "active", Priority.HIGH),
            ("Need help please", None, Priority.HIGH),
            ("All good here", "blocked", Priority.MEDIUM),
            ("All good here", "active", Priority.LOW),
        ],
    )
    def test_keywords_and_status(self, content, status, expected):
        assert calculate_intake_priority(content, status) == expected


class TestResponseChannel:
    @pytest.mark.asyncio
    async def test_outbox_when_disconnected(self, channel):
        await channel.emit("alex", "response", {"x": 1})

        events = channel.poll("alex")
        assert [e["event"] for e in events] == ["response"]
        assert events[0]["data"] == {"x": 1}
        assert channel.poll("alex") == []

    @pytest.mark.asyncio
    async def test_push_when_connected(self, channel):
        sent = []

        async def sender(envelope):
            sent.append(envelope)

        channel.connect("alex", sender)
        await channel.emit("alex", "alert", {"y": 2})

        assert sent[0]["event"] == "alert"
        assert channel.poll("alex") == []
        assert channel.connected_users == ["alex"]

    @pytest.mark.asyncio
    async def test_dead_connection_falls_back(self, channel):
        async def broken(envelope):
            raise ConnectionError("closed")

        channel.connect("alex", broken)
        await channel.emit("alex", "response", {})

        assert not channel.is_connected("alex")
        assert len(channel.poll("alex")) == 1

    @pytest.mark.asyncio
    async def test_stale_disconnect_keeps_newer_connection(self, channel):
        """Closing an old socket after a reconnect leaves the new one live."""
        old_sent, new_sent = [], []

        async def old(envelope):
            old_sent.append(envelope)

        async def new(envelope):
            new_sent.append(envelope)

        channel.connect("alex", old)
        channel.connect("alex", new)
        channel.disconnect("alex", old)
        await channel.emit("alex", "response", {"z": 3})

        assert channel.is_connected("alex")
        assert [e["data"] for e in new_sent] == [{"z": 3}]
        assert old_sent == []
        assert channel.poll("alex") == []

    @pytest.mark.asyncio
    async def test_disconnect_own_sender(self, channel):
        async def sender(envelope):
            pass

        channel.connect("alex", sender)
        channel.disconnect("alex", sender)

        assert not channel.is_connected("alex")

    @pytest.mark.asyncio
    async def test_outbox_bounded(self):
        channel = ResponseChannel(outbox_size=2)
        for n in range(3):
            await channel.emit("alex", "response", {"n": n})

        assert [e["data"]["n"] for e in channel.poll("alex")] == [1, 2]


class TestUserMessageProcessor:
    @pytest.mark.asyncio
    async def test_process_reports_to_decision_engine(self, router, storage, recorder):
        await storage.set_document("users", "sam", {"name": "Sam", "skills": ["react"]})
        await storage.set_document("tasks", "t1", {"name": "API", "assigned_to": ["casey"]})
        processor = make_processor(
            "processor_1", intake_llm(ANALYSIS, CLASSIFICATION), router, storage
        )
        hub_message = await _user_message(storage, "alex", "Help with React")

        processed = await processor.process(hub_message)

        assert processed.intent == "help"
        assert processed.urgency == "critical"
        assert processed.confidence == 0.9
        actions = [r["action"] for r in processed.recommendations]
        assert actions == ["connect_with_expert", "escalate_to_coordinator"]
        assert processed.recommendations[0]["targets"] == ["sam"]
        assert processed.affected_users == ["jordan", "casey"]

        sent = [m for m in recorder if m.type == MessageType.USER_COMMUNICATION]
        assert len(sent) == 1
        assert sent[0].target == "decision_engine"
        assert sent[0].priority == Priority.CRITICAL
        assert sent[0].payload["processed_message"]["message_id"] == hub_message.id

        stored = await storage.find_documents("processed_messages")
        assert stored[0]["analysis"]["intent"] == "help"
        assert processor.get_stats()["processed"] == 1
        assert processor.queue_size == 0

    @pytest.mark.asyncio
    async def test_collaboration_recommendation(self, router, storage):
        processor = make_processor(
            "processor_1",
            intake_llm({"intent": "collaboration"}, {"urgency": "low"}),
            router,
            storage,
        )

        processed = await processor.process(await _user_message(storage, "alex", "pair?"))

        assert processed.recommendations == [
            {"action": "initiate_collaboration", "type": "team_sync"}
        ]

    @pytest.mark.asyncio
    async def test_llm_failure_marks_failed(self, router, storage, json_llm):
        processor = make_processor("processor_1", json_llm("not json"), router, storage)
        message = await _user_message(storage, "alex", "hi")

        with pytest.raises(Exception):
            await processor.process(message)

        assert message.status.value == "failed"
        assert processor.get_stats()["failed"] == 1
        assert (await processor.health_check())["error_rate"] == 1.0

    async def test_availability(self, router, storage, mock_llm):
        processor = make_processor("p", mock_llm, router, storage, pending_limit=2)
        assert processor.is_available()
        processor.reserve("a")
        processor.reserve("b")
        assert not processor.is_available()


async def _user_message(storage, user_id, content):
    """Build a UserMessage the same way the hub does."""
    from datetime import datetime, timezone

    from coordinator.message_router import generate_correlation_id
    from coordinator.models import UserMessage

    return UserMessage(
        id=generate_correlation_id(),
        user_id=user_id,
        user_name=user_id.title(),
        content=content,
        context={"user_status": "active"},
        timestamp=datetime.now(timezone.utc),
    )


class FakeProcessor:
    """Processor double with controllable availability."""

    def __init__(self, agent_id, available=True, queue_size=0, result=None, error=None):
        self.agent_id = agent_id
        self._available = available
        self._queue_size = queue_size
        self._result = result
        self._error = error
        self.reserved = []
        self.processed = []

    @property
    def queue_size(self):
        return self._queue_size

    def is_available(self):
        return self._available

    def reserve(self, message_id):
        self.reserved.append(message_id)

    async def process(self, message):
        self.processed.append(message)
        if self._error:
            raise self._error
        return self._result(message)

    def get_stats(self):
        return {"agent_id": self.agent_id}

    async def health_check(self):
        return {"error_rate": 0.0}


def processed_for(intent):
    from datetime import datetime, timezone

    from coordinator.models import ProcessedMessage

    def build(message):
        return ProcessedMessage(
            original=message,
            intent=intent,
            entities={},
            urgency="low",
            suggested_action="provide_info",
            agent_id="p1",
            processed_at=datetime.now(timezone.utc),
        )

    return build


def make_hub(router, storage, scheduler, channel, processors, error_handler=None):
    return UserCommunicationHub(
        router, storage, processors, channel, scheduler, error_handler=error_handler
    )


class TestHub:
    async def test_requires_two_processors(self, router, storage, scheduler, channel):
        with pytest.raises(ValueError):
            make_hub(router, storage, scheduler, channel, [FakeProcessor("p1")])

    async def test_select_least_loaded(self, router, storage, scheduler, channel):
        p1 = FakeProcessor("p1", queue_size=3)
        p2 = FakeProcessor("p2", queue_size=1)
        hub = make_hub(router, storage, scheduler, channel, [p1, p2])
        assert hub.select_processor() is p2

    async def test_select_tie_prefers_first(self, router, storage, scheduler, channel):
        p1, p2 = FakeProcessor("p1"), FakeProcessor("p2")
        hub = make_hub(router, storage, scheduler, channel, [p1, p2])
        assert hub.select_processor() is p1

    async def test_select_only_available(self, router, storage, scheduler, channel):
        p1 = FakeProcessor("p1", available=False)
        p2 = FakeProcessor("p2", queue_size=4)
        hub = make_hub(router, storage, scheduler, channel, [p1, p2])
        assert hub.select_processor() is p2

    async def test_select_none_when_saturated(self, router, storage, scheduler, channel):
        hub = make_hub(
            router,
            storage,
            scheduler,
            channel,
            [FakeProcessor("p1", available=False), FakeProcessor("p2", available=False)],
        )
        assert hub.select_processor() is None

    @pytest.mark.asyncio
    async def test_submit_acknowledges_and_queues(self, router, storage, scheduler, channel):
        await storage.set_document("users", "alex", {"name": "Alex", "status": "active"})
        await storage.set_document(
            "tasks", "t1", {"name": "API", "assigned_to": ["alex"], "status": "in_progress"}
        )
        await storage.set_document(
            "tasks", "t2", {"name": "Docs", "assigned_to": ["alex"], "status": "completed"}
        )
        hub = make_hub(router, storage, scheduler, channel, [FakeProcessor("p1"), FakeProcessor("p2")])

        message_id = await hub.submit("alex", "hello", {"source": "web"})

        events = channel.poll("alex")
        assert events[0]["event"] == "acknowledgment"
        assert events[0]["data"] == {"message_id": message_id, "status": "received"}
        queued = hub.queue.peek()
        assert queued.user_name == "Alex"
        assert queued.context["source"] == "web"
        assert [t["id"] for t in queued.context["current_tasks"]] == ["t1"]

    @pytest.mark.asyncio
    async def test_unknown_user_name(self, router, storage, scheduler, channel):
        hub = make_hub(router, storage, scheduler, channel, [FakeProcessor("p1"), FakeProcessor("p2")])
        await hub.submit("ghost", "hello")
        assert hub.queue.peek().user_name == "Unknown User"

    @pytest.mark.asyncio
    async def test_urgent_messages_dispatched_first(self, router, storage, scheduler, channel):
        p1 = FakeProcessor("p1", result=processed_for("question"))
        p2 = FakeProcessor("p2", available=False)
        hub = make_hub(router, storage, scheduler, channel, [p1, p2])

        await hub.submit("alex", "lunch plans")
        await hub.submit("alex", "build is broken")
        await hub.drain()
        await asyncio.sleep(0)

        assert [m.content for m in p1.processed] == ["build is broken", "lunch plans"]

    @pytest.mark.asyncio
    async def test_backpressure_leaves_messages_queued(self, router, storage, scheduler, channel):
        hub = make_hub(
            router,
            storage,
            scheduler,
            channel,
            [FakeProcessor("p1", available=False), FakeProcessor("p2", available=False)],
        )
        await hub.submit("alex", "hello")

        await hub.drain()

        assert hub.queue.size() == 1

    @pytest.mark.asyncio
    async def test_response_emitted_by_intent(self, router, storage, scheduler, channel):
        p1 = FakeProcessor("p1", result=processed_for("help"))
        hub = make_hub(router, storage, scheduler, channel, [p1, FakeProcessor("p2", available=False)])
        message_id = await hub.submit("alex", "hello")
        channel.poll("alex")

        await hub.drain()
        await hub.stop()

        events = channel.poll("alex")
        assert events[0]["event"] == "response"
        assert events[0]["data"]["message_id"] == message_id
        assert events[0]["data"]["response"] == INTENT_RESPONSES["help"]

    @pytest.mark.asyncio
    async def test_unknown_intent_default_response(self, router, storage, scheduler, channel):
        p1 = FakeProcessor("p1", result=processed_for("chit_chat"))
        hub = make_hub(router, storage, scheduler, channel, [p1, FakeProcessor("p2", available=False)])
        await hub.submit("alex", "hello")
        channel.poll("alex")

        await hub.drain()
        await hub.stop()

        assert channel.poll("alex")[0]["data"]["response"] == DEFAULT_RESPONSE

    @pytest.mark.asyncio
    async def test_processing_failure(self, router, storage, scheduler, channel, error_handler):
        p1 = FakeProcessor("p1", error=RuntimeError("LLM down"))
        hub = make_hub(
            router,
            storage,
            scheduler,
            channel,
            [p1, FakeProcessor("p2", available=False)],
            error_handler=error_handler,
        )
        message_id = await hub.submit("alex", "hello")
        channel.poll("alex")

        await hub.drain()
        await hub.stop()

        events = channel.poll("alex")
        assert events[0]["event"] == "error"
        assert events[0]["data"] == {"message_id": message_id, "error": FAILURE_RESPONSE}
        failures = await storage.find_documents("processing_errors")
        assert failures[0]["error"] == "LLM down"
        errors = await storage.find_documents("errors")
        assert errors[0]["severity"] == "high"

    @pytest.mark.asyncio
    async def test_critical_issue_broadcast_to_connected(self, router, storage, scheduler, channel):
        hub = make_hub(router, storage, scheduler, channel, [FakeProcessor("p1"), FakeProcessor("p2")])
        await hub.start()
        sent = []

        async def sender(envelope):
            sent.append(envelope)

        channel.connect("alex", sender)
        await router.send(
            AgentMessage(
                type=MessageType.CRITICAL_ISSUE,
                source="decision_engine",
                target="all_agents",
                payload={"issue": "build broken"},
            )
        )
        await hub.stop()

        assert sent[0]["event"] == "alert"
        assert sent[0]["data"] == {"issue": "build broken"}

    @pytest.mark.asyncio
    async def test_assistance_suggestion_to_user(self, router, storage, scheduler, channel):
        hub = make_hub(router, storage, scheduler, channel, [FakeProcessor("p1"), FakeProcessor("p2")])
        await hub.start()

        await router.send(
            AgentMessage(
                type=MessageType.ASSISTANCE_SUGGESTION,
                source="decision_engine",
                target="communication_hub",
                payload={"user_id": "sam", "experts": ["jordan"]},
            )
        )
        await hub.stop()

        assert channel.poll("sam")[0]["event"] == "assistance"
