"""Tests for Storage."""

from datetime import datetime, timedelta, timezone

import pytest

from coordinator.models import AgentMessage, MessageType, Priority, TraceEvent
from coordinator.storage import Storage


class TestStorageInit:
    """Tests for Storage initialization."""

    async def test_init_creates_tables(self, storage):
        """Test that init creates all tables."""
        async with storage._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ) as cursor:
            tables = [row[0] for row in await cursor.fetchall()]
            assert "documents" in tables
            assert "bus_messages" in tables
            assert "trace_events" in tables

    async def test_uninitialized_storage_raises(self):
        st = Storage(":memory:")
        with pytest.raises(RuntimeError):
            await st.get_document("users", "alex")


class TestDocuments:
    """Tests for the document collections."""

    async def test_set_and_get(self, storage):
        await storage.set_document("users", "alex", {"name": "Alex", "skills": ["python"]})

        doc = await storage.get_document("users", "alex")
        assert doc == {"name": "Alex", "skills": ["python"]}

    async def test_get_missing_returns_none(self, storage):
        assert await storage.get_document("users", "nobody") is None

    async def test_set_overwrites(self, storage):
        await storage.set_document("users", "alex", {"name": "Alex", "skills": ["python"]})
        await storage.set_document("users", "alex", {"name": "Alexandra"})

        assert await storage.get_document("users", "alex") == {"name": "Alexandra"}

    async def test_set_merge(self, storage):
        await storage.set_document("users", "alex", {"name": "Alex", "skills": ["python"]})
        await storage.set_document("users", "alex", {"status": "active"}, merge=True)

        doc = await storage.get_document("users", "alex")
        assert doc == {"name": "Alex", "skills": ["python"], "status": "active"}

    async def test_add_document_generates_id(self, storage):
        doc_id = await storage.add_document("notifications", {"user_id": "alex"})

        assert doc_id
        assert await storage.get_document("notifications", doc_id) == {"user_id": "alex"}

    async def test_update_document_merges_fields(self, storage):
        await storage.set_document("tasks", "t1", {"name": "API", "progress": 0})
        await storage.update_document("tasks", "t1", {"progress": 40})

        assert await storage.get_document("tasks", "t1") == {"name": "API", "progress": 40}

    async def test_update_missing_raises_key_error(self, storage):
        with pytest.raises(KeyError):
            await storage.update_document("tasks", "missing", {"progress": 10})

    async def test_delete_document(self, storage):
        await storage.set_document("tasks", "t1", {"name": "API"})
        await storage.delete_document("tasks", "t1")
        await storage.delete_document("tasks", "t1")

        assert await storage.get_document("tasks", "t1") is None

    async def test_collections_are_separate(self, storage):
        await storage.set_document("users", "x", {"kind": "user"})
        await storage.set_document("tasks", "x", {"kind": "task"})

        assert (await storage.get_document("users", "x"))["kind"] == "user"
        assert (await storage.get_document("tasks", "x"))["kind"] == "task"

    async def test_set_documents_batch(self, storage):
        await storage.set_documents("tasks", {"t1": {"name": "A"}, "t2": {"name": "B"}})

        docs = await storage.find_documents("tasks")
        assert {d["id"] for d in docs} == {"t1", "t2"}


class TestFindDocuments:
    """Tests for find_documents filtering and ordering."""

    async def test_find_attaches_id(self, storage):
        await storage.set_document("users", "alex", {"name": "Alex"})

        docs = await storage.find_documents("users")
        assert docs == [{"name": "Alex", "id": "alex"}]

    async def test_find_keeps_own_id(self, storage):
        await storage.set_document("tasks", "doc1", {"id": "task_1"})

        docs = await storage.find_documents("tasks")
        assert docs[0]["id"] == "task_1"

    async def test_equality_filter(self, storage):
        await storage.set_document("tasks", "t1", {"status": "completed"})
        await storage.set_document("tasks", "t2", {"status": "in_progress"})

        docs = await storage.find_documents("tasks", {"status": "completed"})
        assert [d["id"] for d in docs] == ["t1"]

    async def test_list_contains_filter(self, storage):
        await storage.set_document("tasks", "t1", {"assigned_to": ["alex", "sam"]})
        await storage.set_document("tasks", "t2", {"assigned_to": ["jordan"]})

        docs = await storage.find_documents("tasks", {"assigned_to": "sam"})
        assert [d["id"] for d in docs] == ["t1"]

    async def test_order_and_limit(self, storage):
        await storage.set_document("commits", "c1", {"timestamp": "2024-01-02T00:00:00"})
        await storage.set_document("commits", "c2", {"timestamp": "2024-01-01T00:00:00"})
        await storage.set_document("commits", "c3", {"timestamp": "2024-01-03T00:00:00"})

        docs = await storage.find_documents(
            "commits", order_by="timestamp", descending=True, limit=2
        )
        assert [d["id"] for d in docs] == ["c3", "c1"]

    async def test_missing_order_field_sorts_last(self, storage):
        await storage.set_document("commits", "c1", {})
        await storage.set_document("commits", "c2", {"timestamp": "2024-01-01T00:00:00"})

        docs = await storage.find_documents("commits", order_by="timestamp")
        assert [d["id"] for d in docs] == ["c2", "c1"]


class TestBusMessages:
    """Tests for bus message persistence."""

    async def test_save_and_get(self, storage):
        message = AgentMessage(
            type=MessageType.TASK_ASSIGNMENT,
            source="roadmap_orchestrator",
            target="user_compiler_alex",
            payload={"task": {"id": "t1"}},
            priority=Priority.HIGH,
            correlation_id="msg_1",
        )
        await storage.save_bus_message(message)

        stored = await storage.get_bus_messages()
        assert len(stored) == 1
        assert stored[0].type == MessageType.TASK_ASSIGNMENT
        assert stored[0].payload == {"task": {"id": "t1"}}
        assert stored[0].priority == Priority.HIGH
        assert stored[0].correlation_id == "msg_1"
        assert stored[0].timestamp.tzinfo is not None

    async def test_newest_first_with_type_filter(self, storage):
        for n in range(3):
            await storage.save_bus_message(
                AgentMessage(
                    type=MessageType.USER_PROGRESS, source="a", target="b", payload={"n": n}
                )
            )
        await storage.save_bus_message(
            AgentMessage(type=MessageType.SCAN_RESULT, source="a", target="b")
        )

        progress = await storage.get_bus_messages(message_type=MessageType.USER_PROGRESS)
        assert [m.payload["n"] for m in progress] == [2, 1, 0]
        assert len(await storage.get_bus_messages(limit=2)) == 2


class TestTraceEvents:
    """Tests for trace event persistence."""

    async def test_save_and_filter(self, storage):
        now = datetime.now(timezone.utc)
        await storage.save_trace_event(
            TraceEvent(id="e1", event_type="sim_started", actor="sim", data={}, timestamp=now)
        )
        await storage.save_trace_event(
            TraceEvent(
                id="e2",
                event_type="bus_message",
                actor="decision_engine",
                data={"x": 1},
                timestamp=now + timedelta(seconds=1),
            )
        )

        assert len(await storage.get_trace_events()) == 2
        by_type = await storage.get_trace_events(event_types=["bus_message"])
        assert [e.id for e in by_type] == ["e2"]
        by_actor = await storage.get_trace_events(actor="sim")
        assert [e.id for e in by_actor] == ["e1"]
        after = await storage.get_trace_events(after=now)
        assert [e.id for e in after] == ["e2"]


class TestClear:
    async def test_clear_removes_everything(self, storage):
        await storage.set_document("users", "alex", {"name": "Alex"})
        await storage.save_bus_message(
            AgentMessage(type=MessageType.SCAN_RESULT, source="a", target="b")
        )

        await storage.clear()

        assert await storage.find_documents("users") == []
        assert await storage.get_bus_messages() == []
