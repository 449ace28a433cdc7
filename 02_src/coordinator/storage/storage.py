"""SQLite storage implementation: a small document store plus bus/trace tables."""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import aiosqlite

from ..config import resolve_db_path
from ..models import AgentMessage, MessageType, TraceEvent


class IStorage(Protocol):
    """Persistent storage for all system data (SQLite)."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Documents
    async def add_document(self, collection: str, data: dict) -> str:
        """Insert a document under a generated id. Returns the id."""
        ...

    async def set_document(
        self, collection: str, doc_id: str, data: dict, merge: bool = False
    ) -> None:
        """Create or overwrite (or merge into) a document."""
        ...

    async def update_document(self, collection: str, doc_id: str, fields: dict) -> None:
        """Merge fields into an existing document. Raises KeyError if missing."""
        ...

    async def get_document(self, collection: str, doc_id: str) -> dict | None:
        """Get a document by id."""
        ...

    async def find_documents(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict]:
        """Query documents in a collection."""
        ...

    async def set_documents(self, collection: str, documents: dict[str, dict]) -> None:
        """Write several documents in one transaction."""
        ...

    async def delete_document(self, collection: str, doc_id: str) -> None:
        """Delete a document (no-op if missing)."""
        ...

    # Bus messages
    async def save_bus_message(self, message: AgentMessage) -> None:
        """Save a bus message."""
        ...

    async def get_bus_messages(
        self, limit: int = 100, message_type: MessageType | None = None
    ) -> list[AgentMessage]:
        """Get bus messages (newest first)."""
        ...

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        ...

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


def _matches(document: dict, filters: dict[str, Any]) -> bool:
    """Equality per field; a list-valued field matches if it contains the value."""
    for key, expected in filters.items():
        actual = document.get(key)
        if isinstance(actual, list) and not isinstance(expected, list):
            if expected not in actual:
                return False
        elif actual != expected:
            return False
    return True


def _utc(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class Storage:
    """SQLite storage implementation."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            self._db_path = resolve_db_path()
        else:
            self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Initialize database and create tables."""
        self._conn = await aiosqlite.connect(self._db_path)

        # Read and execute schema
        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Storage not initialized")
        return self._conn

    # Documents
    async def add_document(self, collection: str, data: dict) -> str:
        """Insert a document under a generated id. Returns the id."""
        doc_id = str(uuid.uuid4())
        await self.set_document(collection, doc_id, data)
        return doc_id

    async def set_document(
        self, collection: str, doc_id: str, data: dict, merge: bool = False
    ) -> None:
        """Create or overwrite (or merge into) a document."""
        conn = self._require_conn()

        if merge:
            existing = await self.get_document(collection, doc_id)
            if existing:
                data = {**existing, **data}

        await self._upsert(conn, collection, doc_id, data)
        await conn.commit()

    async def update_document(self, collection: str, doc_id: str, fields: dict) -> None:
        """Merge fields into an existing document. Raises KeyError if missing."""
        conn = self._require_conn()

        existing = await self.get_document(collection, doc_id)
        if existing is None:
            raise KeyError(f"Document {collection}/{doc_id} not found")

        await self._upsert(conn, collection, doc_id, {**existing, **fields})
        await conn.commit()

    async def get_document(self, collection: str, doc_id: str) -> dict | None:
        """Get a document by id."""
        conn = self._require_conn()

        cursor = await conn.execute(
            """
            SELECT data FROM documents
            WHERE collection = ? AND id = ?
            """,
            (collection, doc_id),
        )
        row = await cursor.fetchone()

        if not row:
            return None

        return json.loads(row[0])

    async def find_documents(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict]:
        """Query documents in a collection.

        Filtering happens after load: equality per field, list-contains when the
        stored value is a list. Each result carries its document id under "id"
        unless the document already defines one.
        """
        conn = self._require_conn()

        cursor = await conn.execute(
            """
            SELECT id, data FROM documents
            WHERE collection = ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (collection,),
        )
        rows = await cursor.fetchall()

        documents = []
        for row in rows:
            doc = json.loads(row[1])
            doc.setdefault("id", row[0])
            if filters and not _matches(doc, filters):
                continue
            documents.append(doc)

        if order_by:
            documents.sort(
                key=lambda d: (d.get(order_by) is None, d.get(order_by)),
                reverse=descending,
            )

        if limit is not None:
            documents = documents[:limit]

        return documents

    async def set_documents(self, collection: str, documents: dict[str, dict]) -> None:
        """Write several documents in one transaction."""
        conn = self._require_conn()

        for doc_id, data in documents.items():
            await self._upsert(conn, collection, doc_id, data)
        await conn.commit()

    async def delete_document(self, collection: str, doc_id: str) -> None:
        """Delete a document (no-op if missing)."""
        conn = self._require_conn()

        await conn.execute(
            "DELETE FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id),
        )
        await conn.commit()

    async def _upsert(
        self, conn: aiosqlite.Connection, collection: str, doc_id: str, data: dict
    ) -> None:
        await conn.execute(
            """
            INSERT INTO documents (collection, id, data, created_at, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
            ON CONFLICT(collection, id)
            DO UPDATE SET data = excluded.data, updated_at = CURRENT_TIMESTAMP
            """,
            (collection, doc_id, json.dumps(data, default=str)),
        )

    # Bus messages
    async def save_bus_message(self, message: AgentMessage) -> None:
        """Save a bus message."""
        conn = self._require_conn()

        await conn.execute(
            """
            INSERT INTO bus_messages
            (correlation_id, type, source, target, payload, priority, timestamp)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.correlation_id,
                message.type.value,
                message.source,
                message.target,
                json.dumps(message.payload, default=str),
                int(message.priority),
                message.timestamp.isoformat(),
            ),
        )
        await conn.commit()

    async def get_bus_messages(
        self, limit: int = 100, message_type: MessageType | None = None
    ) -> list[AgentMessage]:
        """Get bus messages (newest first)."""
        conn = self._require_conn()

        if message_type:
            cursor = await conn.execute(
                """
                SELECT correlation_id, type, source, target, payload, priority, timestamp
                FROM bus_messages
                WHERE type = ?
                ORDER BY seq DESC
                LIMIT ?
                """,
                (message_type.value, limit),
            )
        else:
            cursor = await conn.execute(
                """
                SELECT correlation_id, type, source, target, payload, priority, timestamp
                FROM bus_messages
                ORDER BY seq DESC
                LIMIT ?
                """,
                (limit,),
            )
        rows = await cursor.fetchall()

        return [
            AgentMessage(
                correlation_id=row[0],
                type=MessageType(row[1]),
                source=row[2],
                target=row[3],
                payload=json.loads(row[4]),
                priority=row[5],
                timestamp=_utc(row[6]),
            )
            for row in rows
        ]

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        conn = self._require_conn()

        await conn.execute(
            """
            INSERT INTO trace_events (id, event_type, actor, data, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                event.id or str(uuid.uuid4()),
                event.event_type,
                event.actor,
                json.dumps(event.data, default=str),
                event.timestamp.isoformat(),
            ),
        )
        await conn.commit()

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters."""
        conn = self._require_conn()

        # Build query dynamically
        conditions = []
        params: list = []

        if after:
            if after.tzinfo is None:
                after = after.replace(tzinfo=timezone.utc)
            conditions.append("timestamp > ?")
            params.append(after.isoformat())
        if event_types:
            placeholders = ",".join("?" * len(event_types))
            conditions.append(f"event_type IN ({placeholders})")
            params.extend(event_types)
        if actor:
            conditions.append("actor = ?")
            params.append(actor)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            SELECT id, event_type, actor, data, timestamp
            FROM trace_events
            {where_clause}
            ORDER BY timestamp DESC
            LIMIT ?
        """
        params.append(limit)

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        return [
            TraceEvent(
                id=row[0],
                event_type=row[1],
                actor=row[2],
                data=json.loads(row[3]),
                timestamp=_utc(row[4]),
            )
            for row in rows
        ]

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        conn = self._require_conn()

        for table in ["documents", "bus_messages", "trace_events"]:
            await conn.execute(f"DELETE FROM {table}")

        await conn.commit()
