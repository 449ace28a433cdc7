"""Repository state source consumed by scanners."""

from datetime import datetime
from typing import Protocol

from .storage import IStorage


class IRepositorySource(Protocol):
    """Read-only view of the connected code repository."""

    async def get_repository_state(self) -> dict:
        """Current snapshot: files, dependencies, metrics, last commit time."""
        ...

    async def get_changes_since(self, since: datetime | None) -> list[dict]:
        """Commits newer than `since` (all commits when None)."""
        ...


class DocumentRepositorySource:
    """Repository state mirrored into the document store.

    `repository/current` holds the snapshot; `commits` holds one document per
    commit with an ISO `timestamp`. An external sync job keeps both current.
    """

    def __init__(self, storage: IStorage):
        self._storage = storage

    async def get_repository_state(self) -> dict:
        state = await self._storage.get_document("repository", "current") or {}
        return {
            "files": state.get("files", []),
            "dependencies": state.get("dependencies", {}),
            "metrics": state.get("metrics", {}),
            "last_commit_at": state.get("last_commit_at"),
        }

    async def get_changes_since(self, since: datetime | None) -> list[dict]:
        commits = await self._storage.find_documents("commits", order_by="timestamp")
        if since is None:
            return commits
        cutoff = since.isoformat()
        return [c for c in commits if c.get("timestamp", "") > cutoff]
