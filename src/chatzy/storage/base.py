"""Contract shared by the message store backends."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from ..models import MessageRecord


class StorageError(RuntimeError):
    """Raised when a message store backend cannot complete a request."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class MessageRepository(Protocol):
    """A remote collection of message records keyed by generated ids.

    All methods are coroutines so the conversation store can await them
    without blocking the event loop.  Implementations raise
    :class:`StorageError` on failure.
    """

    async def add(
        self, identity: str, text: str, is_user: bool, timestamp: datetime
    ) -> str:
        ...

    async def update_text(self, record_id: str, text: str) -> None:
        ...

    async def delete(self, record_id: str) -> None:
        """Delete ``record_id``; deleting a missing record is not an error."""

    async def delete_many(self, record_ids: Sequence[str]) -> None:
        """Delete all ``record_ids`` atomically."""

    async def query(self, identity: str) -> List[MessageRecord]:
        """Return the records of ``identity`` oldest first."""

    def close(self) -> None:
        """Release connections held by the backend."""


__all__ = ["MessageRepository", "StorageError"]
