"""Cloud Firestore backend for the message store.

Documents live in a single top-level collection (``messages`` by default)
and carry ``userId``, ``text``, ``isUser`` and a server-assigned
``timestamp``.  The synchronous Firestore client is driven from worker
threads so the conversation store can await it.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from ..config import MessageStoreConfig
from ..logging_utils import get_logger
from ..models import MessageRecord
from .base import StorageError

logger = get_logger(__name__)


def create_firestore_client(config: MessageStoreConfig) -> firestore.Client:
    kwargs: Dict[str, Any] = {}
    if config.project:
        kwargs["project"] = config.project
    if config.database:
        kwargs["database"] = config.database
    client = firestore.Client(**kwargs)
    logger.info(
        "Firestore client initialised (project=%s database=%s)",
        config.project or "<default>",
        config.database or "(default)",
    )
    return client


class FirestoreMessageRepository:
    """Persist chat messages in a Firestore collection."""

    def __init__(self, client: Any, *, collection: str = "messages") -> None:
        self._client = client
        self._collection_name = collection

    @classmethod
    def from_config(cls, config: MessageStoreConfig) -> "FirestoreMessageRepository":
        return cls(create_firestore_client(config), collection=config.collection)

    def close(self) -> None:
        self._client.close()

    @property
    def _collection(self):
        return self._client.collection(self._collection_name)

    async def add(self, identity: str, text: str, is_user: bool, timestamp: datetime) -> str:
        def _add() -> str:
            _, reference = self._collection.add(
                {
                    "userId": identity,
                    "text": text,
                    "isUser": is_user,
                    "timestamp": firestore.SERVER_TIMESTAMP,
                }
            )
            return reference.id

        record_id = await self._run("add", _add)
        logger.debug("Stored message %s (is_user=%s)", record_id, is_user)
        return record_id

    async def update_text(self, record_id: str, text: str) -> None:
        await self._run(
            "update",
            lambda: self._collection.document(record_id).update({"text": text}),
        )

    async def delete(self, record_id: str) -> None:
        # Firestore deletes of missing documents succeed silently.
        await self._run("delete", lambda: self._collection.document(record_id).delete())

    async def delete_many(self, record_ids: Sequence[str]) -> None:
        ids = list(record_ids)
        if not ids:
            return

        def _commit() -> None:
            batch = self._client.batch()
            for record_id in ids:
                batch.delete(self._collection.document(record_id))
            batch.commit()

        await self._run("batch delete", _commit)
        logger.debug("Deleted %d message(s)", len(ids))

    async def query(self, identity: str) -> List[MessageRecord]:
        def _query() -> List[MessageRecord]:
            snapshots = (
                self._collection.where(filter=FieldFilter("userId", "==", identity))
                .order_by("timestamp")
                .stream()
            )
            records: List[MessageRecord] = []
            for snapshot in snapshots:
                data = snapshot.to_dict() or {}
                records.append(
                    MessageRecord(
                        id=snapshot.id,
                        identity=str(data.get("userId") or identity),
                        text=_as_text(data.get("text")),
                        is_user=bool(data.get("isUser", False)),
                        timestamp=data.get("timestamp"),
                    )
                )
            return records

        return await self._run("query", _query)

    async def _run(self, action: str, func):
        try:
            return await asyncio.to_thread(func)
        except google_exceptions.GoogleAPIError as exc:
            logger.warning("Firestore %s failed: %s", action, exc)
            raise StorageError(f"{action} failed: {exc}", {"action": action}) from exc


def _as_text(value: Optional[Any]) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


__all__ = ["FirestoreMessageRepository", "create_firestore_client"]
