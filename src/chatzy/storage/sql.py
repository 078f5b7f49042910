from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Sequence
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String, Text, create_engine, delete, select
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ..config import MessageStoreConfig
from ..logging_utils import get_logger
from ..models import MessageRecord
from .base import StorageError

logger = get_logger(__name__)
Base = declarative_base()


class MessageRow(Base):
    """SQLAlchemy model storing one chat message per row."""

    __tablename__ = "chatzy_messages"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(128), nullable=False, index=True)
    text = Column(Text, nullable=False)
    is_user = Column(Boolean, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=True, index=True)


class SQLMessageRepository:
    """Persist chat messages in a SQL database."""

    def __init__(self, config: MessageStoreConfig) -> None:
        self._config = config.copy()
        self._engine = self._create_engine(self._config)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(
            bind=self._engine,
            expire_on_commit=False,
            future=True,
        )

    @staticmethod
    def _create_engine(config: MessageStoreConfig) -> Engine:
        url = config.effective_url()
        database = make_url(url).database
        if url.startswith("sqlite") and database and database != ":memory:":
            Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)
        kwargs: Dict[str, Any] = {
            "future": True,
            "echo": config.echo,
            "pool_pre_ping": True,
        }
        if url.startswith("sqlite"):
            # Calls run on worker threads via asyncio.to_thread.
            kwargs["connect_args"] = {"check_same_thread": False}
        if config.pool_size and not url.startswith("sqlite"):
            kwargs["pool_size"] = config.pool_size
        engine = create_engine(url, **kwargs)
        logger.info("Message store engine initialised (url=%s)", url)
        return engine

    def _session(self) -> Session:
        return self._session_factory()

    def close(self) -> None:
        self._engine.dispose()

    # --- public API -----------------------------------------------------
    async def add(self, identity: str, text: str, is_user: bool, timestamp: datetime) -> str:
        return await self._run("add", self._add, identity, text, is_user, timestamp)

    async def update_text(self, record_id: str, text: str) -> None:
        await self._run("update", self._update_text, record_id, text)

    async def delete(self, record_id: str) -> None:
        await self._run("delete", self._delete_many, [record_id])

    async def delete_many(self, record_ids: Sequence[str]) -> None:
        await self._run("batch delete", self._delete_many, list(record_ids))

    async def query(self, identity: str) -> List[MessageRecord]:
        return await self._run("query", self._query, identity)

    # --- helpers --------------------------------------------------------
    async def _run(self, action: str, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except SQLAlchemyError as exc:
            logger.warning("Message store %s failed: %s", action, exc)
            raise StorageError(f"{action} failed: {exc}", {"action": action}) from exc

    def _add(self, identity: str, text: str, is_user: bool, timestamp: datetime) -> str:
        record_id = uuid4().hex
        # SQLite drops the offset, so rows are always written in UTC.
        if timestamp.tzinfo is not None:
            timestamp = timestamp.astimezone(timezone.utc)
        with self._session() as session:
            session.add(
                MessageRow(
                    id=record_id,
                    user_id=identity,
                    text=text,
                    is_user=is_user,
                    timestamp=timestamp,
                )
            )
            session.commit()
        logger.debug("Stored message %s (is_user=%s)", record_id, is_user)
        return record_id

    def _update_text(self, record_id: str, text: str) -> None:
        with self._session() as session:
            row = session.get(MessageRow, record_id)
            if row is None:
                raise StorageError(f"No message with id '{record_id}'", {"id": record_id})
            row.text = text
            session.commit()

    def _delete_many(self, record_ids: List[str]) -> None:
        if not record_ids:
            return
        with self._session() as session:
            with session.begin():
                session.execute(delete(MessageRow).where(MessageRow.id.in_(record_ids)))
        logger.debug("Deleted %d message(s)", len(record_ids))

    def _query(self, identity: str) -> List[MessageRecord]:
        with self._session() as session:
            rows = (
                session.execute(
                    select(MessageRow)
                    .where(MessageRow.user_id == identity)
                    .order_by(MessageRow.timestamp.asc(), MessageRow.id.asc())
                )
                .scalars()
                .all()
            )
        return [
            MessageRecord(
                id=row.id,
                identity=row.user_id,
                text=row.text,
                is_user=bool(row.is_user),
                timestamp=row.timestamp,
            )
            for row in rows
        ]


__all__ = ["MessageRow", "SQLMessageRepository"]
