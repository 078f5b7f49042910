"""Persistence backends for Chatzy messages."""

from __future__ import annotations

from ..config import MessageStoreConfig
from .base import MessageRepository, StorageError
from .sql import SQLMessageRepository


def create_repository(config: MessageStoreConfig) -> MessageRepository:
    """Build the backend named by ``config.backend``."""

    if config.backend == "sql":
        return SQLMessageRepository(config)
    if config.backend == "firestore":
        # Optional dependency, installed with the ``firestore`` extra.
        from .firestore import FirestoreMessageRepository

        return FirestoreMessageRepository.from_config(config)
    raise ValueError(f"Unknown storage backend: {config.backend!r}")


__all__ = [
    "MessageRepository",
    "SQLMessageRepository",
    "StorageError",
    "create_repository",
]
