"""Conversation state manager.

:class:`ConversationStore` owns the transcript of the signed-in identity.
Mutations are applied to the in-memory list first and observers are told
straight away; the remote message collection is updated afterwards and
treated as eventually consistent with the local copy.  Failures of any
collaborator are logged and shown as assistant messages in the transcript
rather than raised, so a caller (a UI, the CLI) always has something to
render.

Build one store per process and hand it to every consumer that needs it.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from datetime import datetime, tzinfo
from typing import Callable, Dict, Iterator, List, Optional, Protocol

from . import constants
from .completion import MissingCredentialsError
from .identity import IdentityProvider
from .logging_utils import get_logger
from .models import Message, SyncStatus, message_from_record, utcnow
from .storage.base import MessageRepository


logger = get_logger(__name__)

Listener = Callable[["ConversationStore"], None]


class CompletionClient(Protocol):
    @property
    def is_configured(self) -> bool:
        ...

    def generate_reply(self, text: str) -> str:
        ...

    def close(self) -> None:
        ...


class ConversationStore:
    """In-memory transcript mirrored to a remote message collection."""

    def __init__(
        self,
        repository: MessageRepository,
        completion: CompletionClient,
        identity: IdentityProvider,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._repository = repository
        self._completion = completion
        self._identity = identity
        self._clock = clock or utcnow
        self._messages: List[Message] = []
        self._listeners: List[Listener] = []
        self._in_flight = 0

    # --- observation ----------------------------------------------------
    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Conversation listener %r failed", listener)

    @contextmanager
    def _busy(self) -> Iterator[None]:
        self._in_flight += 1
        self._notify()
        try:
            yield
        finally:
            self._in_flight -= 1
            self._notify()

    def close(self) -> None:
        """Release the completion session and the repository connections."""

        self._completion.close()
        self._repository.close()

    # --- operations -----------------------------------------------------
    async def send(self, text: str) -> None:
        """Append a user message, persist it and request the reply."""

        cleaned = (text or "").strip()
        if not cleaned:
            return
        identity = self._identity.current_identity()
        if identity is None:
            return

        message = Message(text=cleaned, is_user=True, timestamp=self._clock())
        self._append(message)
        await self._persist(identity, message)
        await self.request_reply(cleaned)

    async def request_reply(self, user_text: str) -> None:
        """Ask the completion endpoint for a reply and append it."""

        cleaned = (user_text or "").strip()
        if not cleaned:
            return
        identity = self._identity.current_identity()
        if identity is None:
            return

        with self._busy():
            if not self._completion.is_configured:
                logger.warning("Completion endpoint has no API key; skipping reply")
                self._add_diagnostic(constants.MISSING_API_KEY)
                return

            try:
                reply = await asyncio.to_thread(self._completion.generate_reply, cleaned)
            except MissingCredentialsError:
                logger.warning("Completion endpoint rejected missing credentials")
                self._add_diagnostic(constants.MISSING_API_KEY)
                return
            except Exception as exc:
                logger.warning("Completion request failed: %s", exc)
                reply = constants.EXCEPTION_REPLY_TEMPLATE.format(detail=exc)

            message = Message(text=reply, is_user=False, timestamp=self._clock())
            self._append(message)
            await self._persist(identity, message)

    async def load(self) -> None:
        """Replace the transcript with the remote history of the identity."""

        identity = self._identity.current_identity()
        if identity is None:
            return

        with self._busy():
            try:
                records = await self._repository.query(identity)
            except Exception as exc:
                logger.warning("Loading messages failed: %s", exc)
                self._add_diagnostic(constants.LOAD_ERROR_TEMPLATE.format(detail=exc))
                return

            now = self._clock()
            loaded = [message_from_record(record, fallback=now) for record in records]
            self._messages.clear()
            self._messages.extend(loaded)
            logger.debug("Loaded %d message(s)", len(loaded))
            self._notify()

    async def update_by_id(self, message_id: str, new_text: str) -> None:
        """Edit a stored message in place, then push the text remotely.

        The local edit is kept when the remote update fails; the message is
        flagged ``failed`` instead.
        """

        cleaned = (new_text or "").strip()
        if not cleaned or not message_id:
            return
        message = self._find(message_id)
        if message is None:
            return

        message.text = cleaned
        message.status = SyncStatus.PENDING
        self._notify()

        try:
            await self._repository.update_text(message_id, cleaned)
        except Exception as exc:
            logger.warning("Updating message %s failed: %s", message_id, exc)
            message.status = SyncStatus.FAILED
            self._add_diagnostic(constants.UPDATE_ERROR_TEMPLATE.format(detail=exc))
            return
        message.status = SyncStatus.CONFIRMED

    async def delete_by_id(self, message_id: str) -> None:
        """Drop a message locally and delete its remote record (no rollback)."""

        if not message_id:
            return
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                del self._messages[index]
                break
        self._notify()

        try:
            await self._repository.delete(message_id)
        except Exception as exc:
            logger.warning("Deleting message %s failed: %s", message_id, exc)
            self._add_diagnostic(constants.DELETE_ERROR_TEMPLATE.format(detail=exc))

    async def delete_all(self) -> None:
        """Delete every remote record of the identity in one batch."""

        identity = self._identity.current_identity()
        if identity is None:
            return

        with self._busy():
            try:
                records = await self._repository.query(identity)
                await self._repository.delete_many([record.id for record in records])
            except Exception as exc:
                logger.warning("Deleting all messages failed: %s", exc)
                self._add_diagnostic(constants.DELETE_ALL_ERROR_TEMPLATE.format(detail=exc))
                return

            logger.info("Deleted %d stored message(s)", len(records))
            self._messages.clear()
            self._notify()

    # --- derived views --------------------------------------------------
    def grouped_view(self, tz: Optional[tzinfo] = None) -> Dict[str, List[Message]]:
        """Group messages by ``YYYY-MM-DD`` day, keeping first-seen day order.

        Days are calendar days in ``tz``, the local zone when omitted.
        """

        grouped: Dict[str, List[Message]] = {}
        for message in self._messages:
            key = message.timestamp.astimezone(tz).strftime(constants.DAY_KEY_FORMAT)
            grouped.setdefault(key, []).append(message)
        return grouped

    @property
    def total_message_count(self) -> int:
        return len(self._messages)

    @property
    def conversation_count(self) -> int:
        return len(self._messages) // 2

    @property
    def has_messages(self) -> bool:
        return bool(self._messages)

    @property
    def last_message(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def last_activity(self, now: Optional[datetime] = None) -> str:
        last = self.last_message
        if last is None:
            return constants.NO_ACTIVITY

        elapsed = (now or self._clock()) - last.timestamp
        minutes = int(elapsed.total_seconds() // 60)
        if minutes < 1:
            return "Just now"
        if minutes < 60:
            return f"{minutes}m ago"
        if minutes < 24 * 60:
            return f"{minutes // 60}h ago"
        return last.timestamp.astimezone().strftime(constants.SHORT_DATE_FORMAT)

    def status_text(self) -> str:
        if self.loading:
            return constants.STATUS_THINKING
        if not self._messages:
            return constants.STATUS_EMPTY
        return constants.STATUS_ONLINE_TEMPLATE.format(count=self.conversation_count)

    # --- helpers --------------------------------------------------------
    def _find(self, message_id: str) -> Optional[Message]:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def _append(self, message: Message) -> None:
        self._messages.append(message)
        self._notify()

    def _add_diagnostic(self, text: str) -> None:
        self._append(
            Message(
                text=text,
                is_user=False,
                timestamp=self._clock(),
                status=SyncStatus.LOCAL,
            )
        )

    async def _persist(self, identity: str, message: Message) -> None:
        try:
            record_id = await self._repository.add(
                identity, message.text, message.is_user, message.timestamp
            )
        except Exception as exc:
            logger.warning("Saving message failed: %s", exc)
            message.status = SyncStatus.FAILED
            self._add_diagnostic(constants.SAVE_ERROR_TEMPLATE.format(detail=exc))
            return
        message.id = record_id
        message.status = SyncStatus.CONFIRMED


__all__ = ["CompletionClient", "ConversationStore", "Listener"]
