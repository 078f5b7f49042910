"""Shared fakes for the conversation store tests."""
from __future__ import annotations

import dataclasses
import os
import time
from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Any, Dict, List, Optional, Sequence, Set

import pytest

from chatzy.models import MessageRecord
from chatzy.storage.base import StorageError


class FakeRepository:
    """In-memory message collection with switchable failures."""

    def __init__(self) -> None:
        self.records: Dict[str, MessageRecord] = {}
        self.failing: Set[str] = set()
        self.calls: List[tuple] = []
        self.closed = False
        self._ids = count(1)

    def _enter(self, action: str, *args: Any) -> None:
        self.calls.append((action, *args))
        if action in self.failing:
            raise StorageError(f"{action} unavailable")

    def seed(self, identity: str, text: str, is_user: bool, timestamp: Any) -> str:
        record_id = f"doc-{next(self._ids)}"
        self.records[record_id] = MessageRecord(record_id, identity, text, is_user, timestamp)
        return record_id

    async def add(self, identity: str, text: str, is_user: bool, timestamp: datetime) -> str:
        self._enter("add", identity, text, is_user)
        return self.seed(identity, text, is_user, timestamp)

    async def update_text(self, record_id: str, text: str) -> None:
        self._enter("update_text", record_id, text)
        if record_id not in self.records:
            raise StorageError(f"No message with id '{record_id}'")
        self.records[record_id].text = text

    async def delete(self, record_id: str) -> None:
        self._enter("delete", record_id)
        self.records.pop(record_id, None)

    async def delete_many(self, record_ids: Sequence[str]) -> None:
        self._enter("delete_many", list(record_ids))
        for record_id in record_ids:
            self.records.pop(record_id, None)

    async def query(self, identity: str) -> List[MessageRecord]:
        self._enter("query", identity)
        return [
            dataclasses.replace(record)
            for record in self.records.values()
            if record.identity == identity
        ]

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def close(self) -> None:
        self.closed = True


class FakeCompletion:
    """Completion client returning a canned reply (or raising)."""

    def __init__(
        self,
        reply: str = "Hi there",
        *,
        configured: bool = True,
        error: Optional[BaseException] = None,
    ) -> None:
        self.reply = reply
        self.is_configured = configured
        self.error = error
        self.prompts: List[str] = []
        self.closed = False

    def generate_reply(self, text: str) -> str:
        self.prompts.append(text)
        if self.error is not None:
            raise self.error
        return self.reply

    def close(self) -> None:
        self.closed = True


class TickingClock:
    """Deterministic clock advancing by ``step`` on every call."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value


class FakeResponse:
    def __init__(self, status_code: int, payload: Any = None, *, invalid_json: bool = False) -> None:
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json

    def json(self) -> Any:
        if self._invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


class FakeSession:
    """Stand-in for ``requests.Session`` recording posted requests."""

    def __init__(self, response: Optional[FakeResponse] = None, *, error: Optional[Exception] = None) -> None:
        self.response = response
        self.error = error
        self.requests: List[Dict[str, Any]] = []
        self.closed = False

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append({"url": url, **kwargs})
        if self.error is not None:
            raise self.error
        assert self.response is not None
        return self.response

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def start_time() -> datetime:
    return datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def clock(start_time: datetime) -> TickingClock:
    return TickingClock(start_time)


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def completion() -> FakeCompletion:
    return FakeCompletion()


@pytest.fixture
def local_timezone():
    """Switch the process-local zone (a POSIX ``TZ`` value) for one test."""

    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset() is not available on this platform")
    original = os.environ.get("TZ")

    def _apply(value: str) -> None:
        os.environ["TZ"] = value
        time.tzset()

    yield _apply

    if original is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = original
    time.tzset()
