from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

import pytest

from meeting_room.config import Settings
from meeting_room.manager import MeetingRoomManager
from meeting_room.store import RoomStore


DEFAULT_REPLY = "RESPONSE: I hear you.\nINNER_THOUGHT: Keep it short."


class FakeProvider:
    """Scripted completion provider. Replies are consumed in order; exceptions are raised."""

    def __init__(self, replies: Optional[List[Any]] = None, default: str = DEFAULT_REPLY) -> None:
        self.replies = list(replies or [])
        self.default = default
        self.calls: List[tuple] = []

    async def complete(self, system_prompt, history):
        self.calls.append((system_prompt, list(history)))
        if self.replies:
            reply = self.replies.pop(0)
            if isinstance(reply, Exception):
                raise reply
            return reply
        return self.default


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class StatusError(Exception):
    def __init__(self, status_code: int, code: Optional[str] = None) -> None:
        super().__init__(f"status {status_code}")
        self.status_code = status_code
        self.code = code


def run(coro):
    return asyncio.run(coro)


def persona_payload(first: str, last: str, **psychology) -> dict:
    return {
        "identity": {"firstName": first, "lastName": last, "age": 40, "occupation": "Engineer", "hobbies": ["chess"]},
        "psychology": {"openness": 70, "extraversion": 30, "hiddenAgenda": "get promoted", **psychology},
        "backstory": {"lifeNarrative": f"{first} grew up by the sea.", "currentLifeSituation": "busy"},
    }


@pytest.fixture
def store() -> RoomStore:
    s = RoomStore("sqlite://")
    s.create_all()
    return s


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def add_personas(store):
    def _add(*names: str) -> List[str]:
        ids = []
        for name in names:
            first, _, last = name.partition(" ")
            rec = store.add_persona(**persona_payload(first, last or "Doe"), persona_id=first.lower())
            ids.append(rec.id)
        return ids

    return _add


@pytest.fixture
def manager(store, provider, settings, clock) -> MeetingRoomManager:
    return MeetingRoomManager(store, provider, settings=settings, clock=clock)


@pytest.fixture
def make_room(store, add_personas):
    def _make(*names: str, duration: int = 30, role: str = "moderator"):
        ids = add_personas(*names)
        return store.create_room("Weekly sync", "Budget cuts loom", "Agree on priorities", ids, user_role=role, duration_minutes=duration)

    return _make
