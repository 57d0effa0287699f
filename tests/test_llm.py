from __future__ import annotations

import pytest
from conftest import StatusError, run
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from meeting_room import llm
from meeting_room.errors import CompletionError
from meeting_room.llm import LangChainCompletionProvider, classify_completion_error
from meeting_room.states import ErrorKind


class FakeChat:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.seen = None

    async def ainvoke(self, messages):
        self.seen = messages
        if self.error is not None:
            raise self.error
        return self.result


class _Response:
    status_code = 402


class WrappedError(Exception):
    response = _Response()


@pytest.mark.parametrize(
    "exc, kind, status",
    [
        (StatusError(429), ErrorKind.RATE_LIMITED, 429),
        (StatusError(402), ErrorKind.QUOTA_EXHAUSTED, 402),
        (StatusError(400, code="insufficient_quota"), ErrorKind.QUOTA_EXHAUSTED, 400),
        (WrappedError("payment"), ErrorKind.QUOTA_EXHAUSTED, 402),
        (StatusError(503), ErrorKind.UPSTREAM, 503),
        (TimeoutError("slow"), ErrorKind.UPSTREAM, None),
    ],
)
def test_classify_completion_error(exc, kind, status):
    err = classify_completion_error(exc)
    assert err.kind is kind
    assert err.status == status


def test_classify_keeps_completion_errors():
    original = CompletionError("already mapped", ErrorKind.RATE_LIMITED)
    assert classify_completion_error(original) is original


def test_complete_prepends_system_prompt():
    chat = FakeChat(result=AIMessage(content="RESPONSE: hi"))
    text = run(LangChainCompletionProvider(chat=chat).complete("be brief", [HumanMessage(content="[Facilitator]: go")]))
    assert text == "RESPONSE: hi"
    assert isinstance(chat.seen[0], SystemMessage)
    assert chat.seen[0].content == "be brief"
    assert chat.seen[1].content == "[Facilitator]: go"


def test_complete_joins_content_parts():
    chat = FakeChat(result=AIMessage(content=[{"type": "text", "text": "RESPONSE: "}, {"type": "text", "text": "ok"}]))
    assert run(LangChainCompletionProvider(chat=chat).complete("sys", [])) == "RESPONSE: ok"


def test_complete_maps_errors():
    chat = FakeChat(error=StatusError(429))
    with pytest.raises(CompletionError) as info:
        run(LangChainCompletionProvider(chat=chat).complete("sys", []))
    assert info.value.kind is ErrorKind.RATE_LIMITED
    assert str(info.value) == "Rate limited. Please wait a moment."


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(llm, "get_openai_chat", lambda: None)
    with pytest.raises(CompletionError) as info:
        run(LangChainCompletionProvider().complete("sys", []))
    assert info.value.kind is ErrorKind.UPSTREAM
