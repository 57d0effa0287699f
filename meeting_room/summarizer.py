from __future__ import annotations

from typing import Dict, Sequence

from langchain_core.messages import HumanMessage
from loguru import logger

from .config import load_prompt
from .errors import CompletionError
from .llm import CompletionProvider
from .states import MessageRole
from .store import MessageRecord, RoomRecord, RoomStore


MANUAL_END = ""
TIME_EXPIRED = " (Time Expired)"

_DEFAULT_SUMMARY_PROMPT = (
    "You are a meeting summarizer. Given a meeting transcript, produce a clear, structured summary "
    "with sections: Participants, Key Discussion Points, Notable Moments, Outcomes & Conclusions, "
    "Tone & Dynamics. Keep it concise but thorough. Use markdown formatting."
)

_SUMMARY_PROMPT = load_prompt("meeting_summary_prompt.md", _DEFAULT_SUMMARY_PROMPT)

_TAGS = {
    MessageRole.SYSTEM.value: "System",
    MessageRole.MODERATOR.value: "Moderator",
    MessageRole.FACILITATOR.value: "Facilitator",
}


def fallback_summary(end_reason: str = MANUAL_END) -> str:
    return f"🏁 Meeting ended{end_reason}."


def render_transcript(messages: Sequence[MessageRecord], names: Dict[str, str]) -> str:
    lines = []
    for m in messages:
        tag = _TAGS.get(m.role) or names.get(m.persona_id, "Unknown")
        lines.append(f"[{tag}]: {m.content}")
    return "\n".join(lines)


class MeetingSummarizer:
    """Closing summary for a room. Never raises on provider trouble."""

    def __init__(self, store: RoomStore, provider: CompletionProvider, history_limit: int = 200) -> None:
        self.store = store
        self.provider = provider
        self.history_limit = history_limit

    async def summarize(self, room: RoomRecord, end_reason: str = MANUAL_END) -> str:
        messages = self.store.list_messages(room.id, limit=self.history_limit)
        try:
            names = self.store.persona_names(room.id)
        except Exception as e:
            logger.warning(f"summary_names_unavailable | room={room.id} {type(e).__name__} | {e}")
            names = {}
        transcript = render_transcript(messages, names)
        if not transcript:
            logger.info(f"summary_skip | room={room.id} empty transcript")
            return fallback_summary(end_reason)

        request = HumanMessage(
            content=(
                f'Meeting: "{room.name}"\nScenario: {room.scenario}\nPurpose: {room.purpose}\n\n'
                f"Transcript:\n{transcript}"
            )
        )
        try:
            text = (await self.provider.complete(_SUMMARY_PROMPT, [request])).strip()
        except CompletionError as e:
            logger.warning(f"summary_fallback | room={room.id} kind={e.kind.value} | {e}")
            return fallback_summary(end_reason)
        except Exception as e:
            logger.warning(f"summary_fallback | room={room.id} unexpected={type(e).__name__} | {e}")
            return fallback_summary(end_reason)
        if not text:
            logger.warning(f"summary_fallback | room={room.id} empty summary")
            return fallback_summary(end_reason)
        logger.info(f"summary_done | room={room.id} messages={len(messages)} chars={len(text)}")
        return f"🏁 **Meeting Ended{end_reason}**\n\n{text}"
