from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from loguru import logger

from .errors import CompletionError
from .llm import CompletionProvider, classify_completion_error
from .personas import RoomPersona
from .scheduler import TimeBudget
from .states import MessageRole
from .store import MessageRecord, RoomRecord


_RESPONSE_RE = re.compile(r"RESPONSE:\s*(.*?)(?=INNER_THOUGHT:|\Z)", re.IGNORECASE | re.DOTALL)
_THOUGHT_RE = re.compile(r"INNER_THOUGHT:\s*(.*)\Z", re.IGNORECASE | re.DOTALL)


@dataclass
class ParsedTurn:
    content: str
    inner_thought: Optional[str] = None


def parse_response(raw: str) -> ParsedTurn:
    """Split a model reply into spoken content and inner thought.

    Without a RESPONSE: marker the whole raw text is the spoken part; an
    INNER_THOUGHT: section is still extracted when present. Never raises.
    """
    raw = raw or ""
    response = _RESPONSE_RE.search(raw)
    thought = _THOUGHT_RE.search(raw)
    inner = thought.group(1).strip() if thought else None
    if response:
        return ParsedTurn(content=response.group(1).strip(), inner_thought=inner)
    return ParsedTurn(content=raw, inner_thought=inner)


def _fmt(value, default: str = "unknown") -> str:
    if value is None or value == "":
        return default
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _fmt_list(values: Sequence, default: str) -> str:
    return ", ".join(str(v) for v in values if v) or default


class PersonaAgent:
    def __init__(self, persona: RoomPersona, provider: CompletionProvider) -> None:
        self.persona = persona
        self.provider = provider
        self.id = persona.id
        self.name = persona.display_name

    def build_system_prompt(self, room: RoomRecord, time_budget: Optional[TimeBudget] = None) -> str:
        ident = self.persona.identity
        psy = self.persona.psychology
        back = self.persona.backstory
        name = self.name
        time_info = f"\n{time_budget.describe()}" if time_budget is not None else ""
        return f"""You are {name}, a character in a meeting room discussion. Stay fully in character.

CHARACTER PROFILE:
- Name: {name}
- Age: {_fmt(ident.age)}, {_fmt(ident.gender)}
- Occupation: {_fmt(ident.occupation)}
- City: {_fmt(ident.city)}, {_fmt(ident.country)}
- Education: {_fmt(ident.education_level)}
- Hobbies: {_fmt_list(ident.hobbies, "none listed")}

PERSONALITY (Big Five, 0-100):
- Openness: {_fmt(psy.openness, "50")}, Conscientiousness: {_fmt(psy.conscientiousness, "50")}
- Extraversion: {_fmt(psy.extraversion, "50")}, Agreeableness: {_fmt(psy.agreeableness, "50")}
- Neuroticism: {_fmt(psy.neuroticism, "50")}
- Communication style: {_fmt(psy.communication_style, "direct")}
- Conflict style: {_fmt(psy.conflict_style)}
- Trust level: {_fmt(psy.trust_level, "50")}/100
- Proactivity: {_fmt(psy.proactivity_level, "50")}/100
- Primary motivation: {_fmt(psy.primary_motivation)}
- Fears: {_fmt_list(psy.fears, "none")}
- Hidden agenda: {_fmt(psy.hidden_agenda, "none")}

BACKSTORY:
{back.life_narrative or "No backstory available."}
Current situation: {_fmt(back.current_life_situation)}

MEETING CONTEXT:
- Scenario: {room.scenario}
- Purpose: {room.purpose}{time_info}

INSTRUCTIONS:
1. Respond naturally in character as {name}. Keep responses concise (2-4 sentences typically).
2. React to what others have said. Reference other participants by name and the specific points they made.
3. Your response should reflect your personality traits, communication style, conflict style and motivations.
4. Calibrate how much you volunteer and how long you speak to your extraversion and proactivity scores.
5. After your spoken response, provide your inner thoughts in a separate section.

FORMAT YOUR RESPONSE EXACTLY AS:
RESPONSE: [Your spoken words in the meeting]
INNER_THOUGHT: [Your private inner thoughts about what's happening]"""

    def build_history(self, messages: Sequence[MessageRecord], names: Dict[str, str]) -> List[BaseMessage]:
        """Own lines become assistant turns; everything else is a labeled user turn."""
        history: List[BaseMessage] = []
        for msg in messages:
            role = msg.role
            if role in (MessageRole.SYSTEM.value, MessageRole.MODERATOR.value):
                history.append(HumanMessage(content=f"[System/Moderator]: {msg.content}"))
            elif role == MessageRole.FACILITATOR.value:
                history.append(HumanMessage(content=f"[Facilitator]: {msg.content}"))
            elif role == MessageRole.PERSONA.value:
                if msg.persona_id == self.id:
                    history.append(AIMessage(content=msg.content))
                else:
                    speaker = names.get(msg.persona_id, "Unknown")
                    history.append(HumanMessage(content=f"[{speaker}]: {msg.content}"))
        return history

    async def _complete(self, system_prompt: str, history: List[BaseMessage]) -> str:
        try:
            raw = await self.provider.complete(system_prompt, history)
        except Exception as e:
            raise classify_completion_error(e) from e
        return (raw or "").strip()

    async def respond(
        self,
        room: RoomRecord,
        messages: Sequence[MessageRecord],
        names: Dict[str, str],
        time_budget: Optional[TimeBudget] = None,
    ) -> ParsedTurn:
        system_prompt = self.build_system_prompt(room, time_budget)
        history = self.build_history(messages, names)
        raw = await self._complete(system_prompt, history)
        if not raw:
            # Retry once with a nudge appended as the latest user turn
            logger.warning(f"llm_empty | persona={self.id}; retrying once")
            nudge = HumanMessage(
                content="[System/Moderator]: Your previous reply was empty. Respond now in the required format."
            )
            raw = await self._complete(system_prompt, [*history, nudge])
        if not raw:
            raise CompletionError("Empty response from model")
        parsed = parse_response(raw)
        logger.debug(
            f"persona_parsed | persona={self.id} content_len={len(parsed.content)} "
            f"thought={'yes' if parsed.inner_thought else 'no'}"
        )
        return parsed
